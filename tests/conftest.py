"""Pytest configuration and fixtures."""

from typing import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from snapmeal_api.api.dependencies import ServiceContainer, build_container
from snapmeal_api.core.config import RepositoryBackend, Settings, StorageBackendSetting
from snapmeal_api.core.security import CredentialCipher
from snapmeal_api.db.unit_of_work import InMemoryUnitOfWork
from snapmeal_api.models.provider_config import ProviderConfigCreate, ProviderKind
from snapmeal_api.services.analysis_cache import AnalysisCache
from snapmeal_api.services.image_store import DerivativeStore, LocalBlobBackend
from snapmeal_api.services.inference import ProviderRegistry
from tests.factories import OllamaStub, make_jpeg, make_png


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for an in-memory, local-disk deployment with background jobs off."""
    return Settings(
        _env_file=None,
        repository_backend=RepositoryBackend.MEMORY,
        storage_backend=StorageBackendSetting.LOCAL,
        storage_local_path=str(tmp_path / "blobs"),
        image_cleanup_enabled=False,
        analysis_cache_sweep_seconds=0,
        encryption_key="test-encryption-key",
    )


@pytest.fixture
def uow() -> InMemoryUnitOfWork:
    return InMemoryUnitOfWork()


@pytest.fixture
def backend(tmp_path) -> LocalBlobBackend:
    return LocalBlobBackend(tmp_path / "store")


@pytest.fixture
def store(uow, backend) -> DerivativeStore:
    return DerivativeStore(uow, backend)


@pytest.fixture
def cache() -> AnalysisCache:
    return AnalysisCache(ttl_seconds=1800, max_entries=100)


@pytest.fixture
def registry(uow, settings) -> ProviderRegistry:
    return ProviderRegistry(uow, CredentialCipher(settings.encryption_key), settings)


@pytest.fixture
async def active_registry(registry) -> ProviderRegistry:
    """Registry with an activated Ollama config (no credential needed)."""
    config = await registry.create_config(
        ProviderConfigCreate(provider_kind=ProviderKind.OLLAMA, model_name="llava:7b")
    )
    await registry.activate(config.id)
    return registry


@pytest.fixture
def ollama_stub() -> OllamaStub:
    return OllamaStub()


@pytest.fixture
async def container(settings, ollama_stub) -> AsyncGenerator[ServiceContainer, None]:
    """
    Fully wired services with an active Ollama config.

    HTTP calls go to ``ollama_stub``; nothing leaves the process.
    """
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(ollama_stub))
    container = build_container(settings, uow=InMemoryUnitOfWork(), http_client=http_client)
    config = await container.registry.create_config(
        ProviderConfigCreate(provider_kind=ProviderKind.OLLAMA, model_name="llava:7b")
    )
    await container.registry.activate(config.id)
    yield container
    await container.aclose()


@pytest.fixture
async def client(container) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async test client.

    ASGITransport does not run the lifespan, so the app uses the
    pre-built ``container``.

    Usage:
        async def test_endpoint(client: AsyncClient):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from snapmeal_api.main import create_app

    transport = ASGITransport(app=create_app(container))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
