"""FastAPI dependency injection factories."""

import logging
from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, Header, Request

from snapmeal_api.core.config import Settings, StorageBackendSetting, get_settings
from snapmeal_api.core.exceptions import ValidationError
from snapmeal_api.core.security import CredentialCipher
from snapmeal_api.db.mongo import MongoDB
from snapmeal_api.db.unit_of_work import UnitOfWork, create_unit_of_work
from snapmeal_api.services.analysis_cache import AnalysisCache
from snapmeal_api.services.image_store import (
    BlobBackend,
    DerivativeStore,
    create_blob_backend,
)
from snapmeal_api.services.inference import InferenceOrchestrator, ProviderRegistry
from snapmeal_api.services.ingestion import IngestionService
from snapmeal_api.services.records import AnalysisRecordWriter

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Long-lived services shared by every request, built once per app."""

    settings: Settings
    uow: UnitOfWork
    http_client: httpx.AsyncClient
    backend: BlobBackend
    store: DerivativeStore
    cache: AnalysisCache
    registry: ProviderRegistry
    orchestrator: InferenceOrchestrator
    records: AnalysisRecordWriter
    ingestion: IngestionService

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_container(
    settings: Settings,
    *,
    uow: UnitOfWork | None = None,
    backend: BlobBackend | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceContainer:
    """
    Wire the service graph from settings.

    Any collaborator can be passed in to replace the one settings would
    select (tests use in-memory repositories and a temp-dir backend).
    """
    uow = uow or create_unit_of_work(settings)
    if backend is None:
        db = (
            MongoDB.get_database(settings.db_name)
            if settings.storage_backend == StorageBackendSetting.GRIDFS
            else None
        )
        backend = create_blob_backend(settings, db)
    http_client = http_client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)

    store = DerivativeStore.from_settings(uow, backend, settings)
    cache = AnalysisCache(
        ttl_seconds=settings.analysis_cache_ttl_seconds,
        max_entries=settings.analysis_cache_max_entries,
    )
    registry = ProviderRegistry(uow, CredentialCipher(settings.encryption_key), settings)
    orchestrator = InferenceOrchestrator(
        registry,
        cache,
        http_client,
        timeout=settings.provider_timeout_seconds,
        single_flight=settings.single_flight_enabled,
    )
    records = AnalysisRecordWriter(uow)
    ingestion = IngestionService(store, orchestrator, registry, records, settings)

    return ServiceContainer(
        settings=settings,
        uow=uow,
        http_client=http_client,
        backend=backend,
        store=store,
        cache=cache,
        registry=registry,
        orchestrator=orchestrator,
        records=records,
        ingestion=ingestion,
    )


# Type aliases for cleaner route signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_container(request: Request) -> ServiceContainer:
    """Services built at startup and stored on the app."""
    return request.app.state.container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


def get_ingestion_service(container: ContainerDep) -> IngestionService:
    return container.ingestion


def get_store(container: ContainerDep) -> DerivativeStore:
    return container.store


def get_registry(container: ContainerDep) -> ProviderRegistry:
    return container.registry


def get_record_writer(container: ContainerDep) -> AnalysisRecordWriter:
    return container.records


def get_owner_id(x_owner_id: Annotated[str | None, Header()] = None) -> str:
    """
    Owner id supplied by the upstream authentication layer.

    Raises:
        ValidationError: Header missing or blank
    """
    if not x_owner_id or not x_owner_id.strip():
        raise ValidationError("X-Owner-Id header is required")
    return x_owner_id.strip()


# Type aliases for service dependencies
IngestionServiceDep = Annotated[IngestionService, Depends(get_ingestion_service)]
StoreDep = Annotated[DerivativeStore, Depends(get_store)]
RegistryDep = Annotated[ProviderRegistry, Depends(get_registry)]
RecordWriterDep = Annotated[AnalysisRecordWriter, Depends(get_record_writer)]
OwnerIdDep = Annotated[str, Depends(get_owner_id)]
