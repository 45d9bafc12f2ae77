"""
Factory for inference provider instances.

Maps a config snapshot's ``ProviderKind`` to the provider class that speaks
that backend's wire format.
"""

import logging

import httpx

from snapmeal_api.core.exceptions import ProviderNotConfiguredError
from snapmeal_api.models.provider_config import ProviderConfigSnapshot, ProviderKind

from .base import InferenceProvider
from .gemini_provider import GeminiVisionProvider
from .ollama_provider import OllamaVisionProvider
from .openai_provider import OpenAIVisionProvider

logger = logging.getLogger(__name__)


# Supported providers
PROVIDERS: dict[ProviderKind, type[InferenceProvider]] = {
    ProviderKind.OPENAI: OpenAIVisionProvider,
    ProviderKind.GEMINI: GeminiVisionProvider,
    ProviderKind.OLLAMA: OllamaVisionProvider,
}


def create_provider(
    snapshot: ProviderConfigSnapshot,
    credential: str | None,
    http_client: httpx.AsyncClient,
    *,
    timeout: float = 30.0,
) -> InferenceProvider:
    """
    Build the provider for a config snapshot.

    Args:
        snapshot: Active config taken at request start
        credential: Decrypted API key, or None
        http_client: Shared HTTP client
        timeout: Per-request timeout in seconds

    Raises:
        ProviderNotConfiguredError: Unsupported kind, or a kind that needs a
            credential and has none
    """
    provider_class = PROVIDERS.get(snapshot.provider_kind)
    if provider_class is None:
        raise ProviderNotConfiguredError(
            f"Unsupported provider: {snapshot.provider_kind}",
            details={"supported_providers": [k.value for k in PROVIDERS]},
        )

    if provider_class.requires_credential and not credential:
        raise ProviderNotConfiguredError(
            f"No API key configured for {snapshot.label}",
            details={"config_id": snapshot.config_id},
        )

    logger.debug(f"Creating provider {snapshot.label} (config v{snapshot.version})")
    return provider_class(
        http_client,
        snapshot.model_name,
        base_url=snapshot.base_url,
        credential=credential,
        timeout=timeout,
    )
