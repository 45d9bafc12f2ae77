"""
Inference orchestration: cache lookup, provider call, normalization.

Per request:
    RESOLVING_CONFIG -> CACHE_CHECK -> DONE                       (hit)
    RESOLVING_CONFIG -> CACHE_CHECK -> CALLING_PROVIDER
        -> NORMALIZING -> CACHE_POPULATE -> DONE                  (miss)
CALLING_PROVIDER and NORMALIZING may end in FAILED. There is no internal
retry and no failover to another provider.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from snapmeal_api.core.exceptions import APIError, ProviderCallError, ProviderResponseError
from snapmeal_api.models.nutrition import NutritionAnalysisResult
from snapmeal_api.models.provider_config import ProviderConfigSnapshot, ProviderKind
from snapmeal_api.services.analysis_cache import AnalysisCache, fingerprint_for

from .base import InferenceProvider, ProviderRequest
from .factory import create_provider
from .normalization import ParsedError, ParsedOk, normalize_response
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


class AnalysisState(str, Enum):
    RESOLVING_CONFIG = "resolving_config"
    CACHE_CHECK = "cache_check"
    CALLING_PROVIDER = "calling_provider"
    NORMALIZING = "normalizing"
    CACHE_POPULATE = "cache_populate"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class AnalysisOutcome:
    """A normalized result and where it came from."""

    result: NutritionAnalysisResult
    fingerprint: str
    cached: bool
    provider_kind: ProviderKind
    model_name: str
    config_version: int
    latency_ms: int | None = None


ProviderFactory = Callable[..., InferenceProvider]


class InferenceOrchestrator:
    """
    Produces a nutrition result for an image, calling a provider only on a
    cache miss.

    Concurrent misses for the same fingerprint share one in-flight provider
    call when single-flight is enabled; every waiter gets the same outcome
    or the same error.

    Usage:
        orchestrator = InferenceOrchestrator(registry, cache, http_client)
        outcome = await orchestrator.analyze(data, "image/jpeg", content_hash)
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: AnalysisCache,
        http_client: httpx.AsyncClient,
        *,
        timeout: float = 30.0,
        single_flight: bool = True,
        provider_factory: ProviderFactory = create_provider,
    ):
        self._registry = registry
        self._cache = cache
        self._http_client = http_client
        self._timeout = timeout
        self._single_flight = single_flight
        self._provider_factory = provider_factory
        self._in_flight: dict[str, asyncio.Task] = {}

    @staticmethod
    def _transition(fingerprint: str, state: AnalysisState) -> None:
        logger.debug(f"analysis {fingerprint[:12]} -> {state.value}")

    async def analyze(
        self,
        image: bytes,
        mime_type: str,
        content_hash: str,
        *,
        snapshot: ProviderConfigSnapshot | None = None,
        populate_cache: bool = True,
    ) -> AnalysisOutcome:
        """
        Return the nutrition result for an image.

        Args:
            image: Validated image bytes
            mime_type: Normalized mime type
            content_hash: SHA-256 of ``image``
            snapshot: Config taken at request start (resolved here if omitted)
            populate_cache: Write a fresh result to the cache before returning.
                Ingestion passes False and calls ``populate`` once the
                original blob is stored.

        Raises:
            ProviderNotConfiguredError: No active or usable provider
            ProviderCallError: Backend unreachable, timed out or errored
            ProviderResponseError: Backend answer does not fit the schema
        """
        fingerprint = fingerprint_for(content_hash)

        self._transition(fingerprint, AnalysisState.RESOLVING_CONFIG)
        if snapshot is None:
            snapshot = await self._registry.get_active_snapshot()

        self._transition(fingerprint, AnalysisState.CACHE_CHECK)
        entry = self._cache.lookup(fingerprint)
        if entry is not None:
            self._transition(fingerprint, AnalysisState.DONE)
            logger.info(f"Cache hit for {fingerprint[:12]}")
            # Report the provider that produced the result, not the active one
            return AnalysisOutcome(
                result=entry.payload,
                fingerprint=fingerprint,
                cached=True,
                provider_kind=entry.provider_kind or snapshot.provider_kind,
                model_name=entry.model_name or snapshot.model_name,
                config_version=(
                    entry.config_version
                    if entry.config_version is not None
                    else snapshot.version
                ),
            )

        if self._single_flight:
            task = self._in_flight.get(fingerprint)
            if task is None:
                task = asyncio.create_task(
                    self._call_provider(image, mime_type, fingerprint, snapshot)
                )
                self._in_flight[fingerprint] = task
                task.add_done_callback(lambda t: self._forget(fingerprint, t))
            else:
                logger.info(f"Joining in-flight analysis for {fingerprint[:12]}")
            # Shielded so one cancelled waiter does not cancel the shared call
            outcome = await asyncio.shield(task)
        else:
            outcome = await self._call_provider(image, mime_type, fingerprint, snapshot)

        if populate_cache:
            self.populate(outcome)
        return outcome

    def _forget(self, fingerprint: str, task: asyncio.Task) -> None:
        if self._in_flight.get(fingerprint) is task:
            del self._in_flight[fingerprint]
        if not task.cancelled():
            # Mark the exception retrieved even if every waiter went away
            task.exception()

    async def _call_provider(
        self,
        image: bytes,
        mime_type: str,
        fingerprint: str,
        snapshot: ProviderConfigSnapshot,
    ) -> AnalysisOutcome:
        try:
            self._transition(fingerprint, AnalysisState.CALLING_PROVIDER)
            credential = await self._registry.decrypt_credential(snapshot)
            provider = self._provider_factory(
                snapshot, credential, self._http_client, timeout=self._timeout
            )
            request = ProviderRequest.from_snapshot(snapshot, image, mime_type)

            try:
                async with asyncio.timeout(self._timeout):
                    response = await provider.analyze(request)
            except TimeoutError as e:
                raise ProviderCallError(
                    f"{snapshot.label} did not answer within {self._timeout}s",
                    provider=snapshot.label,
                    timeout=True,
                ) from e

            self._transition(fingerprint, AnalysisState.NORMALIZING)
            match normalize_response(response.raw_text):
                case ParsedOk(result=result):
                    pass
                case ParsedError(reason=reason):
                    logger.warning(f"Unusable answer from {snapshot.label}: {reason}")
                    raise ProviderResponseError(
                        f"Invalid nutrition data from {snapshot.label}: {reason}",
                        provider=snapshot.label,
                    )
        except APIError as e:
            self._transition(fingerprint, AnalysisState.FAILED)
            logger.error(f"Analysis {fingerprint[:12]} failed: {e.message}")
            raise

        return AnalysisOutcome(
            result=result,
            fingerprint=fingerprint,
            cached=False,
            provider_kind=snapshot.provider_kind,
            model_name=snapshot.model_name,
            config_version=snapshot.version,
            latency_ms=response.latency_ms,
        )

    def populate(self, outcome: AnalysisOutcome) -> None:
        """Cache a freshly computed result. Cached outcomes are left alone."""
        if outcome.cached:
            return
        self._transition(outcome.fingerprint, AnalysisState.CACHE_POPULATE)
        self._cache.put(
            outcome.fingerprint,
            outcome.result,
            provider_kind=outcome.provider_kind,
            model_name=outcome.model_name,
            config_version=outcome.config_version,
        )
        self._transition(outcome.fingerprint, AnalysisState.DONE)

    async def provider_health(self) -> dict[str, Any]:
        """Health of the active provider, without raising."""
        try:
            snapshot = await self._registry.get_active_snapshot()
            credential = await self._registry.decrypt_credential(snapshot)
            provider = self._provider_factory(
                snapshot, credential, self._http_client, timeout=self._timeout
            )
        except APIError as e:
            return {"provider": None, "healthy": False, "error": e.message}

        return {
            "provider": snapshot.label,
            "config_version": snapshot.version,
            "healthy": await provider.health_check(),
        }
