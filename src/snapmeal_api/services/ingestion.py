"""
Photo ingestion pipeline.

validate -> hash -> resolve provider snapshot -> (store || analyze)
-> populate cache -> record -> respond
"""

import asyncio
import logging
from dataclasses import dataclass

from snapmeal_api.core.config import Settings
from snapmeal_api.models.analysis import AnalysisRecord, IngestionResponse
from snapmeal_api.models.image_asset import ImageAsset, ImageSize, QuotaStatus
from snapmeal_api.services.image_store import DerivativeStore
from snapmeal_api.services.inference import AnalysisOutcome, InferenceOrchestrator, ProviderRegistry
from snapmeal_api.services.records import AnalysisRecordWriter
from snapmeal_api.services.validation import decode_data_uri, validate_image

logger = logging.getLogger(__name__)


def image_url(locator: str) -> str:
    """Public URL of a stored variant (served by the images route)."""
    return f"/images/{locator}"


@dataclass
class IngestionResult:
    """Everything produced by one ingestion."""

    asset: ImageAsset
    outcome: AnalysisOutcome
    record: AnalysisRecord
    created: bool
    quota: QuotaStatus

    @property
    def image_locator(self) -> str:
        """Optimized variant, or the original when it could not be generated."""
        return self.asset.locator_for(ImageSize.OPTIMIZED) or self.asset.locator_for(
            ImageSize.ORIGINAL
        )

    @property
    def thumbnail_locator(self) -> str | None:
        return self.asset.locator_for(ImageSize.THUMBNAIL)

    def to_response(self) -> IngestionResponse:
        thumbnail = self.thumbnail_locator
        return IngestionResponse(
            result=self.outcome.result,
            image_url=image_url(self.image_locator),
            thumbnail_url=image_url(thumbnail) if thumbnail else None,
            content_hash=self.asset.content_hash,
            asset_id=self.asset.id,
            cached=self.outcome.cached,
            created=self.created,
            provider=self.outcome.provider_kind,
            model=self.outcome.model_name,
            quota=self.quota,
        )


class IngestionService:
    """
    Composes validation, storage, inference and record keeping.

    Storage and inference run concurrently. The cache is only populated once
    the original blob is confirmed stored, so a storage failure never leaves
    a cached result behind.
    """

    def __init__(
        self,
        store: DerivativeStore,
        orchestrator: InferenceOrchestrator,
        registry: ProviderRegistry,
        records: AnalysisRecordWriter,
        settings: Settings,
    ):
        self._store = store
        self._orchestrator = orchestrator
        self._registry = registry
        self._records = records
        self._settings = settings

    async def ingest(self, data: bytes, claimed_mime: str | None, owner_id: str) -> IngestionResult:
        """
        Ingest one photo and return its nutrition analysis.

        Raises:
            ValidationError: Bad size, type or signature (nothing is stored)
            ProviderNotConfiguredError: No usable provider (nothing is stored)
            ProviderCallError, ProviderResponseError: Inference failed
            StorageError: The original could not be stored
        """
        image = validate_image(
            data,
            claimed_mime,
            max_bytes=self._settings.max_upload_bytes,
            allowed_mime_types=self._settings.allowed_mime_types,
            max_pixels=self._settings.max_image_pixels,
        )
        snapshot = await self._registry.get_active_snapshot()

        logger.info(
            f"Ingesting {image.size_bytes} byte {image.mime_type} "
            f"({image.content_hash[:12]}) for owner {owner_id}"
        )

        store_task = asyncio.create_task(
            self._store.store(
                image.data, image.mime_type, owner_id, content_hash=image.content_hash
            )
        )
        try:
            outcome = await self._orchestrator.analyze(
                image.data,
                image.mime_type,
                image.content_hash,
                snapshot=snapshot,
                populate_cache=False,
            )
        except Exception:
            # Let the store settle so its outcome is not lost, then surface the inference error
            await asyncio.gather(store_task, return_exceptions=True)
            raise

        stored = await store_task
        self._orchestrator.populate(outcome)
        record = await self._records.write(stored.asset, outcome, owner_id)

        return IngestionResult(
            asset=stored.asset,
            outcome=outcome,
            record=record,
            created=stored.created,
            quota=stored.quota,
        )

    async def ingest_data_uri(self, value: str, owner_id: str) -> IngestionResult:
        """Decode a base64 data URI and ingest the bytes."""
        data, mime_type = decode_data_uri(value)
        return await self.ingest(data, mime_type, owner_id)
