"""Persists the association between an analysis result, its image and its owner."""

import logging
import uuid
from datetime import UTC, datetime

from snapmeal_api.db.unit_of_work import UnitOfWork
from snapmeal_api.models.analysis import AnalysisRecord
from snapmeal_api.models.image_asset import ImageAsset
from snapmeal_api.services.inference.orchestrator import AnalysisOutcome

logger = logging.getLogger(__name__)


class AnalysisRecordWriter:
    """Upserts one record per (content hash, owner)."""

    def __init__(self, uow: UnitOfWork):
        self._uow = uow

    async def write(
        self, asset: ImageAsset, outcome: AnalysisOutcome, owner_id: str
    ) -> AnalysisRecord:
        now = datetime.now(UTC)
        record = AnalysisRecord(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            asset_id=asset.id,
            content_hash=asset.content_hash,
            result=outcome.result,
            provider_kind=outcome.provider_kind,
            model_name=outcome.model_name,
            cached=outcome.cached,
            created_at=now,
            updated_at=now,
        )
        stored = await self._uow.analysis_records.upsert(record)
        logger.info(f"Recorded analysis {stored.id} for owner {owner_id} ({asset.content_hash[:12]})")
        return stored

    async def list_for_owner(
        self, owner_id: str, limit: int = 50, skip: int = 0
    ) -> list[AnalysisRecord]:
        return await self._uow.analysis_records.find_for_owner(owner_id, limit=limit, skip=skip)
