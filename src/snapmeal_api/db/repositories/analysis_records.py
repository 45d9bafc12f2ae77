"""Repository for analysis records (one per image hash and owner)."""

from datetime import UTC, datetime

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from snapmeal_api.models.analysis import AnalysisRecord

from .base import BaseRepository


class AnalysisRecordRepository(BaseRepository[AnalysisRecord]):
    """Repository for the persisted association of an analysis with its owner."""

    model_class = AnalysisRecord

    async def ensure_indexes(self) -> None:
        """Create indexes. Called during application startup."""
        await self.collection.create_index(
            [("content_hash", 1), ("owner_id", 1)],
            unique=True,
            name="hash_owner_unique_idx",
        )
        await self.collection.create_index(
            [("owner_id", 1), ("updated_at", -1)],
            name="owner_recent_idx",
        )

    async def upsert(self, record: AnalysisRecord) -> AnalysisRecord:
        """
        Insert or replace the record for ``(content_hash, owner_id)``.

        The first write keeps its ``id`` and ``created_at``; later writes
        replace the result and bump ``updated_at``.
        """
        document = self._to_document(record)
        record_id = document.pop("_id")
        created_at = document.pop("created_at")
        document["updated_at"] = datetime.now(UTC)

        update = {
            "$set": document,
            "$setOnInsert": {"_id": record_id, "created_at": created_at},
        }
        query = {"content_hash": record.content_hash, "owner_id": record.owner_id}
        try:
            doc = await self.collection.find_one_and_update(
                query, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Lost an upsert race; the document exists now so this is a plain update
            doc = await self.collection.find_one_and_update(
                query,
                {"$set": document},
                return_document=ReturnDocument.AFTER,
            )
        return self._to_model(doc)

    async def find_for_pair(self, content_hash: str, owner_id: str) -> AnalysisRecord | None:
        return await self.find_one({"content_hash": content_hash, "owner_id": owner_id})

    async def find_for_owner(
        self, owner_id: str, limit: int = 50, skip: int = 0
    ) -> list[AnalysisRecord]:
        """Most recently analyzed first."""
        return await self.find_many(
            {"owner_id": owner_id},
            sort=[("updated_at", -1)],
            limit=limit,
            skip=skip,
        )
