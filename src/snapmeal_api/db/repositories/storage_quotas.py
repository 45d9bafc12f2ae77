"""Repository for per-owner storage accounting."""

from pymongo import ReturnDocument

from snapmeal_api.models.image_asset import StorageQuota

from .base import BaseRepository


class StorageQuotaRepository(BaseRepository[StorageQuota]):
    """Usage counters keyed by owner."""

    model_class = StorageQuota

    async def ensure_indexes(self) -> None:
        """Create indexes. Called during application startup."""
        await self.collection.create_index("owner_id", unique=True, name="owner_unique_idx")

    async def get(self, owner_id: str) -> StorageQuota | None:
        return await self.find_one({"owner_id": owner_id})

    async def add_usage(
        self,
        owner_id: str,
        bytes_delta: int,
        count_delta: int,
        default_quota_bytes: int,
    ) -> StorageQuota:
        """
        Atomically adjust an owner's counters, creating the row on first use.

        Negative deltas are used when the retention sweep removes assets.
        """
        doc = await self.collection.find_one_and_update(
            {"owner_id": owner_id},
            {
                "$inc": {"used_bytes": bytes_delta, "image_count": count_delta},
                "$setOnInsert": {"quota_bytes": default_quota_bytes},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return self._to_model(doc)
