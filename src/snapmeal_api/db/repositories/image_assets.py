"""Repository for stored image assets."""

from datetime import UTC, datetime

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from snapmeal_api.models.image_asset import ImageAsset, ImageSize, StorageStats

from .base import BaseRepository


class ImageAssetRepository(BaseRepository[ImageAsset]):
    """
    Repository for image assets.

    Assets are content addressed: the unique index on ``content_hash`` is what
    makes concurrent ingestion of the same bytes converge on one record.
    """

    model_class = ImageAsset

    async def ensure_indexes(self) -> None:
        """Create indexes. Called during application startup."""
        await self.collection.create_index(
            "content_hash",
            unique=True,
            name="content_hash_unique_idx",
        )
        await self.collection.create_index("created_at", name="created_at_idx")
        await self.collection.create_index("owner_id", name="owner_idx")

    async def find_by_hash(self, content_hash: str) -> ImageAsset | None:
        """Find an asset by its SHA-256 content hash (deleted or not)."""
        return await self.find_one({"content_hash": content_hash})

    async def insert_if_absent(self, asset: ImageAsset) -> tuple[ImageAsset, bool]:
        """
        Insert the asset unless one with the same hash already exists.

        Returns:
            (stored asset, created) where stored asset is the existing record
            when another writer won the race
        """
        try:
            await self.collection.insert_one(self._to_document(asset))
            return asset, True
        except DuplicateKeyError:
            existing = await self.find_by_hash(asset.content_hash)
            if existing is None:
                raise
            return existing, False

    async def set_deleted(self, asset_id: str, deleted: bool) -> ImageAsset | None:
        """Set or clear the soft-delete markers; returns the updated asset."""
        doc = await self.collection.find_one_and_update(
            {"_id": asset_id},
            {
                "$set": {
                    "is_deleted": deleted,
                    "deleted_at": datetime.now(UTC) if deleted else None,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        return self._to_model(doc)

    async def find_created_before(
        self, cutoff: datetime, limit: int = 500
    ) -> list[ImageAsset]:
        """Oldest-first assets ingested before ``cutoff``."""
        return await self.find_many(
            {"created_at": {"$lt": cutoff}},
            sort=[("created_at", 1)],
            limit=limit,
        )

    async def storage_stats(self) -> StorageStats:
        """Aggregate asset count and byte totals per variant."""
        group: dict = {"_id": None, "total_images": {"$sum": 1}}
        for size in ImageSize:
            group[size.value] = {"$sum": f"$derivatives.{size.value}.size_bytes"}

        results = await self.aggregate([{"$group": group}], limit=1)
        if not results:
            return StorageStats()

        row = results[0]
        bytes_by_size = {size: int(row.get(size.value) or 0) for size in ImageSize}
        return StorageStats(
            total_images=row["total_images"],
            total_bytes=sum(bytes_by_size.values()),
            bytes_by_size=bytes_by_size,
        )
