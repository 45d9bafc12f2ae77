"""Content-addressed image store with derivative generation."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from snapmeal_api.core.config import Settings
from snapmeal_api.core.exceptions import NotFoundError, StorageError
from snapmeal_api.db.unit_of_work import UnitOfWork
from snapmeal_api.models.image_asset import (
    DerivativeInfo,
    ImageAsset,
    ImageSize,
    QuotaStatus,
    StorageQuota,
    StorageStats,
)
from snapmeal_api.services.validation import compute_content_hash, extension_for

from .base import BlobBackend, BlobNotFoundError
from .transforms import (
    ImageTransform,
    TransformError,
    optimized_transform,
    read_dimensions,
    thumbnail_transform,
)

logger = logging.getLogger(__name__)

CLEANUP_BATCH_SIZE = 500


@dataclass
class StoreResult:
    """Outcome of storing an upload."""

    asset: ImageAsset
    created: bool
    quota: QuotaStatus


class DerivativeStore:
    """
    Stores each distinct image exactly once and derives its variants.

    The original is written first; ``optimized`` and ``thumbnail`` are only
    generated after that write is confirmed, and the asset record is inserted
    last, so a resolvable asset always has its original blob. A failed
    variant is logged and left out of ``derivatives``.

    Usage:
        store = DerivativeStore(uow, LocalBlobBackend("./uploads"))
        result = await store.store(data, "image/jpeg", owner_id)
        if result.created:
            ...
    """

    def __init__(
        self,
        uow: UnitOfWork,
        backend: BlobBackend,
        transforms: dict[ImageSize, ImageTransform] | None = None,
        quota_bytes: int = 5 * 1024 * 1024 * 1024,
    ):
        self._uow = uow
        self._backend = backend
        self._transforms = (
            transforms
            if transforms is not None
            else {
                ImageSize.OPTIMIZED: optimized_transform(),
                ImageSize.THUMBNAIL: thumbnail_transform(),
            }
        )
        self._quota_bytes = quota_bytes
        self._hash_locks: dict[str, list] = {}

    @classmethod
    def from_settings(
        cls, uow: UnitOfWork, backend: BlobBackend, settings: Settings
    ) -> "DerivativeStore":
        return cls(
            uow,
            backend,
            transforms={
                ImageSize.OPTIMIZED: optimized_transform(
                    settings.optimized_max_width,
                    settings.optimized_max_height,
                    settings.optimized_quality,
                ),
                ImageSize.THUMBNAIL: thumbnail_transform(
                    settings.thumbnail_max_dimension,
                    settings.optimized_quality,
                ),
            },
            quota_bytes=settings.owner_quota_bytes,
        )

    @property
    def backend(self) -> BlobBackend:
        return self._backend

    @asynccontextmanager
    async def _hash_lock(self, content_hash: str) -> AsyncIterator[None]:
        """Serialize in-process ingestion of one hash; entries are dropped when idle."""
        entry = self._hash_locks.setdefault(content_hash, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._hash_locks.pop(content_hash, None)

    # =========================================================================
    # Writes
    # =========================================================================

    async def store(
        self,
        data: bytes,
        mime_type: str,
        owner_id: str,
        *,
        content_hash: str | None = None,
    ) -> StoreResult:
        """
        Store an image unless its content hash is already known.

        Args:
            data: Validated image bytes
            mime_type: Normalized mime type
            owner_id: Uploading account
            content_hash: Precomputed SHA-256 (computed here if omitted)

        Returns:
            StoreResult; ``created`` is False when the bytes were already stored

        Raises:
            StorageError: If the original blob could not be written
        """
        content_hash = content_hash or compute_content_hash(data)

        async with self._hash_lock(content_hash):
            existing = await self._uow.image_assets.find_by_hash(content_hash)
            if existing is not None:
                if existing.is_deleted:
                    logger.info(f"Restoring soft-deleted asset {existing.id}")
                    existing = await self._uow.image_assets.set_deleted(existing.id, False) or existing
                return StoreResult(
                    asset=existing,
                    created=False,
                    quota=await self.get_quota_status(owner_id),
                )

            filename = f"{content_hash}.{extension_for(mime_type)}"
            locator = await self._backend.write(ImageSize.ORIGINAL, filename, data, mime_type)
            dimensions = await asyncio.to_thread(read_dimensions, data)
            width, height = dimensions or (None, None)

            derivatives = {
                ImageSize.ORIGINAL: DerivativeInfo(
                    locator=locator,
                    size_bytes=len(data),
                    mime_type=mime_type,
                    width=width,
                    height=height,
                )
            }
            for size, transform in self._transforms.items():
                info = await self._generate_variant(size, transform, data, mime_type, content_hash)
                if info is not None:
                    derivatives[size] = info

            asset = ImageAsset(
                id=uuid.uuid4().hex,
                owner_id=owner_id,
                content_hash=content_hash,
                mime_type=mime_type,
                original_size_bytes=len(data),
                width=width,
                height=height,
                derivatives=derivatives,
                storage_backend=self._backend.kind,
                created_at=datetime.now(UTC),
            )
            stored, created = await self._uow.image_assets.insert_if_absent(asset)

        if not created:
            return StoreResult(
                asset=stored,
                created=False,
                quota=await self.get_quota_status(owner_id),
            )

        quota = await self._uow.storage_quotas.add_usage(
            owner_id, stored.total_bytes, 1, self._quota_bytes
        )
        status = self._to_status(quota)
        if status.exceeded:
            logger.warning(
                f"Owner {owner_id} exceeds storage quota: "
                f"{status.used_bytes}/{status.quota_bytes} bytes"
            )
        logger.info(
            f"Stored image {stored.id} ({content_hash[:12]}) with "
            f"{len(stored.derivatives)} variants on {self._backend.name}"
        )
        return StoreResult(asset=stored, created=True, quota=status)

    async def _generate_variant(
        self,
        size: ImageSize,
        transform: ImageTransform,
        data: bytes,
        mime_type: str,
        content_hash: str,
    ) -> DerivativeInfo | None:
        try:
            output = await asyncio.to_thread(transform.apply, data, mime_type)
            filename = f"{content_hash}.{extension_for(output.mime_type)}"
            locator = await self._backend.write(size, filename, output.data, output.mime_type)
        except (TransformError, StorageError) as e:
            logger.warning(f"Skipping {size.value} variant of {content_hash[:12]}: {e}")
            return None

        return DerivativeInfo(
            locator=locator,
            size_bytes=len(output.data),
            mime_type=output.mime_type,
            width=output.width,
            height=output.height,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_asset(self, asset_id: str) -> ImageAsset:
        asset = await self._uow.image_assets.find_by_id(asset_id)
        if asset is None:
            raise NotFoundError("Image", asset_id)
        return asset

    async def read(self, locator: str) -> bytes:
        """
        Read a stored variant by locator.

        Raises:
            NotFoundError: Nothing stored under the locator
            StorageError: Backend failure
        """
        try:
            return await self._backend.read(locator)
        except BlobNotFoundError as e:
            raise NotFoundError("Image", locator) from e

    async def read_variant(self, asset: ImageAsset, size: ImageSize) -> bytes:
        locator = asset.locator_for(size)
        if locator is None:
            raise NotFoundError("Image variant", f"{asset.id}/{size.value}")
        return await self.read(locator)

    async def get_quota_status(self, owner_id: str) -> QuotaStatus:
        quota = await self._uow.storage_quotas.get(owner_id)
        if quota is None:
            return QuotaStatus(used_bytes=0, quota_bytes=self._quota_bytes, exceeded=False)
        return self._to_status(quota)

    @staticmethod
    def _to_status(quota: StorageQuota) -> QuotaStatus:
        return QuotaStatus(
            used_bytes=quota.used_bytes,
            quota_bytes=quota.quota_bytes,
            exceeded=quota.used_bytes > quota.quota_bytes,
        )

    async def get_storage_stats(self) -> StorageStats:
        return await self._uow.image_assets.storage_stats()

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete_blobs(self, asset: ImageAsset) -> int:
        """
        Remove every variant blob of an asset.

        Missing blobs are logged and skipped, so the call is idempotent.

        Returns:
            Number of blobs actually removed
        """
        removed = 0
        for size, info in asset.derivatives.items():
            if await self._backend.delete(info.locator):
                removed += 1
            else:
                logger.warning(f"{size.value} blob of asset {asset.id} already missing")
        return removed

    async def soft_delete(self, asset_id: str, owner_id: str | None = None) -> ImageAsset:
        """
        Mark an asset deleted without touching its blobs.

        Raises:
            NotFoundError: Unknown asset, or owned by someone else
        """
        asset = await self._uow.image_assets.find_by_id(asset_id)
        if asset is None or (owner_id is not None and asset.owner_id != owner_id):
            raise NotFoundError("Image", asset_id)
        updated = await self._uow.image_assets.set_deleted(asset_id, True)
        logger.info(f"Soft-deleted image {asset_id}")
        return updated or asset

    async def cleanup_expired(self, older_than_days: int = 30) -> int:
        """
        Hard-delete assets ingested more than ``older_than_days`` ago.

        Blobs are removed before the record. An asset whose blobs cannot be
        removed keeps its record and is retried on the next sweep.

        Returns:
            Number of assets removed
        """
        cutoff = datetime.now(UTC) - timedelta(days=older_than_days)
        removed = 0

        while True:
            batch = await self._uow.image_assets.find_created_before(cutoff, limit=CLEANUP_BATCH_SIZE)
            removed_in_batch = 0
            for asset in batch:
                try:
                    await self.delete_blobs(asset)
                except StorageError as e:
                    logger.error(f"Retention sweep could not remove blobs of {asset.id}: {e}")
                    continue
                if await self._uow.image_assets.delete_one(asset.id):
                    await self._uow.storage_quotas.add_usage(
                        asset.owner_id, -asset.total_bytes, -1, self._quota_bytes
                    )
                    removed_in_batch += 1

            removed += removed_in_batch
            if len(batch) < CLEANUP_BATCH_SIZE or removed_in_batch == 0:
                break

        if removed:
            logger.info(f"Retention sweep removed {removed} images older than {older_than_days} days")
        return removed

    async def health_check(self) -> bool:
        return await self._backend.health_check()
