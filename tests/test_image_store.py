"""Tests for the content-addressed derivative store."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from snapmeal_api.core.exceptions import NotFoundError, StorageError
from snapmeal_api.models.image_asset import ImageSize
from snapmeal_api.services.image_store import DerivativeStore, TransformError
from snapmeal_api.services.validation import compute_content_hash
from tests.factories import make_huge_png, make_jpeg


class TestStore:
    """Tests for DerivativeStore.store."""

    @pytest.mark.asyncio
    async def test_stores_original_and_derivatives(self, store, backend, jpeg_bytes):
        """A new image gets original, optimized and thumbnail variants."""
        result = await store.store(jpeg_bytes, "image/jpeg", "owner-1")

        content_hash = compute_content_hash(jpeg_bytes)
        asset = result.asset
        assert result.created is True
        assert asset.content_hash == content_hash
        assert set(asset.derivatives) == {ImageSize.ORIGINAL, ImageSize.OPTIMIZED, ImageSize.THUMBNAIL}
        assert asset.locator_for(ImageSize.ORIGINAL) == f"original/{content_hash}.jpg"
        assert (asset.width, asset.height) == (640, 480)
        for info in asset.derivatives.values():
            assert await backend.exists(info.locator)

        assert await store.read(asset.locator_for(ImageSize.ORIGINAL)) == jpeg_bytes

    @pytest.mark.asyncio
    async def test_derivatives_fit_their_bounds(self, store):
        data = make_jpeg(2400, 1600)

        asset = (await store.store(data, "image/jpeg", "owner-1")).asset

        optimized = asset.derivatives[ImageSize.OPTIMIZED]
        thumbnail = asset.derivatives[ImageSize.THUMBNAIL]
        assert optimized.width <= 1920 and optimized.height <= 1080
        assert max(thumbnail.width, thumbnail.height) <= 300

    @pytest.mark.asyncio
    async def test_png_derivatives_are_jpeg(self, store, png_bytes):
        asset = (await store.store(png_bytes, "image/png", "owner-1")).asset

        assert asset.mime_type == "image/png"
        assert asset.derivatives[ImageSize.ORIGINAL].locator.endswith(".png")
        assert asset.derivatives[ImageSize.THUMBNAIL].mime_type == "image/jpeg"
        assert asset.derivatives[ImageSize.THUMBNAIL].locator.endswith(".jpg")

    @pytest.mark.asyncio
    async def test_same_bytes_stored_once(self, store, uow, jpeg_bytes):
        """Re-submitting identical bytes returns the existing asset."""
        first = await store.store(jpeg_bytes, "image/jpeg", "owner-1")
        second = await store.store(jpeg_bytes, "image/jpeg", "owner-2")

        assert second.created is False
        assert second.asset.id == first.asset.id
        assert second.asset.owner_id == "owner-1"
        assert (await store.get_storage_stats()).total_images == 1

    @pytest.mark.asyncio
    async def test_concurrent_identical_uploads_create_one_asset(self, store, jpeg_bytes):
        results = await asyncio.gather(
            *(store.store(jpeg_bytes, "image/jpeg", "owner-1") for _ in range(5))
        )

        assert sum(r.created for r in results) == 1
        assert len({r.asset.id for r in results}) == 1

    @pytest.mark.asyncio
    async def test_failed_variant_is_skipped(self, uow, backend, jpeg_bytes):
        """A transform failure leaves the variant out but keeps the asset."""
        broken = MagicMock()
        broken.apply.side_effect = TransformError("corrupt")
        store = DerivativeStore(uow, backend, transforms={ImageSize.THUMBNAIL: broken})

        result = await store.store(jpeg_bytes, "image/jpeg", "owner-1")

        assert result.created is True
        assert set(result.asset.derivatives) == {ImageSize.ORIGINAL}

    @pytest.mark.asyncio
    async def test_decompression_bomb_keeps_original(self, store, backend):
        """An image Pillow refuses to decode is stored without derivatives."""
        data = make_huge_png()

        result = await store.store(data, "image/png", "owner-1")

        asset = result.asset
        assert result.created is True
        assert set(asset.derivatives) == {ImageSize.ORIGINAL}
        assert (asset.width, asset.height) == (None, None)
        assert await backend.read(asset.locator_for(ImageSize.ORIGINAL)) == data

    @pytest.mark.asyncio
    async def test_original_write_failure_stores_nothing(self, store, backend, uow, jpeg_bytes):
        with patch.object(backend, "write", AsyncMock(side_effect=StorageError("disk full"))):
            with pytest.raises(StorageError):
                await store.store(jpeg_bytes, "image/jpeg", "owner-1")

        assert await uow.image_assets.find_by_hash(compute_content_hash(jpeg_bytes)) is None
        assert (await store.get_quota_status("owner-1")).used_bytes == 0


class TestQuota:
    """Per-owner storage accounting."""

    @pytest.mark.asyncio
    async def test_usage_charged_once(self, store, jpeg_bytes):
        first = await store.store(jpeg_bytes, "image/jpeg", "owner-1")
        await store.store(jpeg_bytes, "image/jpeg", "owner-1")

        quota = await store.get_quota_status("owner-1")
        assert quota.used_bytes == first.asset.total_bytes
        assert quota.exceeded is False

    @pytest.mark.asyncio
    async def test_exceeding_quota_still_stores(self, uow, backend, jpeg_bytes):
        """Quota overrun is reported, not enforced."""
        store = DerivativeStore(uow, backend, quota_bytes=10)

        result = await store.store(jpeg_bytes, "image/jpeg", "owner-1")

        assert result.created is True
        assert result.quota.exceeded is True
        assert result.quota.quota_bytes == 10

    @pytest.mark.asyncio
    async def test_unknown_owner_has_empty_quota(self, store):
        quota = await store.get_quota_status("nobody")
        assert quota.used_bytes == 0
        assert quota.exceeded is False


class TestReads:
    @pytest.mark.asyncio
    async def test_unknown_locator_is_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.read("original/" + "0" * 64 + ".jpg")

    @pytest.mark.asyncio
    async def test_traversal_locator_is_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.read("original/../../etc/passwd")

    @pytest.mark.asyncio
    async def test_read_variant(self, store, jpeg_bytes):
        asset = (await store.store(jpeg_bytes, "image/jpeg", "owner-1")).asset

        thumbnail = await store.read_variant(asset, ImageSize.THUMBNAIL)

        assert thumbnail.startswith(b"\xff\xd8\xff")

    @pytest.mark.asyncio
    async def test_storage_stats(self, store, jpeg_bytes, png_bytes):
        a = (await store.store(jpeg_bytes, "image/jpeg", "owner-1")).asset
        b = (await store.store(png_bytes, "image/png", "owner-1")).asset

        stats = await store.get_storage_stats()

        assert stats.total_images == 2
        assert stats.total_bytes == a.total_bytes + b.total_bytes
        assert stats.bytes_by_size[ImageSize.ORIGINAL] == len(jpeg_bytes) + len(png_bytes)


class TestDeletion:
    """Soft delete and the retention sweep."""

    @pytest.mark.asyncio
    async def test_soft_delete_keeps_blobs(self, store, backend, jpeg_bytes):
        asset = (await store.store(jpeg_bytes, "image/jpeg", "owner-1")).asset

        deleted = await store.soft_delete(asset.id, owner_id="owner-1")

        assert deleted.is_deleted is True
        assert deleted.deleted_at is not None
        assert await backend.exists(asset.locator_for(ImageSize.ORIGINAL))

    @pytest.mark.asyncio
    async def test_soft_delete_other_owner_is_not_found(self, store, jpeg_bytes):
        asset = (await store.store(jpeg_bytes, "image/jpeg", "owner-1")).asset

        with pytest.raises(NotFoundError):
            await store.soft_delete(asset.id, owner_id="owner-2")

    @pytest.mark.asyncio
    async def test_resubmission_restores_soft_deleted(self, store, jpeg_bytes):
        asset = (await store.store(jpeg_bytes, "image/jpeg", "owner-1")).asset
        await store.soft_delete(asset.id)

        result = await store.store(jpeg_bytes, "image/jpeg", "owner-1")

        assert result.created is False
        assert result.asset.id == asset.id
        assert result.asset.is_deleted is False

    @pytest.mark.asyncio
    async def test_cleanup_removes_expired_assets(self, store, backend, uow, jpeg_bytes):
        """Expired assets lose blobs, record and quota usage."""
        asset = (await store.store(jpeg_bytes, "image/jpeg", "owner-1")).asset

        removed = await store.cleanup_expired(older_than_days=-1)

        assert removed == 1
        assert await uow.image_assets.find_by_id(asset.id) is None
        for info in asset.derivatives.values():
            assert not await backend.exists(info.locator)
        quota = await store.get_quota_status("owner-1")
        assert quota.used_bytes == 0

    @pytest.mark.asyncio
    async def test_cleanup_keeps_recent_assets(self, store, jpeg_bytes):
        await store.store(jpeg_bytes, "image/jpeg", "owner-1")

        assert await store.cleanup_expired(older_than_days=30) == 0
        assert (await store.get_storage_stats()).total_images == 1

    @pytest.mark.asyncio
    async def test_cleanup_tolerates_missing_blob(self, store, backend, uow, jpeg_bytes):
        asset = (await store.store(jpeg_bytes, "image/jpeg", "owner-1")).asset
        await backend.delete(asset.locator_for(ImageSize.THUMBNAIL))

        assert await store.cleanup_expired(older_than_days=-1) == 1
        assert await uow.image_assets.find_by_id(asset.id) is None

    @pytest.mark.asyncio
    async def test_cleanup_skips_asset_when_storage_fails(self, store, backend, uow, jpeg_bytes):
        """The record survives so the next sweep can retry."""
        asset = (await store.store(jpeg_bytes, "image/jpeg", "owner-1")).asset

        with patch.object(backend, "delete", AsyncMock(side_effect=StorageError("unreachable"))):
            removed = await store.cleanup_expired(older_than_days=-1)

        assert removed == 0
        assert await uow.image_assets.find_by_id(asset.id) is not None
