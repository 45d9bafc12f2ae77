"""
In-memory repository implementations.

Mirror the Mongo repositories method for method so the service layer can run
without a database (tests, local development with REPOSITORY_BACKEND=memory).
Models are copied on the way in and out so callers never share state with the
store. Data is lost on restart.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

from snapmeal_api.models.analysis import AnalysisRecord
from snapmeal_api.models.image_asset import ImageAsset, ImageSize, StorageQuota, StorageStats
from snapmeal_api.models.provider_config import ProviderConfig


class InMemoryImageAssetRepository:
    """Dictionary-backed image assets, unique by content hash."""

    def __init__(self) -> None:
        self._storage: dict[str, ImageAsset] = {}
        self._lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:
        return None

    async def find_by_id(self, asset_id: str) -> ImageAsset | None:
        asset = self._storage.get(asset_id)
        return asset.model_copy(deep=True) if asset else None

    async def find_by_hash(self, content_hash: str) -> ImageAsset | None:
        for asset in self._storage.values():
            if asset.content_hash == content_hash:
                return asset.model_copy(deep=True)
        return None

    async def insert_if_absent(self, asset: ImageAsset) -> tuple[ImageAsset, bool]:
        async with self._lock:
            existing = await self.find_by_hash(asset.content_hash)
            if existing is not None:
                return existing, False
            self._storage[asset.id] = asset.model_copy(deep=True)
            return asset, True

    async def set_deleted(self, asset_id: str, deleted: bool) -> ImageAsset | None:
        asset = self._storage.get(asset_id)
        if asset is None:
            return None
        updated = asset.model_copy(
            update={
                "is_deleted": deleted,
                "deleted_at": datetime.now(UTC) if deleted else None,
            }
        )
        self._storage[asset_id] = updated
        return updated.model_copy(deep=True)

    async def find_created_before(
        self, cutoff: datetime, limit: int = 500
    ) -> list[ImageAsset]:
        matches = sorted(
            (a for a in self._storage.values() if a.created_at < cutoff),
            key=lambda a: a.created_at,
        )
        return [a.model_copy(deep=True) for a in matches[:limit]]

    async def delete_one(self, asset_id: str) -> bool:
        return self._storage.pop(asset_id, None) is not None

    async def count(self, filter: dict[str, Any] | None = None) -> int:
        return len(self._storage)

    async def storage_stats(self) -> StorageStats:
        bytes_by_size = {size: 0 for size in ImageSize}
        for asset in self._storage.values():
            for size, info in asset.derivatives.items():
                bytes_by_size[size] += info.size_bytes
        return StorageStats(
            total_images=len(self._storage),
            total_bytes=sum(bytes_by_size.values()),
            bytes_by_size=bytes_by_size,
        )


class InMemoryProviderConfigRepository:
    """Dictionary-backed provider configs."""

    def __init__(self) -> None:
        self._storage: dict[str, ProviderConfig] = {}
        self._lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:
        return None

    async def list_all(self) -> list[ProviderConfig]:
        configs = sorted(
            self._storage.values(),
            key=lambda c: c.created_at or datetime.min.replace(tzinfo=UTC),
        )
        return [c.model_copy(deep=True) for c in configs]

    async def find_by_id(self, config_id: str) -> ProviderConfig | None:
        config = self._storage.get(config_id)
        return config.model_copy(deep=True) if config else None

    async def get_active(self) -> ProviderConfig | None:
        for config in self._storage.values():
            if config.is_active:
                return config.model_copy(deep=True)
        return None

    async def insert(self, config: ProviderConfig) -> ProviderConfig:
        if config.created_at is None:
            config = config.model_copy(update={"created_at": datetime.now(UTC)})
        self._storage[config.id] = config.model_copy(deep=True)
        return config

    async def update(self, config_id: str, changes: dict[str, Any]) -> ProviderConfig | None:
        async with self._lock:
            config = self._storage.get(config_id)
            if config is None:
                return None
            updated = config.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
            self._storage[config_id] = updated
            return updated.model_copy(deep=True)

    async def activate(self, config_id: str) -> bool:
        async with self._lock:
            if config_id not in self._storage:
                return False
            now = datetime.now(UTC)
            for key, config in self._storage.items():
                is_target = key == config_id
                changes: dict[str, Any] = {"is_active": is_target}
                if is_target:
                    changes["updated_at"] = now
                self._storage[key] = config.model_copy(update=changes)
            return True


class InMemoryAnalysisRecordRepository:
    """Dictionary-backed analysis records keyed by (content_hash, owner_id)."""

    def __init__(self) -> None:
        self._storage: dict[tuple[str, str], AnalysisRecord] = {}

    async def ensure_indexes(self) -> None:
        return None

    async def upsert(self, record: AnalysisRecord) -> AnalysisRecord:
        key = (record.content_hash, record.owner_id)
        existing = self._storage.get(key)
        changes: dict[str, Any] = {"updated_at": datetime.now(UTC)}
        if existing is not None:
            changes["id"] = existing.id
            changes["created_at"] = existing.created_at
        stored = record.model_copy(update=changes, deep=True)
        self._storage[key] = stored
        return stored.model_copy(deep=True)

    async def find_for_pair(self, content_hash: str, owner_id: str) -> AnalysisRecord | None:
        record = self._storage.get((content_hash, owner_id))
        return record.model_copy(deep=True) if record else None

    async def find_for_owner(
        self, owner_id: str, limit: int = 50, skip: int = 0
    ) -> list[AnalysisRecord]:
        records = sorted(
            (r for r in self._storage.values() if r.owner_id == owner_id),
            key=lambda r: r.updated_at or r.created_at,
            reverse=True,
        )
        return [r.model_copy(deep=True) for r in records[skip : skip + limit]]


class InMemoryStorageQuotaRepository:
    """Dictionary-backed per-owner usage counters."""

    def __init__(self) -> None:
        self._storage: dict[str, StorageQuota] = {}

    async def ensure_indexes(self) -> None:
        return None

    async def get(self, owner_id: str) -> StorageQuota | None:
        quota = self._storage.get(owner_id)
        return quota.model_copy() if quota else None

    async def add_usage(
        self,
        owner_id: str,
        bytes_delta: int,
        count_delta: int,
        default_quota_bytes: int,
    ) -> StorageQuota:
        quota = self._storage.get(owner_id) or StorageQuota(
            owner_id=owner_id, quota_bytes=default_quota_bytes
        )
        quota = quota.model_copy(
            update={
                "used_bytes": quota.used_bytes + bytes_delta,
                "image_count": quota.image_count + count_delta,
            }
        )
        self._storage[owner_id] = quota
        return quota.model_copy()
