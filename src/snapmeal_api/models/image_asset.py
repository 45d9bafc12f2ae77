"""Pydantic models for stored images and their derivatives."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .nutrition import CamelModel


class ImageSize(str, Enum):
    """Variant of a stored image."""

    ORIGINAL = "original"
    OPTIMIZED = "optimized"
    THUMBNAIL = "thumbnail"


class StorageBackendKind(str, Enum):
    """Where the blobs of an asset live."""

    LOCAL = "local"
    REMOTE = "remote"


class DerivativeInfo(BaseModel):
    """Locator and metadata for one stored variant."""

    locator: str = Field(..., description="Opaque '{variant}/{filename}' locator")
    size_bytes: int = Field(..., ge=0)
    mime_type: str
    width: int | None = None
    height: int | None = None


class ImageAsset(BaseModel):
    """A stored photo and its derivatives, addressed by content hash."""

    id: str
    owner_id: str
    content_hash: str = Field(..., min_length=64, max_length=64)
    mime_type: str
    original_size_bytes: int = Field(..., ge=0)
    width: int | None = None
    height: int | None = None
    derivatives: dict[ImageSize, DerivativeInfo] = Field(default_factory=dict)
    storage_backend: StorageBackendKind = StorageBackendKind.LOCAL
    is_deleted: bool = False
    deleted_at: datetime | None = None
    created_at: datetime

    def locator_for(self, size: ImageSize) -> str | None:
        """Locator of a variant, or None if it was never generated."""
        derivative = self.derivatives.get(size)
        return derivative.locator if derivative else None

    @property
    def total_bytes(self) -> int:
        """Bytes used by all stored variants."""
        return sum(d.size_bytes for d in self.derivatives.values())


class StorageQuota(BaseModel):
    """Per-owner storage accounting."""

    owner_id: str
    used_bytes: int = 0
    image_count: int = 0
    quota_bytes: int


class QuotaStatus(CamelModel):
    """Quota position reported back after a store."""

    used_bytes: int
    quota_bytes: int
    exceeded: bool


class StorageStats(BaseModel):
    """Aggregate storage usage."""

    total_images: int = 0
    total_bytes: int = 0
    bytes_by_size: dict[ImageSize, int] = Field(default_factory=dict)
