"""Content-addressed image storage: blob backends, transforms and the store."""

import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from snapmeal_api.core.config import Settings, StorageBackendSetting

from .base import BlobBackend, BlobNotFoundError, make_locator, parse_locator
from .gridfs_backend import GridFSBlobBackend
from .local import LocalBlobBackend
from .s3 import S3BlobBackend, build_s3_client
from .store import DerivativeStore, StoreResult
from .transforms import ImageTransform, ResizeToJpeg, TransformError, TransformedImage

logger = logging.getLogger(__name__)


def create_blob_backend(
    settings: Settings, db: AsyncIOMotorDatabase | None = None
) -> BlobBackend:
    """
    Build the blob backend selected by ``STORAGE_BACKEND``.

    Args:
        settings: Application settings
        db: Motor database, required for the GridFS backend

    Raises:
        ValueError: If the selected backend is missing its configuration
    """
    match settings.storage_backend:
        case StorageBackendSetting.LOCAL:
            backend = LocalBlobBackend(
                settings.storage_local_path,
                timeout=settings.storage_timeout_seconds,
            )
        case StorageBackendSetting.GRIDFS:
            if db is None:
                raise ValueError("GridFS storage requires a MongoDB database")
            backend = GridFSBlobBackend(
                db,
                bucket_name=settings.gridfs_bucket_name,
                timeout=settings.storage_timeout_seconds,
            )
        case StorageBackendSetting.S3:
            if not settings.is_s3_configured:
                raise ValueError("S3 storage requires S3_BUCKET")
            backend = S3BlobBackend(
                build_s3_client(settings),
                settings.s3_bucket,
                prefix=settings.s3_key_prefix,
                timeout=settings.storage_timeout_seconds,
            )

    logger.info(f"Using blob backend: {backend.name}")
    return backend


__all__ = [
    "BlobBackend",
    "BlobNotFoundError",
    "DerivativeStore",
    "GridFSBlobBackend",
    "ImageTransform",
    "LocalBlobBackend",
    "ResizeToJpeg",
    "S3BlobBackend",
    "StoreResult",
    "TransformError",
    "TransformedImage",
    "create_blob_backend",
    "make_locator",
    "parse_locator",
]
