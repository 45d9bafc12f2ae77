"""MongoDB GridFS blob backend.

Each variant is a GridFS file named by its locator (``{variant}/{filename}``),
so content-addressed names map one-to-one onto GridFS filenames.
"""

import asyncio
import logging
from datetime import UTC, datetime

from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket
from pymongo.errors import PyMongoError

from snapmeal_api.core.exceptions import StorageError
from snapmeal_api.models.image_asset import ImageSize, StorageBackendKind

from .base import BlobBackend, BlobNotFoundError, make_locator

logger = logging.getLogger(__name__)

GRIDFS_BUCKET_NAME = "image_blobs_fs"


class GridFSBlobBackend(BlobBackend):
    """
    Stores image variants in a GridFS bucket.

    Usage:
        backend = GridFSBlobBackend(db)
        locator = await backend.write(ImageSize.ORIGINAL, "ab12.jpg", data, "image/jpeg")
        data = await backend.read(locator)
        await backend.delete(locator)
    """

    kind = StorageBackendKind.REMOTE

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        bucket_name: str = GRIDFS_BUCKET_NAME,
        timeout: float = 10.0,
    ):
        """
        Initialize GridFS backend.

        Args:
            db: Motor database instance
            bucket_name: Name of the GridFS bucket
            timeout: Seconds allowed for one write, old revisions included
        """
        self._db = db
        self._bucket_name = bucket_name
        self.timeout = timeout
        self._bucket: AsyncIOMotorGridFSBucket | None = None

    @property
    def name(self) -> str:
        return f"gridfs:{self._bucket_name}"

    @property
    def bucket(self) -> AsyncIOMotorGridFSBucket:
        """Get or create the GridFS bucket (lazy initialization)."""
        if self._bucket is None:
            self._bucket = AsyncIOMotorGridFSBucket(
                self._db,
                bucket_name=self._bucket_name,
            )
        return self._bucket

    @property
    def _files(self):
        return self._db[f"{self._bucket_name}.files"]

    async def write(
        self, variant: ImageSize, filename: str, data: bytes, mime_type: str
    ) -> str:
        """
        Upload a variant, then drop older revisions stored under the same name.

        Raises:
            StorageError: If upload fails
        """
        locator = make_locator(variant, filename)
        try:
            await asyncio.wait_for(
                self._upload(locator, variant, data, mime_type), timeout=self.timeout
            )
        except TimeoutError as e:
            logger.error(f"GridFS upload timed out for {locator} after {self.timeout}s")
            raise StorageError(
                f"Timed out writing {locator}",
                details={"locator": locator, "timeout": self.timeout},
            ) from e
        except PyMongoError as e:
            logger.error(f"GridFS upload failed for {locator}: {e}")
            raise StorageError(
                f"Failed to upload {locator}",
                details={"locator": locator, "size": len(data)},
            ) from e

        logger.info(f"Uploaded {locator}: {len(data)} bytes -> {self.name}")
        return locator

    async def _upload(
        self, locator: str, variant: ImageSize, data: bytes, mime_type: str
    ) -> None:
        file_id = await self.bucket.upload_from_stream(
            locator,
            data,
            metadata={
                "variant": variant.value,
                "content_type": mime_type,
                "uploaded_at": datetime.now(UTC),
            },
        )
        async for doc in self._files.find(
            {"filename": locator, "_id": {"$ne": file_id}}, {"_id": 1}
        ):
            await self.bucket.delete(doc["_id"])

    async def read(self, locator: str) -> bytes:
        try:
            grid_out = await self.bucket.open_download_stream_by_name(locator)
            return await grid_out.read()
        except NoFile as e:
            raise BlobNotFoundError(locator) from e
        except PyMongoError as e:
            logger.error(f"GridFS download failed for {locator}: {e}")
            raise StorageError(f"Failed to download {locator}", details={"locator": locator}) from e

    async def delete(self, locator: str) -> bool:
        deleted = 0
        try:
            async for doc in self._files.find({"filename": locator}, {"_id": 1}):
                try:
                    await self.bucket.delete(doc["_id"])
                    deleted += 1
                except NoFile:
                    continue
        except PyMongoError as e:
            raise StorageError(f"Failed to delete {locator}", details={"locator": locator}) from e

        if deleted:
            logger.info(f"Deleted GridFS file {locator}")
        return deleted > 0

    async def exists(self, locator: str) -> bool:
        try:
            return await self._files.count_documents({"filename": locator}, limit=1) > 0
        except PyMongoError as e:
            raise StorageError(f"Failed to look up {locator}", details={"locator": locator}) from e

    async def ensure_indexes(self) -> None:
        """Index GridFS files by name. Called during startup."""
        await self._files.create_index(
            [("filename", 1), ("uploadDate", -1)],
            name="filename_upload_idx",
        )
        logger.info(f"GridFS indexes ensured for bucket {self._bucket_name}")

    async def health_check(self) -> bool:
        try:
            await self._db.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"GridFS health check failed: {e}")
            return False
