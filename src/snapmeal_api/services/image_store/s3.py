"""S3-compatible object storage backend using boto3."""

import asyncio
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from snapmeal_api.core.config import Settings
from snapmeal_api.core.exceptions import StorageError
from snapmeal_api.models.image_asset import ImageSize, StorageBackendKind

from .base import BlobBackend, BlobNotFoundError, make_locator

logger = logging.getLogger(__name__)

MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


def build_s3_client(settings: Settings):
    """Create a boto3 S3 client from settings; credentials fall back to the AWS chain."""
    kwargs: dict[str, Any] = {"service_name": "s3"}
    if settings.s3_region:
        kwargs["region_name"] = settings.s3_region
    if settings.s3_endpoint_url:
        kwargs["endpoint_url"] = settings.s3_endpoint_url
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs.update(
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
    return boto3.client(**kwargs)


class S3BlobBackend(BlobBackend):
    """
    Stores variants as objects under ``{prefix}{variant}/{filename}``.

    boto3 is synchronous, so every call runs in a worker thread.
    """

    kind = StorageBackendKind.REMOTE

    def __init__(self, client, bucket: str, prefix: str = "", timeout: float = 10.0):
        self._client = client
        self._bucket = bucket
        self._prefix = prefix
        self.timeout = timeout

    @property
    def name(self) -> str:
        return f"s3:{self._bucket}"

    def _key(self, locator: str) -> str:
        return f"{self._prefix}{locator}"

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        return exc.response.get("Error", {}).get("Code") in MISSING_KEY_CODES

    async def write(
        self, variant: ImageSize, filename: str, data: bytes, mime_type: str
    ) -> str:
        locator = make_locator(variant, filename)
        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    self._client.put_object,
                    Bucket=self._bucket,
                    Key=self._key(locator),
                    Body=data,
                    ContentType=mime_type,
                ),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise StorageError(
                f"Timed out uploading {locator}",
                details={"locator": locator, "timeout": self.timeout},
            ) from e
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload failed for {locator}: {e}")
            raise StorageError(
                f"Failed to upload {locator}", details={"locator": locator}
            ) from e

        logger.info(f"Uploaded {locator}: {len(data)} bytes -> {self.name}")
        return locator

    def _read_sync(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self._bucket, Key=key)
        return response["Body"].read()

    async def read(self, locator: str) -> bytes:
        try:
            return await asyncio.to_thread(self._read_sync, self._key(locator))
        except ClientError as e:
            if self._is_missing(e):
                raise BlobNotFoundError(locator) from e
            raise StorageError(f"Failed to download {locator}", details={"locator": locator}) from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to download {locator}", details={"locator": locator}) from e

    async def exists(self, locator: str) -> bool:
        try:
            await asyncio.to_thread(
                self._client.head_object, Bucket=self._bucket, Key=self._key(locator)
            )
            return True
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise StorageError(f"Failed to stat {locator}", details={"locator": locator}) from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to stat {locator}", details={"locator": locator}) from e

    async def delete(self, locator: str) -> bool:
        # delete_object succeeds for missing keys, so check first to report it
        if not await self.exists(locator):
            return False
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self._bucket, Key=self._key(locator)
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {locator}", details={"locator": locator}) from e
        return True

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self._bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"S3 health check failed: {e}")
            return False
