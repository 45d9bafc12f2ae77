"""Filesystem blob backend: ``<root>/<variant>/<filename>``."""

import asyncio
import logging
import os
import uuid
from pathlib import Path

from snapmeal_api.core.exceptions import StorageError
from snapmeal_api.models.image_asset import ImageSize, StorageBackendKind

from .base import BlobBackend, BlobNotFoundError, make_locator, parse_locator

logger = logging.getLogger(__name__)


class LocalBlobBackend(BlobBackend):
    """
    Stores variants in a local directory tree.

    Writes go to a temporary file that is renamed into place, so a reader
    never sees a partially written image. File I/O runs in a worker thread.
    """

    kind = StorageBackendKind.LOCAL

    def __init__(self, root: str | Path, timeout: float = 10.0):
        self.root = Path(root)
        self.timeout = timeout
        for variant in ImageSize:
            (self.root / variant.value).mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "local"

    def _path(self, locator: str) -> Path:
        variant, filename = parse_locator(locator)
        return self.root / variant.value / filename

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp.write_bytes(data)
            os.replace(tmp, path)
        finally:
            tmp.unlink(missing_ok=True)

    async def write(
        self, variant: ImageSize, filename: str, data: bytes, mime_type: str
    ) -> str:
        locator = make_locator(variant, filename)
        try:
            path = self._path(locator)
            await asyncio.wait_for(
                asyncio.to_thread(self._write_atomic, path, data),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise StorageError(
                f"Timed out writing {locator}",
                details={"locator": locator, "timeout": self.timeout},
            ) from e
        except (OSError, ValueError) as e:
            logger.error(f"Local write failed for {locator}: {e}")
            raise StorageError(
                f"Failed to write {locator}", details={"locator": locator}
            ) from e

        logger.debug(f"Stored {locator} ({len(data)} bytes)")
        return locator

    async def read(self, locator: str) -> bytes:
        try:
            path = self._path(locator)
            return await asyncio.to_thread(path.read_bytes)
        except (FileNotFoundError, ValueError) as e:
            raise BlobNotFoundError(locator) from e
        except OSError as e:
            raise StorageError(f"Failed to read {locator}", details={"locator": locator}) from e

    async def delete(self, locator: str) -> bool:
        try:
            path = self._path(locator)
        except ValueError:
            return False
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {locator}", details={"locator": locator}) from e

    async def exists(self, locator: str) -> bool:
        try:
            path = self._path(locator)
        except ValueError:
            return False
        return await asyncio.to_thread(path.is_file)

    async def health_check(self) -> bool:
        return await asyncio.to_thread(os.access, self.root, os.W_OK)
