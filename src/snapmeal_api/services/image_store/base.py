"""Abstract blob backend for image variants."""

import re
from abc import ABC, abstractmethod

from snapmeal_api.models.image_asset import ImageSize, StorageBackendKind

FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class BlobNotFoundError(Exception):
    """No blob is stored under the requested locator."""

    def __init__(self, locator: str):
        self.locator = locator
        super().__init__(f"Blob not found: {locator}")


def make_locator(variant: ImageSize, filename: str) -> str:
    """Build the opaque ``{variant}/{filename}`` locator."""
    return f"{variant.value}/{filename}"


def parse_locator(locator: str) -> tuple[ImageSize, str]:
    """
    Split a locator into variant and filename.

    Raises:
        ValueError: Unknown variant or a filename that could escape its
            directory
    """
    variant, sep, filename = locator.partition("/")
    if not sep or not FILENAME_PATTERN.match(filename) or ".." in filename:
        raise ValueError(f"Invalid locator: {locator!r}")
    return ImageSize(variant), filename


class BlobBackend(ABC):
    """
    Abstract base class for blob storage.

    Backends are chosen once at startup. Callers only deal in locators;
    how a locator maps to a path, GridFS file or object key is private to
    the backend. Failures surface as ``StorageError``; a missing blob on
    read raises ``BlobNotFoundError``.
    """

    kind: StorageBackendKind = StorageBackendKind.LOCAL

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name for logging and health output."""
        ...

    @abstractmethod
    async def write(
        self, variant: ImageSize, filename: str, data: bytes, mime_type: str
    ) -> str:
        """Store bytes, overwriting any blob with the same name; returns the locator."""
        ...

    @abstractmethod
    async def read(self, locator: str) -> bytes:
        ...

    @abstractmethod
    async def delete(self, locator: str) -> bool:
        """Remove a blob. Returns False if nothing was stored there."""
        ...

    @abstractmethod
    async def exists(self, locator: str) -> bool:
        ...

    async def health_check(self) -> bool:
        """Check if the backend is reachable."""
        return True
