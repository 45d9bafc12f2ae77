"""Derivative generation (optimized and thumbnail variants) with Pillow."""

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)


class TransformError(Exception):
    """A derivative could not be produced from the source bytes."""


@dataclass(frozen=True)
class TransformedImage:
    data: bytes
    mime_type: str
    width: int
    height: int


def read_dimensions(data: bytes) -> tuple[int, int] | None:
    """Best-effort (width, height) of an encoded image."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        logger.warning(f"Could not read image dimensions: {e}")
        return None


def _to_rgb(image: Image.Image) -> Image.Image:
    """Flatten transparency onto white so the image can be saved as JPEG."""
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        image = image.convert("RGBA")
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        return background
    return image.convert("RGB")


class ImageTransform(ABC):
    """
    One derivative-producing step.

    Transforms are synchronous and CPU bound; the store runs them in a
    worker thread.
    """

    @abstractmethod
    def apply(self, data: bytes, mime_type: str) -> TransformedImage:
        """
        Produce a derivative.

        Raises:
            TransformError: If the source cannot be decoded or encoded
        """
        ...


class ResizeToJpeg(ImageTransform):
    """
    Downscale to fit within a bounding box and re-encode as JPEG.

    EXIF orientation is applied first so derivatives display upright.
    Images already inside the box are only re-encoded.
    """

    def __init__(self, max_width: int, max_height: int, quality: int = 80):
        self.max_width = max_width
        self.max_height = max_height
        self.quality = quality

    def apply(self, data: bytes, mime_type: str) -> TransformedImage:
        try:
            with Image.open(io.BytesIO(data)) as source:
                image = ImageOps.exif_transpose(source)
                image = _to_rgb(image)
                image.thumbnail((self.max_width, self.max_height), Image.Resampling.LANCZOS)

                output = io.BytesIO()
                image.save(
                    output,
                    format="JPEG",
                    quality=self.quality,
                    optimize=True,
                    progressive=True,
                )
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise TransformError(f"Could not transform image: {e}") from e

        return TransformedImage(
            data=output.getvalue(),
            mime_type="image/jpeg",
            width=image.width,
            height=image.height,
        )


def optimized_transform(max_width: int = 1920, max_height: int = 1080, quality: int = 80) -> ImageTransform:
    return ResizeToJpeg(max_width, max_height, quality)


def thumbnail_transform(max_dimension: int = 300, quality: int = 80) -> ImageTransform:
    return ResizeToJpeg(max_dimension, max_dimension, quality)
