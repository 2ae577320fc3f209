import logging
from io import BytesIO
from pathlib import Path
from typing import Any

from PIL import Image, ImageOps, UnidentifiedImageError

from lumen.exceptions import ResizeError, UnreadableSourceError
from lumen.types import ImageSize

from .base import BaseTransform

logger = logging.getLogger(__name__)

PILLOW_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "avif": "AVIF",
}


class PillowTransform(BaseTransform):
    """
    Resizes images with Pillow.

    EXIF orientation is applied on load, so reported sizes match what a
    browser would show. Output is resampled with Lanczos.
    """

    type_aliases = ["pillow", "pil"]

    def __init__(self, quality: int = 82, webp_method: int = 4):
        self.quality = quality
        self.webp_method = webp_method
        self.image: Image.Image | None = None
        self.source_path: Path | None = None

    def __str__(self):
        return f"Pillow (quality {self.quality})"

    def load(self, path: Path) -> ImageSize:
        try:
            handle = open(path, "rb")
        except OSError as e:
            raise ResizeError(f"Cannot open source image {path}: {e}") from e
        with handle:
            try:
                with Image.open(handle) as opened:
                    image = ImageOps.exif_transpose(opened)
                    image.load()
            except (UnidentifiedImageError, Image.DecompressionBombError) as e:
                raise UnreadableSourceError(f"Cannot decode {path}: {e}") from e
            except (OSError, SyntaxError, ValueError) as e:
                # Pillow raises plain OSError for truncated or corrupt data
                raise UnreadableSourceError(f"Cannot decode {path}: {e}") from e
        self.image = image
        self.source_path = path
        return {"width": image.width, "height": image.height}

    def resize(self, width: int, height: int, output_ext: str) -> bytes:
        if self.image is None:
            raise ResizeError("No image loaded")
        try:
            image_format = PILLOW_FORMATS[output_ext.lower()]
        except KeyError:
            raise ResizeError(f"Unsupported output format: {output_ext}")
        resized = self.image.resize(
            (max(1, width), max(1, height)), Image.Resampling.LANCZOS
        )
        resized = self._convert_mode(resized, image_format)
        buffer = BytesIO()
        try:
            resized.save(buffer, image_format, **self._save_options(image_format))
        except (KeyError, OSError, ValueError) as e:
            raise ResizeError(
                f"Cannot encode {self.source_path} as {image_format}: {e}"
            ) from e
        logger.debug(
            f"Resized {self.source_path} to {resized.width}x{resized.height} {image_format}"
        )
        return buffer.getvalue()

    def _convert_mode(self, image: Image.Image, image_format: str) -> Image.Image:
        """
        Converts to a mode the output format can store.
        """
        has_alpha = image.mode in ("RGBA", "LA", "PA") or (
            image.mode == "P" and "transparency" in image.info
        )
        if image_format == "JPEG":
            if image.mode not in ("RGB", "L"):
                return image.convert("RGB")
            return image
        if image.mode not in ("RGB", "RGBA", "L", "LA"):
            return image.convert("RGBA" if has_alpha else "RGB")
        return image

    def _save_options(self, image_format: str) -> dict[str, Any]:
        if image_format == "JPEG":
            return {"quality": self.quality, "optimize": True, "progressive": True}
        if image_format == "WEBP":
            return {"quality": self.quality, "method": self.webp_method}
        if image_format == "PNG":
            return {"optimize": True}
        if image_format == "AVIF":
            return {"quality": self.quality}
        return {}
