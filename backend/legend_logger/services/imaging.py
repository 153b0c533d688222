"""
Legend Logger - Image helpers
Decode imported photos and re-encode them as PNG for storage.
"""
import io
import logging
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from legend_logger.exceptions import InvalidImageError

logger = logging.getLogger(__name__)


def _open(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise InvalidImageError(f"Failed to decode image data: {e}") from e
    return img


def normalize_image(data: bytes) -> bytes:
    """
    Convert any decodable raster image to PNG bytes.

    Camera photos carry their rotation in EXIF metadata; it is applied to the
    pixels here since PNG output drops that metadata.
    """
    if not data:
        raise InvalidImageError("Image data is empty")

    img = ImageOps.exif_transpose(_open(data))
    if img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
        img = img.convert("RGBA")

    # Convert to PNG bytes
    img_bytes = io.BytesIO()
    img.save(img_bytes, format="PNG")
    img_bytes.seek(0)

    logger.debug(f"Normalized {len(data)} byte image to {img.width}x{img.height} PNG")
    return img_bytes.getvalue()


def image_dimensions(data: bytes) -> Tuple[int, int]:
    """(width, height) of an encoded image; (0, 0) for an empty payload."""
    if not data:
        return 0, 0
    img = _open(data)
    return img.width, img.height
