"""
Legend Logger - Photo Import
Read map photos from disk and store them as new maps.
"""
import logging
from pathlib import Path
from typing import List, Optional

import aiofiles

from legend_logger.exceptions import InvalidImageError
from legend_logger.models.map import Map
from legend_logger.services.imaging import normalize_image
from legend_logger.services.persistence import Persistence

logger = logging.getLogger(__name__)

# Allowed image extensions
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tif", ".tiff"}


async def read_photo(path: Path) -> bytes:
    """Raw encoded bytes of a photo file."""
    async with aiofiles.open(path, "rb") as f:
        return await f.read()


async def import_photo(persistence: Persistence, path: Path, name: Optional[str] = None) -> Map:
    """
    Store one photo as a new map, named after the file unless a name is given.

    Raises InvalidImageError if the file is not a decodable image.
    """
    path = Path(path)
    content = await read_photo(path)
    image_data = normalize_image(content)
    map_obj = await persistence.add_map(image_data, name if name is not None else path.stem)
    logger.info(f"Imported {path} as map {map_obj.id}")
    return map_obj


async def import_directory(persistence: Persistence, directory: Path) -> List[Map]:
    """Import every image file in a directory (not recursive), in name order."""
    imported = []
    for path in sorted(Path(directory).iterdir()):
        if not path.is_file() or path.suffix.lower() not in ALLOWED_EXTENSIONS:
            continue
        try:
            imported.append(await import_photo(persistence, path))
        except InvalidImageError as e:
            logger.warning(f"Skipping {path}: {e}")
    return imported
