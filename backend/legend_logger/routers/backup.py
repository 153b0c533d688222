"""
Legend Logger - Backup & Restore
Export and import all maps with their characters as a JSON file
"""
import base64
import binascii
import io
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from legend_logger.dependencies import get_persistence
from legend_logger.models.character import Character
from legend_logger.models.map import Map
from legend_logger.schemas.character import ColorSchema
from legend_logger.services.persistence import Persistence

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/system/backup", tags=["backup"])

BACKUP_VERSION = "1.0"


# ============================================================
# Schemas
# ============================================================

class CharacterBackup(BaseModel):
    position_x: float = Field(default=0.0, allow_inf_nan=False)
    position_y: float = Field(default=0.0, allow_inf_nan=False)
    size: float = Field(..., gt=0, allow_inf_nan=False)
    color: ColorSchema
    name: Optional[str] = None


class MapBackup(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    image: str = ""  # base64
    characters: List[CharacterBackup] = []


class BackupFile(BaseModel):
    version: str
    timestamp: Optional[str] = None
    maps: List[MapBackup] = []


class BackupMetadata(BaseModel):
    """Backup file metadata."""
    version: str
    timestamp: str
    maps_count: int
    characters_count: int


class ImportResult(BaseModel):
    """Result of import operation."""
    success: bool
    message: str
    maps_imported: int = 0
    maps_skipped: int = 0
    characters_imported: int = 0
    errors: list[str] = []


# ============================================================
# Helper Functions
# ============================================================

def serialize_character(character: Character) -> dict:
    """Serialize character to dict for export."""
    r, g, b, a = character.color
    return {
        "position_x": character.position_x,
        "position_y": character.position_y,
        "size": character.size,
        "color": {"r": r, "g": g, "b": b, "a": a},
        "name": character.name,
    }


def serialize_map(map_obj: Map, characters: List[Character]) -> dict:
    """Serialize map to dict for export."""
    return {
        "id": str(map_obj.id),
        "name": map_obj.name,
        "created_at": map_obj.created.isoformat(),
        "image": base64.b64encode(map_obj.image).decode("ascii"),
        "characters": [serialize_character(c) for c in characters],
    }


def to_snapshot(entry: MapBackup) -> dict:
    """Convert a validated backup entry into Persistence.restore_map input."""
    return {
        "id": entry.id,
        "name": entry.name,
        "created_at": entry.created_at,
        "image_data": base64.b64decode(entry.image, validate=True),
        "characters": [
            {
                "position_x": c.position_x,
                "position_y": c.position_y,
                "size": c.size,
                "color": c.color.model_dump(),
                "name": c.name,
            }
            for c in entry.characters
        ],
    }


# ============================================================
# Export Endpoint
# ============================================================

@router.get("/export")
async def export_backup(persistence: Persistence = Depends(get_persistence)):
    """
    Export all maps and characters as a downloadable JSON file.
    Images are embedded as base64.
    """
    maps = await persistence.list_maps()
    entries = []
    characters_count = 0
    for map_obj in maps:
        characters = await persistence.list_characters(map_obj)
        characters_count += len(characters)
        entries.append(serialize_map(map_obj, characters))

    backup_data = {
        "version": BACKUP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "maps": entries,
    }

    # Create filename with date
    date_str = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    filename = f"backup_legend_logger_{date_str}.json"

    json_content = json.dumps(backup_data, indent=2, ensure_ascii=False)

    logger.info(f"Backup created: {len(entries)} maps, {characters_count} characters")

    return StreamingResponse(
        io.BytesIO(json_content.encode("utf-8")),
        media_type="application/json",
        headers={
            "Content-Disposition": f"attachment; filename={filename}"
        }
    )


# ============================================================
# Import Endpoint
# ============================================================

@router.post("/import", response_model=ImportResult)
async def import_backup(
    file: UploadFile = File(...),
    mode: Literal["merge", "replace"] = Query("merge", description="Import mode: merge or replace"),
    persistence: Persistence = Depends(get_persistence)
):
    """
    Import maps from a JSON backup file.

    Modes:
    - merge: Keep existing maps, add maps whose id is not present yet
    - replace: Delete all existing maps (and their characters) first
    """
    content = await file.read()
    try:
        backup = BackupFile.model_validate(json.loads(content.decode("utf-8")))
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON file")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid backup file: {e.error_count()} validation errors")

    logger.info(f"Backup version: {backup.version}, timestamp: {backup.timestamp} (mode: {mode})")

    if mode == "replace":
        logger.warning("REPLACE MODE: Clearing existing maps...")
        for map_obj in await persistence.list_maps():
            await persistence.delete_map(map_obj)

    errors: list[str] = []
    maps_imported = 0
    maps_skipped = 0
    characters_imported = 0

    for entry in backup.maps:
        try:
            snapshot = to_snapshot(entry)
        except (binascii.Error, ValueError) as e:
            errors.append(f"Map '{entry.id}': invalid image data ({e})")
            continue

        restored = await persistence.restore_map(snapshot)
        if restored is None:
            maps_skipped += 1
            continue
        maps_imported += 1
        characters_imported += len(entry.characters)

    logger.info(f"Import complete: {maps_imported} maps, {characters_imported} characters, {maps_skipped} skipped")

    return ImportResult(
        success=not errors,
        message=f"Backup imported ({mode} mode)",
        maps_imported=maps_imported,
        maps_skipped=maps_skipped,
        characters_imported=characters_imported,
        errors=errors
    )


@router.get("/info", response_model=BackupMetadata)
async def get_backup_info(persistence: Persistence = Depends(get_persistence)):
    """Get information about what would be exported in a backup."""
    maps = await persistence.list_maps()
    characters_count = 0
    for map_obj in maps:
        characters_count += len(await persistence.list_characters(map_obj))

    return BackupMetadata(
        version=BACKUP_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        maps_count=len(maps),
        characters_count=characters_count
    )
