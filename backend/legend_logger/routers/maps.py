"""
Legend Logger - Maps Router
Map photos and the characters placed on them
"""
import logging
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, status
from fastapi.responses import Response

from legend_logger.config import get_settings
from legend_logger.dependencies import get_persistence
from legend_logger.exceptions import InvalidImageError
from legend_logger.models.map import Map
from legend_logger.schemas.character import CharacterCreate, CharacterResponse, CharacterUpdate
from legend_logger.schemas.map import MapResponse, MapUpdate, MapWithCharacters
from legend_logger.services.imaging import image_dimensions, normalize_image
from legend_logger.services.persistence import Persistence

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(tags=["maps"])


def get_image_url(map_id: uuid.UUID) -> str:
    """URL the map's PNG is served from."""
    return f"/api/maps/{map_id}/image"


def build_map_response(map_obj: Map) -> MapResponse:
    try:
        width, height = image_dimensions(map_obj.image)
    except InvalidImageError:
        width, height = 0, 0
    return MapResponse(
        id=map_obj.id,
        name=map_obj.display_name,
        created_at=map_obj.created,
        image_url=get_image_url(map_obj.id),
        image_width=width,
        image_height=height,
    )


async def get_map_or_404(map_id: uuid.UUID, persistence: Persistence) -> Map:
    map_obj = await persistence.find_map(map_id)
    if not map_obj:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Map with id {map_id} not found"
        )
    return map_obj


@router.get("/maps", response_model=List[MapResponse])
async def list_maps(persistence: Persistence = Depends(get_persistence)):
    """List all maps, newest first."""
    maps = await persistence.list_maps()
    maps.sort(key=lambda m: m.created, reverse=True)
    return [build_map_response(m) for m in maps]


@router.post("/maps", response_model=MapResponse, status_code=status.HTTP_201_CREATED)
async def create_map(
    image: UploadFile = File(...),
    name: Optional[str] = Form(None),
    persistence: Persistence = Depends(get_persistence)
):
    """
    Create a new map from a photo of a physical game map.

    - **image**: Map photo (any raster format Pillow can read, stored as PNG)
    - **name**: Optional map name, defaults to "New Map"
    """
    content = await image.read()
    if len(content) > settings.max_image_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum size: {settings.max_image_size // (1024*1024)}MB"
        )

    try:
        image_data = normalize_image(content)
    except InvalidImageError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    map_obj = await persistence.add_map(image_data, name)
    return build_map_response(map_obj)


@router.get("/maps/{map_id}", response_model=MapWithCharacters)
async def get_map(map_id: uuid.UUID, persistence: Persistence = Depends(get_persistence)):
    """Get a map with its characters."""
    map_obj = await get_map_or_404(map_id, persistence)
    characters = await persistence.list_characters(map_obj)

    return MapWithCharacters(
        **build_map_response(map_obj).model_dump(),
        characters=[CharacterResponse.from_character(c) for c in characters]
    )


@router.patch("/maps/{map_id}", response_model=MapResponse)
async def rename_map(
    map_id: uuid.UUID,
    data: MapUpdate,
    persistence: Persistence = Depends(get_persistence)
):
    """Rename a map."""
    map_obj = await persistence.rename_map(map_id, data.name)
    if map_obj is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Map with id {map_id} not found"
        )
    return build_map_response(map_obj)


@router.delete("/maps/{map_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_map(map_id: uuid.UUID, persistence: Persistence = Depends(get_persistence)):
    """Delete a map and all of its characters."""
    map_obj = await get_map_or_404(map_id, persistence)
    await persistence.delete_map(map_obj)


@router.get("/maps/{map_id}/image")
async def get_map_image(map_id: uuid.UUID, persistence: Persistence = Depends(get_persistence)):
    """Serve the stored map image."""
    map_obj = await get_map_or_404(map_id, persistence)
    if not map_obj.image:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Image not found"
        )
    return Response(content=map_obj.image, media_type="image/png")


# ============================================================
# Character Endpoints
# ============================================================

@router.get("/maps/{map_id}/characters", response_model=List[CharacterResponse])
async def list_characters(map_id: uuid.UUID, persistence: Persistence = Depends(get_persistence)):
    """Get all characters placed on a map."""
    map_obj = await get_map_or_404(map_id, persistence)
    characters = await persistence.list_characters(map_obj)
    return [CharacterResponse.from_character(c) for c in characters]


@router.post(
    "/maps/{map_id}/characters",
    response_model=CharacterResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_character(
    map_id: uuid.UUID,
    data: CharacterCreate,
    persistence: Persistence = Depends(get_persistence)
):
    """
    Place a new character on a map.

    - **position**: Token center in image coordinates
    - **color**: RGBA, channels 0-1
    - **size**: Token diameter
    """
    character = await persistence.add_character(
        map_id,
        data.position.x,
        data.position.y,
        data.color.to_color(),
        data.size,
        name=data.name,
    )
    if character is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Map with id {map_id} not found"
        )
    return CharacterResponse.from_character(character)


@router.patch("/characters/{character_id}", response_model=CharacterResponse)
async def update_character(
    character_id: int,
    data: CharacterUpdate,
    persistence: Persistence = Depends(get_persistence)
):
    """Move and/or resize a character."""
    character = await persistence.find_character(character_id)
    if character is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Character with id {character_id} not found"
        )

    if not await persistence.update_character(character, data.position.to_point(), data.size):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Character with id {character_id} not found"
        )
    return CharacterResponse.from_character(character)
