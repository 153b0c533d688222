"""
Legend Logger - Pydantic Schemas
"""
from legend_logger.schemas.character import CharacterCreate, CharacterUpdate, CharacterResponse
from legend_logger.schemas.map import MapUpdate, MapResponse, MapWithCharacters

__all__ = [
    "CharacterCreate",
    "CharacterUpdate",
    "CharacterResponse",
    "MapUpdate",
    "MapResponse",
    "MapWithCharacters",
]
