"""
Legend Logger - Database Models
"""
from legend_logger.models.map import Map
from legend_logger.models.character import Character, Color, Point

__all__ = [
    "Map",
    "Character",
    "Color",
    "Point",
]
