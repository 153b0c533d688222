"""
Legend Logger - Application Configuration
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Legend Logger"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./storage/legend_logger.db"

    # Storage
    storage_path: str = "./storage"
    max_image_size: int = 10 * 1024 * 1024  # 10MB

    # Read-path defaults for optional fields
    default_map_name: str = "My Map"
    new_map_name: str = "New Map"
    default_character_name: str = "Billy Bob"

    # Token placed by "add" when the caller gives no size
    default_token_size: float = 100.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "LEGEND_"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
