"""Application settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings include
the optional map source config file loaded at startup, the output tile size,
the resampling algorithm used for raster reads, CORS origins and the
log level.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from tile_server.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.tile_size)

    Environment variables can override defaults:
        >>> MAP_CONFIG_PATH=/etc/tile_server/maps.json
        >>> TILE_SIZE=512
        >>> RESAMPLING=bilinear
"""

from __future__ import annotations

import functools
import pathlib
from typing import Literal

import pydantic
import pydantic_settings

Resampling = Literal["nearest", "bilinear"]
TileFormat = Literal["png", "webp"]


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via environment variables or .env file.

    Attributes:
        map_config_path: JSON file listing ``{name, path, style}`` objects
            registered once at startup. ``None`` starts with no layers.
        tile_size: Edge length of served tiles in pixels.
        resampling: Resampling used when reading raster windows.
        allow_origins: List of allowed CORS origins (["*"] allows all).
        log_level: Root logger level name.
        default_tile_format: Format served when a request omits one.

    Example:
        Create settings with custom values:
            >>> settings = Settings(
            ...     map_config_path=Path("maps.json"),
            ...     tile_size=512,
            ...     resampling="bilinear",
            ... )
    """

    map_config_path: pathlib.Path | None = None
    tile_size: int = 256
    resampling: Resampling = "nearest"
    allow_origins: list[str] = ["*"]
    log_level: str = "INFO"
    default_tile_format: TileFormat = "png"

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @pydantic.field_validator("tile_size")
    @classmethod
    def _check_tile_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("tile_size must be positive")
        return value

    @pydantic.field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        return value.upper()


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the application. Subsequent calls return the same
    cached instance.

    Returns:
        Settings instance with all configuration values populated.
    """
    return Settings()
