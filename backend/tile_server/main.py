"""FastAPI application entrypoint and configuration.

This module provides the application factory. It creates the map registry
and tile service shared by all requests, loads the map source config file
at startup, sets up CORS middleware, includes the API routers and exposes
a health check endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ MAP_CONFIG_PATH=maps.json uvicorn tile_server.main:app

    Or imported and used programmatically:
        >>> from tile_server.main import create_app
        >>> app = create_app()
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

import fastapi
import pydantic
from fastapi import encoders, exceptions, responses
from fastapi.middleware import cors

from tile_server import __version__
from tile_server.api import maps, preview, tiles
from tile_server.core import config
from tile_server.registry import MapRegistration, MapRegistry
from tile_server.services import tile_service

if TYPE_CHECKING:
    import pathlib
    from collections.abc import AsyncIterator

    from tile_server.services import vector

logger = logging.getLogger(__name__)

_REGISTRATIONS = pydantic.TypeAdapter(list[MapRegistration])


def load_map_config(path: pathlib.Path) -> list[MapRegistration]:
    """Parse a map source config file.

    Args:
        path: JSON file holding a list of ``{name, path, style}`` objects.

    Returns:
        The registrations in file order.

    Raises:
        OSError: If the file cannot be read.
        pydantic.ValidationError: If the content is not a list of
            registrations.
    """
    return _REGISTRATIONS.validate_json(path.read_bytes())


async def _validation_error(
    request: fastapi.Request,
    exc: exceptions.RequestValidationError,
) -> responses.JSONResponse:
    return responses.JSONResponse(
        status_code=400,
        content={"detail": encoders.jsonable_encoder(exc.errors())},
    )


def create_app(
    settings: config.Settings | None = None,
    vector_renderer: vector.VectorRenderer | None = None,
) -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    The registry and tile service live on ``app.state``. On startup every
    layer of ``settings.map_config_path`` is registered and any failure
    aborts startup; on shutdown every raster handle is released.

    Args:
        settings: Settings to use, defaults to get_settings().
        vector_renderer: Rendering engine for vector layers. Without one,
            vector tiles are answered with 501.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = settings or config.get_settings()
    logging.basicConfig(level=settings.log_level)

    registry = MapRegistry()

    @contextlib.asynccontextmanager
    async def lifespan(app: fastapi.FastAPI) -> AsyncIterator[None]:
        if settings.map_config_path is not None:
            registrations = load_map_config(settings.map_config_path)
            registry.load(registrations)
            logger.info(
                "Loaded %d map(s) from %s",
                len(registrations),
                settings.map_config_path,
            )
        try:
            yield
        finally:
            registry.close()

    app = fastapi.FastAPI(
        title="Map Tile Server", version=__version__, lifespan=lifespan
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.tile_service = tile_service.TileService(
        registry,
        tile_size=settings.tile_size,
        resampling=settings.resampling,
        vector_renderer=vector_renderer,
        default_format=settings.default_tile_format,
    )

    app.add_exception_handler(
        exceptions.RequestValidationError,
        _validation_error,  # type: ignore[arg-type]
    )

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    app.include_router(maps.router)
    app.include_router(tiles.router)
    app.include_router(preview.router)

    return app


app = create_app()
