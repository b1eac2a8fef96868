"""XYZ tile serving endpoint.

Tiles are addressed as ``/{name}/{z}/{x}/{y}.{ext}`` in the standard
slippy-map scheme with ``ext`` one of ``png`` or ``webp``. Raster layers
are rendered on demand from their source file; vector layers are passed
to the vector rendering engine configured on the application.

Example:
    Request a raster tile:
        >>> response = client.get("/dem/10/512/384.png")
        >>> # Returns image bytes with Content-Type: image/png

    Use in MapLibre GL JS:
        >>> map.addSource('dem', {
        ...     type: 'raster',
        ...     tiles: ['http://localhost:8000/dem/{z}/{x}/{y}.png'],
        ...     tileSize: 256
        ... });
"""

from __future__ import annotations

import fastapi
from fastapi import responses

from tile_server.core import errors
from tile_server.services import tile_service

router = fastapi.APIRouter(tags=["tiles"])


def _get_tile_service(request: fastapi.Request) -> tile_service.TileService:
    """Resolve the tile service created by the application factory."""
    return request.app.state.tile_service


@router.get("/{name}/{z}/{x}/{y}.{ext}")
def get_tile(
    name: str,
    z: int,
    x: int,
    y: int,
    ext: str,
    service: tile_service.TileService = fastapi.Depends(_get_tile_service),  # noqa: B008
) -> responses.Response:
    """Render one tile of a registered layer.

    Runs in the thread pool; concurrent requests against one raster are
    serialized by the raster's own lock.

    Args:
        name: Registered layer name.
        z: Zoom level.
        x: Tile column.
        y: Tile row.
        ext: Image format, "png" or "webp".
        service: Tile service (injected via FastAPI Depends).

    Returns:
        Image response. Tiles outside the layer's coverage are fully
        transparent.

    Raises:
        HTTPException: 400 for an off-grid tile, 404 for an unknown layer,
            500 when the source cannot be read and 501 for an unsupported
            format or a vector layer without a rendering engine.
    """
    return _render(service, name, z, x, y, ext)


@router.get("/{name}/{z}/{x}/{y}")
def get_tile_default_format(
    name: str,
    z: int,
    x: int,
    y: int,
    service: tile_service.TileService = fastapi.Depends(_get_tile_service),  # noqa: B008
) -> responses.Response:
    """Render one tile in the configured default format."""
    return _render(service, name, z, x, y, None)


def _render(
    service: tile_service.TileService,
    name: str,
    z: int,
    x: int,
    y: int,
    ext: str | None,
) -> responses.Response:
    try:
        tile = service.render(name, z, x, y, ext)
    except errors.TileServerError as e:
        raise fastapi.HTTPException(status_code=e.status_code, detail=str(e)) from e
    return responses.Response(content=tile.content, media_type=tile.media_type)
