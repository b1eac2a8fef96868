"""Map registration and metadata API endpoints.

This module lets a client register raster and vector layers at runtime,
list them, inspect their metadata and remove them. The metadata returned
by a registration carries the lon/lat bounds of the layer so the client
can center its map view right away.

Registration opens files and computes statistics, so the endpoints are
plain functions run in FastAPI's thread pool instead of on the event loop.

Example:
    Register a single-band GeoTIFF with a palette:
        >>> response = client.post(
        ...     "/map",
        ...     json={
        ...         "name": "dem",
        ...         "path": "/data/dem.tif",
        ...         "style": {"name": "viridis", "vmin": 0, "vmax": 100},
        ...     },
        ... )
        >>> response.json()["bounds"]
        >>> # Returns: [west, south, east, north] in degrees

    Register a shapefile with a generated stylesheet:
        >>> response = client.post(
        ...     "/vector/map",
        ...     json={"name": "countries", "path": "/data/countries.shp"},
        ... )
"""

from __future__ import annotations

import fastapi

from tile_server.core import errors
from tile_server.registry import models
from tile_server.registry import registry as map_registry

router = fastapi.APIRouter(tags=["maps"])


def _get_registry(request: fastapi.Request) -> map_registry.MapRegistry:
    """Resolve the registry created by the application factory.

    Args:
        request: Incoming request, used to reach the application state.

    Returns:
        The process-wide MapRegistry.
    """
    return request.app.state.registry


def _registration_failed(e: errors.TileServerError) -> fastapi.HTTPException:
    return fastapi.HTTPException(status_code=400, detail=str(e))


@router.post("/map")
def add_map(
    registration: models.MapRegistration,
    registry: map_registry.MapRegistry = fastapi.Depends(_get_registry),  # noqa: B008
) -> models.MapMetadata:
    """Register a raster layer, or a vector layer when ``xml`` is given.

    Re-registering an existing name replaces the previous layer. A failed
    registration leaves the registry unchanged.

    Args:
        registration: ``{name, path, style?, xml?, no_data_value?}`` body.
        registry: Map registry (injected via FastAPI Depends).

    Returns:
        Metadata of the registered layer.

    Raises:
        HTTPException: 400 if the source cannot be opened, its extent
            cannot be mapped to lon/lat, or the style is invalid.
    """
    try:
        entry = registry.add(registration)
    except errors.TileServerError as e:
        raise _registration_failed(e) from e
    return entry.metadata


@router.post("/vector/map")
def add_vector_map(
    registration: models.MapRegistration,
    registry: map_registry.MapRegistry = fastapi.Depends(_get_registry),  # noqa: B008
) -> models.MapMetadata:
    """Register a vector layer, generating a stylesheet if none is given.

    Args:
        registration: ``{name, path, xml?}`` body; ``style`` is ignored.
        registry: Map registry (injected via FastAPI Depends).

    Returns:
        Metadata of the registered layer.

    Raises:
        HTTPException: 400 if the file cannot be read or the supplied
            stylesheet is invalid.
    """
    try:
        entry = registry.register_vector(
            registration.name, registration.path, registration.xml
        )
    except errors.TileServerError as e:
        raise _registration_failed(e) from e
    return entry.metadata


@router.get("/maps")
def list_maps(
    registry: map_registry.MapRegistry = fastapi.Depends(_get_registry),  # noqa: B008
) -> list[models.MapMetadata]:
    """List the metadata of every registered layer, ordered by name."""
    return [entry.metadata for entry in registry.entries()]


@router.get("/maps/{name}")
def get_map(
    name: str,
    registry: map_registry.MapRegistry = fastapi.Depends(_get_registry),  # noqa: B008
) -> models.MapMetadata:
    """Return the metadata of one layer.

    Raises:
        HTTPException: 404 if the layer does not exist.
    """
    try:
        return registry.metadata(name)
    except errors.UnknownLayerError as e:
        raise fastapi.HTTPException(status_code=404, detail=str(e)) from e


@router.delete("/maps/{name}", status_code=204)
def delete_map(
    name: str,
    registry: map_registry.MapRegistry = fastapi.Depends(_get_registry),  # noqa: B008
) -> fastapi.Response:
    """Remove a layer and release its raster handle.

    Removing an unknown layer is not an error.
    """
    registry.remove(name)
    return fastapi.Response(status_code=204)
