"""Web map preview of a registered layer.

``GET /{name}`` answers a Leaflet page that draws the layer's tiles over
an OpenStreetMap base map, fitted to the layer's lon/lat bounds. The
route matches any single-segment path, so it is included after the map
listing endpoints.

Example:
    Open a preview in a browser:
        >>> response = client.get("/dem")
        >>> response.headers["content-type"]
        'text/html; charset=utf-8'
"""

from __future__ import annotations

import fastapi
from fastapi import responses, templating

from tile_server.core import errors, templates
from tile_server.registry import registry as map_registry

router = fastapi.APIRouter(tags=["preview"])

_templates = templating.Jinja2Templates(env=templates.environment)


def _get_registry(request: fastapi.Request) -> map_registry.MapRegistry:
    return request.app.state.registry


@router.get("/{name}", response_class=responses.HTMLResponse)
def preview(
    request: fastapi.Request,
    name: str,
    registry: map_registry.MapRegistry = fastapi.Depends(_get_registry),  # noqa: B008
) -> responses.HTMLResponse:
    """Return a Leaflet page showing the layer.

    Raises:
        HTTPException: 404 if the layer does not exist.
    """
    try:
        metadata = registry.metadata(name)
    except errors.UnknownLayerError as e:
        raise fastapi.HTTPException(status_code=404, detail=str(e)) from e
    context = templates.leaflet_context(
        title=name,
        tile_url=f"{request.base_url}{name}/{{z}}/{{x}}/{{y}}.png",
        bounds=metadata.bounds,
    )
    return _templates.TemplateResponse(request, "leaflet.html", context)
