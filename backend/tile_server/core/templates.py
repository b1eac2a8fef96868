"""Jinja2 environment for the HTML pages served and written by the tiler.

The Leaflet page is shared by the ``GET /{name}`` preview endpoint and the
``map-tiler`` command, which writes it next to the rendered tiles.
"""

from __future__ import annotations

import pathlib

import jinja2

TEMPLATE_DIR = pathlib.Path(__file__).resolve().parent.parent / "templates"

environment = jinja2.Environment(
    loader=jinja2.FileSystemLoader(TEMPLATE_DIR),
    autoescape=jinja2.select_autoescape(["html"]),
)


def leaflet_context(
    title: str,
    tile_url: str,
    bounds: list[float],
    min_zoom: int = 0,
    max_zoom: int = 22,
    basemap: bool = True,
) -> dict[str, object]:
    """Build the variables of ``leaflet.html``.

    Args:
        title: Page title.
        tile_url: Leaflet URL template with ``{z}``, ``{x}`` and ``{y}``.
        bounds: ``[west, south, east, north]`` in degrees.
        min_zoom: Lowest zoom level offered.
        max_zoom: Highest zoom level offered.
        basemap: Draw an OpenStreetMap layer under the tiles.

    Returns:
        Template context; bounds are in Leaflet's ``[[south, west],
        [north, east]]`` order.
    """
    west, south, east, north = bounds
    return {
        "title": title,
        "tile_url": tile_url,
        "bounds": [[south, west], [north, east]],
        "min_zoom": min_zoom,
        "max_zoom": max_zoom,
        "basemap": basemap,
    }


def render_leaflet(**kwargs: object) -> str:
    """Render ``leaflet.html`` with leaflet_context(**kwargs)."""
    return environment.get_template("leaflet.html").render(
        leaflet_context(**kwargs)  # type: ignore[arg-type]
    )
