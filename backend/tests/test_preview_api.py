"""Tests for the Leaflet preview page.

This module validates that ``GET /{name}`` renders an HTML page pointing
at the layer's tile URL and fitted to its bounds, and answers 404 for
unknown layers without shadowing the map listing endpoints.

See Also:
    - backend/tile_server/api/preview.py
    - backend/tile_server/templates/leaflet.html
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from fastapi import testclient

from tile_server import main
from tile_server.core import config, templates

if TYPE_CHECKING:
    import pathlib


def _client() -> testclient.TestClient:
    return testclient.TestClient(main.create_app(config.Settings(map_config_path=None)))


def test_preview_page(raster_path: pathlib.Path) -> None:
    """Test that the preview draws the layer's tiles within its bounds."""
    client = _client()
    client.post("/map", json={"name": "dem", "path": str(raster_path)})
    response = client.get("/dem")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    page = response.text
    assert "leaflet@1.9.4" in page
    assert '"http://testserver/dem/{z}/{x}/{y}.png"' in page
    bounds = json.loads(page.split("const bounds = ")[1].split(";")[0])
    corners = [value for corner in bounds for value in corner]
    assert corners == pytest.approx([-10.0, -10.0, 10.0, 10.0])
    assert "map.fitBounds(bounds)" in page


def test_preview_unknown_layer() -> None:
    """Test that previewing an unknown layer answers 404."""
    assert _client().get("/nope").status_code == 404


def test_preview_does_not_shadow_listing() -> None:
    """Test that /maps and /health keep their JSON endpoints."""
    client = _client()
    assert client.get("/maps").json() == []
    assert client.get("/health").json() == {"status": "ok"}


def test_leaflet_context_orders_bounds() -> None:
    """Test that [west, south, east, north] becomes Leaflet's corner order."""
    context = templates.leaflet_context(
        title="t", tile_url="./{z}/{x}/{y}.png", bounds=[1.0, 2.0, 3.0, 4.0]
    )
    assert context["bounds"] == [[2.0, 1.0], [4.0, 3.0]]


def test_page_escapes_title() -> None:
    """Test that the page title is HTML escaped."""
    page = templates.render_leaflet(
        title="<b>dem</b>", tile_url="./{z}/{x}/{y}.png", bounds=[0.0, 0.0, 1.0, 1.0]
    )
    assert "<title>&lt;b&gt;dem&lt;/b&gt;</title>" in page
