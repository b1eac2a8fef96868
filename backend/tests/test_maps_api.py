"""Tests for the map registration and metadata endpoints.

This module exercises the FastAPI endpoints end to end against GeoTIFF and
GeoJSON files written into the test's temporary directory:
    - POST /map and POST /vector/map register layers and return metadata,
    - Invalid registrations answer 400 and leave the registry unchanged,
    - GET /maps and GET /maps/{name} list and describe layers,
    - DELETE /maps/{name} removes layers idempotently.

See Also:
    - backend/tile_server/api/maps.py
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi import testclient

from tile_server import main
from tile_server.api import maps
from tile_server.core import config
from tile_server.registry import MapRegistry

if TYPE_CHECKING:
    import pathlib

VIRIDIS = {"name": "viridis", "vmin": 0, "vmax": 100, "bands": [1]}


def _client() -> testclient.TestClient:
    return testclient.TestClient(main.create_app(config.Settings(map_config_path=None)))


def test_register_raster(raster_path: pathlib.Path) -> None:
    """Test that POST /map returns the layer metadata."""
    client = _client()
    response = client.post(
        "/map", json={"name": "t1", "path": str(raster_path), "style": VIRIDIS}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "t1"
    assert body["kind"] == "raster"
    assert body["bounds"] == pytest.approx([-10.0, -10.0, 10.0, 10.0])
    assert body["noDataValue"] == [None]
    assert body["driverName"] == "GTiff"
    assert body["hasOverview"] is False
    assert body["spatialInfo"]["epsgCode"] == 4326
    assert len(body["geotransform"]) == 6
    assert body["style"]["kind"] == "palette"


def test_register_without_style(raster_path: pathlib.Path) -> None:
    """Test that a raster registered without style gets a derived one."""
    client = _client()
    response = client.post("/map", json={"name": "auto", "path": str(raster_path)})
    assert response.status_code == 200
    assert response.json()["style"]["name"] == "viridis"


def test_register_invalid_style(raster_path: pathlib.Path) -> None:
    """Test that a style beyond the band count answers 400."""
    client = _client()
    response = client.post(
        "/map",
        json={"name": "t1", "path": str(raster_path), "style": {**VIRIDIS, "bands": [3]}},
    )
    assert response.status_code == 400
    assert client.get("/maps/t1").status_code == 404


def test_register_missing_file(tmp_path: pathlib.Path) -> None:
    """Test that an unreadable source answers 400."""
    client = _client()
    response = client.post(
        "/map", json={"name": "t1", "path": str(tmp_path / "missing.tif")}
    )
    assert response.status_code == 400
    assert client.get("/maps").json() == []


def test_register_malformed_body() -> None:
    """Test that a body without a path answers 400."""
    client = _client()
    assert client.post("/map", json={"name": "t1"}).status_code == 400


def test_register_vector_with_xml(vector_path: pathlib.Path) -> None:
    """Test that POST /map with xml registers a vector layer."""
    client = _client()
    response = client.post(
        "/map",
        json={"name": "v1", "path": str(vector_path), "xml": "<Map srs='epsg:3857'/>"},
    )
    assert response.status_code == 200
    assert response.json()["kind"] == "vector"
    assert response.json()["featureCount"] == 2


def test_register_vector_generated_style(vector_path: pathlib.Path) -> None:
    """Test POST /vector/map with a generated stylesheet."""
    client = _client()
    response = client.post("/vector/map", json={"name": "v2", "path": str(vector_path)})
    assert response.status_code == 200
    assert response.json()["bounds"] == pytest.approx([-5.0, -2.0, 10.0, 5.0])


def test_register_vector_bad_xml(vector_path: pathlib.Path) -> None:
    """Test that a malformed stylesheet answers 400."""
    client = _client()
    response = client.post(
        "/vector/map", json={"name": "v3", "path": str(vector_path), "xml": "<Map"}
    )
    assert response.status_code == 400


def test_list_get_and_delete(raster_path: pathlib.Path) -> None:
    """Test listing, describing and removing layers."""
    client = _client()
    for name in ("b", "a"):
        client.post("/map", json={"name": name, "path": str(raster_path), "style": VIRIDIS})
    assert [m["name"] for m in client.get("/maps").json()] == ["a", "b"]
    assert client.get("/maps/a").json()["name"] == "a"

    assert client.delete("/maps/a").status_code == 204
    assert client.delete("/maps/a").status_code == 204
    assert client.get("/maps/a").status_code == 404
    assert [m["name"] for m in client.get("/maps").json()] == ["b"]


def test_registry_dependency_override(raster_path: pathlib.Path) -> None:
    """Test that the registry dependency can be replaced."""
    registry = MapRegistry()
    registry.register("dem", str(raster_path))
    app = main.create_app(config.Settings(map_config_path=None))
    app.dependency_overrides[maps._get_registry] = lambda: registry
    client = testclient.TestClient(app)
    try:
        response = client.get("/maps")
        assert [m["name"] for m in response.json()] == ["dem"]
    finally:
        app.dependency_overrides.clear()
        registry.close()
