"""Pytest configuration and shared fixtures for the tile server tests.

Exposes the tile_server package for imports and provides factories that
write small GeoTIFF and GeoJSON files into the test's temporary directory.
"""

from __future__ import annotations

import json
import pathlib
import sys
from collections.abc import Callable

import numpy
import pytest
import rasterio
from rasterio import transform as rio_transform

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

RASTER_BOUNDS = (-10.0, -10.0, 10.0, 10.0)
RASTER_SIZE = 200

RasterWriter = Callable[..., pathlib.Path]


def ramp_band(size: int = RASTER_SIZE) -> numpy.ndarray:
    """Return a band whose values grow from 0 (west) to 99 (east)."""
    row = numpy.linspace(0.0, 99.0, size, dtype=numpy.float32)
    return numpy.tile(row, (size, 1))


@pytest.fixture
def write_raster(tmp_path: pathlib.Path) -> RasterWriter:
    """Factory writing a GeoTIFF; by default one ramp band over +-10 degrees."""

    def _write(
        name: str = "raster.tif",
        data: numpy.ndarray | None = None,
        bounds: tuple[float, float, float, float] = RASTER_BOUNDS,
        crs: str | None = "EPSG:4326",
        nodata: float | None = None,
    ) -> pathlib.Path:
        if data is None:
            data = ramp_band()[numpy.newaxis]
        count, height, width = data.shape
        path = tmp_path / name
        with rasterio.open(
            path,
            "w",
            driver="GTiff",
            height=height,
            width=width,
            count=count,
            dtype=data.dtype,
            crs=crs,
            transform=rio_transform.from_bounds(*bounds, width, height),
            nodata=nodata,
        ) as dst:
            dst.write(data)
        return path

    return _write


@pytest.fixture
def raster_path(write_raster: RasterWriter) -> pathlib.Path:
    """A single-band lon/lat GeoTIFF covering -10..10 on both axes."""
    return write_raster()


@pytest.fixture
def vector_path(tmp_path: pathlib.Path) -> pathlib.Path:
    """A GeoJSON file holding one polygon and one line."""
    collection = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"name": "square"},
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [
                        [[0.0, 0.0], [10.0, 0.0], [10.0, 5.0], [0.0, 5.0], [0.0, 0.0]]
                    ],
                },
            },
            {
                "type": "Feature",
                "properties": {"name": "line"},
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[-5.0, -2.0], [2.0, 3.0]],
                },
            },
        ],
    }
    path = tmp_path / "shapes.geojson"
    path.write_text(json.dumps(collection), encoding="utf-8")
    return path
