"""Tests for per-request tile rendering.

See Also:
    - backend/tile_server/services/tile_service.py
"""

from __future__ import annotations

from concurrent import futures
from typing import TYPE_CHECKING

import mercantile
import numpy
import pytest
from rasterio import io as rio_io

from tile_server.core import errors
from tile_server.registry import MapRegistry
from tile_server.services import encoder, styling, tile_geometry, tile_service

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Callable, Iterator

VIRIDIS = styling.StyleConfig(name="viridis", vmin=0, vmax=100, bands=[1])


def _decode(content: bytes) -> numpy.ndarray:
    with rio_io.MemoryFile(content) as memfile, memfile.open() as dataset:
        return dataset.read()


class FakeVectorRenderer:
    """Records render calls and returns fixed bytes."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tile_geometry.GeoExtent, int, str]] = []

    def render(
        self,
        stylesheet: str,
        extent: tile_geometry.GeoExtent,
        size: int,
        img_format: str,
    ) -> bytes:
        self.calls.append((stylesheet, extent, size, img_format))
        return b"vector-tile"


@pytest.fixture
def registry(raster_path: pathlib.Path) -> Iterator[MapRegistry]:
    registry = MapRegistry()
    registry.register("t1", str(raster_path), VIRIDIS)
    yield registry
    registry.close()


def test_tile_inside_is_opaque(registry: MapRegistry) -> None:
    """Test that a tile inside the raster renders fully opaque."""
    service = tile_service.TileService(registry, tile_size=256)
    tile = service.render("t1", 6, 32, 32, "png")
    assert tile.media_type == "image/png"
    pixels = _decode(tile.content)
    assert pixels.shape == (4, 256, 256)
    assert (pixels[3] == 255).all()


def test_tile_outside_is_transparent(registry: MapRegistry) -> None:
    """Test that a tile beyond the raster is an empty image, not an error."""
    service = tile_service.TileService(registry, tile_size=128)
    tile = service.render("t1", 6, 0, 0, "png")
    assert tile.content == encoder.empty_tile(128, "png")
    pixels = _decode(tile.content)
    assert pixels.shape == (4, 128, 128)
    assert (pixels[3] == 0).all()


def test_partial_tile(registry: MapRegistry) -> None:
    """Test that the uncovered part of an edge tile is transparent."""
    service = tile_service.TileService(registry, tile_size=64)
    alpha = _decode(service.render("t1", 2, 1, 1, "png").content)[3]
    assert alpha[-1, -1] == 255
    assert alpha[0, 0] == 0


def test_default_format(registry: MapRegistry) -> None:
    """Test that requests without a format use the default one."""
    service = tile_service.TileService(registry, default_format="png")
    assert service.render("t1", 6, 32, 32).media_type == "image/png"


def test_out_of_range_tile(registry: MapRegistry) -> None:
    """Test that z=99 raises OutOfRangeTileError."""
    service = tile_service.TileService(registry)
    with pytest.raises(errors.OutOfRangeTileError):
        service.render("t1", 99, 0, 0, "png")


def test_unknown_layer(registry: MapRegistry) -> None:
    """Test that unknown names raise UnknownLayerError."""
    service = tile_service.TileService(registry)
    with pytest.raises(errors.UnknownLayerError):
        service.render("nope", 0, 0, 0, "png")


def test_removed_layer(registry: MapRegistry) -> None:
    """Test that a removed layer fails like an unknown one."""
    service = tile_service.TileService(registry)
    registry.remove("t1")
    with pytest.raises(errors.UnknownLayerError):
        service.render("t1", 6, 32, 32, "png")


def test_unsupported_format(registry: MapRegistry) -> None:
    """Test that formats other than png and webp are rejected."""
    service = tile_service.TileService(registry)
    with pytest.raises(errors.UnsupportedFormatError):
        service.render("t1", 6, 32, 32, "gif")


def test_vector_without_renderer(
    registry: MapRegistry,
    vector_path: pathlib.Path,
) -> None:
    """Test that vector tiles need a rendering engine."""
    registry.register_vector("shapes", str(vector_path))
    service = tile_service.TileService(registry)
    with pytest.raises(errors.VectorRenderingUnavailableError):
        service.render("shapes", 3, 4, 3, "png")


def test_vector_delegates_to_renderer(
    registry: MapRegistry,
    vector_path: pathlib.Path,
) -> None:
    """Test that vector tiles pass the stylesheet, mercator extent and format."""
    entry = registry.register_vector("shapes", str(vector_path))
    renderer = FakeVectorRenderer()
    service = tile_service.TileService(registry, tile_size=512, vector_renderer=renderer)
    tile = service.render("shapes", 1, 1, 0, "png")
    assert tile.content == b"vector-tile"
    stylesheet, extent, size, img_format = renderer.calls[0]
    assert stylesheet == entry.vector.stylesheet  # type: ignore[union-attr]
    assert extent.crs == tile_geometry.WEB_MERCATOR
    assert extent.minx == pytest.approx(0.0, abs=1e-6)
    assert size == 512
    assert img_format == "png"


def test_lonlat_raster_pixels_follow_mercator_rows(
    write_raster: Callable[..., pathlib.Path],
) -> None:
    """Test that lon/lat pixels land on the mercator row of their latitude."""
    rows = numpy.arange(680, dtype=numpy.float32)
    latitudes = 85.0 - 0.125 - 0.25 * rows
    data = numpy.tile(latitudes[:, numpy.newaxis], (1, 8))[numpy.newaxis]
    path = write_raster(data=data, bounds=(-180.0, -85.0, 180.0, 85.0))
    registry = MapRegistry()
    greys = styling.StyleConfig(colours=["#000000", "#ffffff"], vmin=0, vmax=90)
    registry.register("lat", str(path), greys)
    service = tile_service.TileService(registry, tile_size=256)
    red = _decode(service.render("lat", 2, 2, 1, "png").content)[0].astype(float)
    registry.close()

    extent = tile_geometry.tile_to_mercator_extent(tile_geometry.TileAddress(2, 2, 1))
    pixel_height = (extent.maxy - extent.miny) / 256
    for row in (0, 64, 128, 192, 255):
        y = extent.maxy - (row + 0.5) * pixel_height
        expected = mercantile.lnglat(0.0, y).lat
        assert red[row, 0] / 255.0 * 90.0 == pytest.approx(expected, abs=0.75)
        assert (red[row] == red[row, 0]).all()
    # Row 128 sits at 40.85 degrees north, not half way up the tile.
    assert red[128, 0] / 255.0 * 90.0 > 40.0


def test_concurrent_renders_match_sequential(registry: MapRegistry) -> None:
    """Test that tiles rendered from many threads equal sequential renders."""
    service = tile_service.TileService(registry, tile_size=256)
    first = tile_geometry.lnglat_to_tile(-10.0, 10.0, 7)
    last = tile_geometry.lnglat_to_tile(10.0, -10.0, 7)
    addresses = [
        (7, x, y)
        for x in range(first.x, last.x + 1)
        for y in range(first.y, last.y + 1)
    ]
    assert len(addresses) >= 32

    def _render(address: tuple[int, int, int]) -> bytes:
        return service.render("t1", *address, "png").content

    expected = [_render(address) for address in addresses]
    with futures.ThreadPoolExecutor(max_workers=8) as pool:
        concurrent = list(pool.map(_render, addresses * 3))
    assert concurrent == expected * 3
