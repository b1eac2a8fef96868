"""Render a raster into a static XYZ tile directory.

The ``map-tiler`` command renders every tile covering a raster's lon/lat
bounds for a range of zoom levels into ``{output}/{z}/{x}/{y}.png`` and
writes a Leaflet page, ``map.html``, that displays them. Tiles go through
the same TileService as the HTTP server, so static and served tiles are
identical.

Example:
    Pre-render zoom levels 5 to 8 of a GeoTIFF:
        $ map-tiler landsat.tif --min-zoom 5 --max-zoom 8 --output tiles \\
            --style '{"colours": [[0, 0, 0], [0.3, 0.3, 0.3]], "bands": [5, 4, 3]}'
"""

from __future__ import annotations

import argparse
import logging
import pathlib
from typing import TYPE_CHECKING

import pydantic

from tile_server.core import errors, templates
from tile_server.registry import MapRegistry
from tile_server.services import styling, tile_geometry, tile_service

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

logger = logging.getLogger(__name__)

LAYER_NAME = "tiles"


def tile_range(
    bounds: Sequence[float],
    zoom: int,
) -> Iterator[tile_geometry.TileAddress]:
    """Yield the tiles covering ``[west, south, east, north]`` at one zoom.

    Tiles are yielded column by column, north to south.
    """
    west, south, east, north = bounds
    first = tile_geometry.lnglat_to_tile(west, north, zoom)
    last = tile_geometry.lnglat_to_tile(east, south, zoom)
    for x in range(first.x, last.x + 1):
        for y in range(first.y, last.y + 1):
            yield tile_geometry.TileAddress(z=zoom, x=x, y=y)


def render_tiles(
    service: tile_service.TileService,
    bounds: Sequence[float],
    min_zoom: int,
    max_zoom: int,
    output: pathlib.Path,
) -> int:
    """Write every tile of the ``tiles`` layer within bounds to disk.

    Returns:
        Number of tiles written.
    """
    count = 0
    for zoom in range(min_zoom, max_zoom + 1):
        addresses = list(tile_range(bounds, zoom))
        logger.info("Rendering %d tile(s) at zoom %d", len(addresses), zoom)
        for address in addresses:
            tile = service.render(LAYER_NAME, address.z, address.x, address.y, "png")
            path = output / str(address.z) / str(address.x) / f"{address.y}.png"
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(tile.content)
            count += 1
    return count


def write_leaflet_page(
    output: pathlib.Path,
    title: str,
    bounds: list[float],
    min_zoom: int,
    max_zoom: int,
) -> pathlib.Path:
    """Write ``map.html`` displaying the tiles stored beside it."""
    page = templates.render_leaflet(
        title=title,
        tile_url="./{z}/{x}/{y}.png",
        bounds=bounds,
        min_zoom=min_zoom,
        max_zoom=max_zoom,
    )
    path = output / "map.html"
    path.write_text(page, encoding="utf-8")
    return path


def _parse_style(value: str) -> styling.StyleConfig:
    try:
        return styling.StyleConfig.model_validate_json(value)
    except pydantic.ValidationError as e:
        raise argparse.ArgumentTypeError(f"invalid style: {e}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="map-tiler",
        description="Render a raster into a static XYZ tile directory.",
    )
    parser.add_argument("input", help="GDAL-readable raster file")
    parser.add_argument("--min-zoom", type=int, required=True, help="Lowest zoom")
    parser.add_argument("--max-zoom", type=int, required=True, help="Highest zoom")
    parser.add_argument(
        "-o", "--output", type=pathlib.Path, required=True, help="Output directory"
    )
    parser.add_argument(
        "--style",
        type=_parse_style,
        default=None,
        help="Style JSON; derived from the data when omitted",
    )
    parser.add_argument("--tile-size", type=int, default=256, help="Tile edge, pixels")
    parser.add_argument(
        "--resampling", choices=["nearest", "bilinear"], default="nearest"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``map-tiler`` command.

    Returns:
        Process exit status: 0 on success, 1 when the raster cannot be
        registered or rendered.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if not 0 <= args.min_zoom <= args.max_zoom <= tile_geometry.MAX_ZOOM:
        parser.error(
            f"zoom levels must satisfy 0 <= min-zoom <= max-zoom <= "
            f"{tile_geometry.MAX_ZOOM}"
        )
    if args.tile_size <= 0:
        parser.error("tile-size must be positive")
    logging.basicConfig(level=args.log_level.upper())

    registry = MapRegistry()
    try:
        entry = registry.register(LAYER_NAME, args.input, args.style)
        service = tile_service.TileService(
            registry, tile_size=args.tile_size, resampling=args.resampling
        )
        args.output.mkdir(parents=True, exist_ok=True)
        count = render_tiles(
            service, entry.metadata.bounds, args.min_zoom, args.max_zoom, args.output
        )
    except errors.TileServerError as e:
        logger.error("Cannot tile %s: %s", args.input, e)
        return 1
    finally:
        registry.close()

    page = write_leaflet_page(
        args.output,
        pathlib.Path(args.input).stem,
        entry.metadata.bounds,
        args.min_zoom,
        args.max_zoom,
    )
    logger.info("Wrote %d tile(s) and %s", count, page)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
