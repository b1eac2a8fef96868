"""Per-request tile rendering.

TileService ties the engine together: it resolves the layer, computes the
mercator tile extent, warps and styles raster pixels (or hands vector layers to the
rendering collaborator) and encodes the image. It holds no per-request
state, so one instance serves concurrent requests; raster reads are
serialized per source by RasterSource.

Example:
    >>> from tile_server.registry import MapRegistry
    >>> from tile_server.services.tile_service import TileService
    >>> service = TileService(MapRegistry(), tile_size=256)
    >>> tile = service.render("dem", 6, 32, 31, "png")
    >>> tile.media_type
    'image/png'
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from tile_server.core import errors
from tile_server.services import encoder, styling, tile_geometry

if TYPE_CHECKING:
    from tile_server.registry import MapEntry, MapRegistry
    from tile_server.services import raster_source, vector

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class RenderedTile:
    """Encoded tile bytes and their media type."""

    content: bytes
    media_type: str


class TileService:
    """Render tiles for the layers of a registry.

    Args:
        registry: Registry the layer names are resolved against.
        tile_size: Edge length of rendered tiles in pixels.
        resampling: "nearest" or "bilinear" raster resampling.
        vector_renderer: Collaborator for vector layers, if any.
        default_format: Format used when a request names none.
    """

    def __init__(
        self,
        registry: MapRegistry,
        tile_size: int = 256,
        resampling: str = "nearest",
        vector_renderer: vector.VectorRenderer | None = None,
        default_format: str = "png",
    ) -> None:
        self.registry = registry
        self.tile_size = tile_size
        self.resampling = resampling
        self.vector_renderer = vector_renderer
        self.default_format = default_format

    def render(
        self,
        name: str,
        z: int,
        x: int,
        y: int,
        img_format: str | None = None,
    ) -> RenderedTile:
        """Render one tile of a layer.

        Args:
            name: Registered layer name.
            z: Zoom level.
            x: Tile column.
            y: Tile row.
            img_format: "png" or "webp", defaults to default_format.

        Returns:
            The encoded tile. Tiles outside a raster's coverage are fully
            transparent.

        Raises:
            UnsupportedFormatError: If the format is not png or webp.
            OutOfRangeTileError: If z/x/y is off the tile grid.
            UnknownLayerError: If the layer does not exist or was removed.
            VectorRenderingUnavailableError: For vector layers when no
                renderer is configured.
            TileServerError: Any read or reprojection failure.
        """
        img_format = (img_format or self.default_format).lower()
        media_type = encoder.content_type(img_format)
        address = tile_geometry.TileAddress(z=z, x=x, y=y)
        extent = tile_geometry.tile_to_mercator_extent(address)
        entry = self.registry.resolve(name)

        try:
            content = self._render_entry(entry, extent, img_format)
        except errors.TileServerError as e:
            logger.warning(
                "Failed to render %s/%d/%d/%d.%s: %s", name, z, x, y, img_format, e
            )
            raise
        logger.debug("Rendered %s/%d/%d/%d.%s", name, z, x, y, img_format)
        return RenderedTile(content=content, media_type=media_type)

    def _render_entry(
        self,
        entry: MapEntry,
        extent: tile_geometry.GeoExtent,
        img_format: str,
    ) -> bytes:
        if entry.vector is not None:
            return self._render_vector(entry.name, entry.vector, extent, img_format)
        if entry.source is not None and entry.style is not None:
            return self._render_raster(entry.source, entry.style, extent, img_format)
        raise errors.UnknownLayerError(f"The map {entry.name!r} has no data source")

    def _render_raster(
        self,
        source: raster_source.RasterSource,
        style: styling.Style,
        extent: tile_geometry.GeoExtent,
        img_format: str,
    ) -> bytes:
        if not source.intersects(extent):
            return encoder.empty_tile(self.tile_size, img_format)

        pixels = source.read_tile(
            extent,
            bands=style.bands,
            output_size=self.tile_size,
            resampling=self.resampling,
        )
        image = styling.apply_style(pixels, style)
        return encoder.encode(image, img_format)

    def _render_vector(
        self,
        name: str,
        spec: vector.VectorSpec,
        extent: tile_geometry.GeoExtent,
        img_format: str,
    ) -> bytes:
        if self.vector_renderer is None:
            raise errors.VectorRenderingUnavailableError(
                f"No vector rendering engine is configured for {name}"
            )
        return self.vector_renderer.render(
            spec.stylesheet, extent, self.tile_size, img_format
        )
