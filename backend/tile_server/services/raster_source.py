"""Band-selective raster reads against tile extents.

This module wraps a rasterio dataset handle. The handle is opened once
when a layer is registered and shared by every tile request for that
layer, so reads are serialized by a per-source lock: a GDAL dataset
handle must not be used from two threads at the same time.

A tile read builds a regular pixel grid over the requested extent in the
extent's own CRS and warps every source band onto it with
rasterio.warp.reproject, so each output pixel is sampled at its true
position even when the raster is stored in another projection. Pixels
the source does not cover, or that hold its NoData value, come back
masked; tiles outside the raster coverage are all-NoData buffers instead
of errors.

Example:
    Read a tile worth of pixels from a GeoTIFF:
        >>> from tile_server.services import raster_source, tile_geometry
        >>> source = raster_source.RasterSource.open("dem.tif")
        >>> extent = tile_geometry.tile_to_mercator_extent(
        ...     tile_geometry.TileAddress(z=10, x=304, y=624)
        ... )
        >>> pixels = source.read_tile(extent, bands=[1], output_size=256)
        >>> pixels.data.shape
        (1, 256, 256)
        >>> source.close()
"""

from __future__ import annotations

import dataclasses
import logging
import math
import threading
from typing import TYPE_CHECKING, Any

import numpy
import rasterio
from rasterio import crs as rio_crs
from rasterio import enums as rio_enums
from rasterio import errors as rio_errors
from rasterio import transform as rio_transform
from rasterio import warp
from rasterio import windows as rio_windows

from tile_server.core import errors
from tile_server.services import tile_geometry

if TYPE_CHECKING:
    from collections.abc import Sequence

    import affine

logger = logging.getLogger(__name__)

RESAMPLING = {
    "nearest": rio_enums.Resampling.nearest,
    "bilinear": rio_enums.Resampling.bilinear,
}

_STATS_SIZE = 1024


@dataclasses.dataclass
class PixelBuffer:
    """Pixels of one or more bands for a single tile.

    Attributes:
        data: float64 array shaped (bands, height, width), row-major.
        mask: bool array of the same shape, True where the pixel is NoData
            or outside the raster coverage.
    """

    data: numpy.ndarray
    mask: numpy.ndarray

    @property
    def band_count(self) -> int:
        return int(self.data.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        return int(self.data.shape[1]), int(self.data.shape[2])


@dataclasses.dataclass(frozen=True)
class PixelWindow:
    """Fractional pixel window (column/row offsets and sizes)."""

    col_off: float
    row_off: float
    width: float
    height: float

    @property
    def col_end(self) -> float:
        return self.col_off + self.width

    @property
    def row_end(self) -> float:
        return self.row_off + self.height

    def intersection(self, width: int, height: int) -> PixelWindow | None:
        """Clip the window to a raster of the given pixel size."""
        col0 = max(self.col_off, 0.0)
        row0 = max(self.row_off, 0.0)
        col1 = min(self.col_end, float(width))
        row1 = min(self.row_end, float(height))
        if col0 >= col1 or row0 >= row1:
            return None
        return PixelWindow(col0, row0, col1 - col0, row1 - row0)


def extent_to_window(
    extent: tile_geometry.GeoExtent,
    transform: affine.Affine,
) -> PixelWindow:
    """Convert an extent (in the raster CRS) to a pixel-space window.

    Args:
        extent: Extent expressed in the same CRS as the geotransform.
        transform: Pixel-to-geographic affine transform of the raster.

    Returns:
        The window covering the extent. Works for north-up and south-up
        rasters alike.
    """
    inverse = ~transform
    corners = [
        inverse @ (extent.minx, extent.maxy),
        inverse @ (extent.maxx, extent.maxy),
        inverse @ (extent.maxx, extent.miny),
        inverse @ (extent.minx, extent.miny),
    ]
    cols = [c for c, _ in corners]
    rows = [r for _, r in corners]
    return PixelWindow(
        col_off=min(cols),
        row_off=min(rows),
        width=max(cols) - min(cols),
        height=max(rows) - min(rows),
    )


class RasterSource:
    """An open, read-only raster dataset shared across tile requests.

    Attributes:
        path: Path the dataset was opened from.
        crs: Native coordinate reference system (may be None).
        transform: Pixel-to-geographic affine transform.
        width: Raster width in pixels.
        height: Raster height in pixels.
        count: Number of bands.
        nodata: Per-band NoData values (None where a band has none).
        driver: Short GDAL driver name.
        has_overview: True if any band carries down-sampled overviews.
        dtypes: Per-band data type names.
    """

    def __init__(
        self,
        dataset: Any,
        path: str,
        nodata: Sequence[float | None] | None = None,
    ) -> None:
        self._dataset = dataset
        self._lock = threading.Lock()
        self.path = path
        self.crs: rio_crs.CRS | None = dataset.crs
        self.transform: affine.Affine = dataset.transform
        self.width: int = dataset.width
        self.height: int = dataset.height
        self.count: int = dataset.count
        self.driver: str = dataset.driver
        self.dtypes: tuple[str, ...] = tuple(dataset.dtypes)
        self.has_overview: bool = any(
            dataset.overviews(band) for band in dataset.indexes
        )
        self.nodata: tuple[float | None, ...] = (
            tuple(nodata) if nodata is not None else tuple(dataset.nodatavals)
        )

    @classmethod
    def open(
        cls,
        path: str,
        nodata: Sequence[float | None] | None = None,
    ) -> RasterSource:
        """Open a raster file.

        Args:
            path: Any GDAL-readable raster path.
            nodata: Optional per-band NoData override; must hold exactly one
                value per band.

        Returns:
            The opened RasterSource.

        Raises:
            SourceReadError: If the file cannot be opened as a raster.
            InvalidStyleError: If the NoData override has the wrong length.
        """
        try:
            dataset = rasterio.open(path)
        except rio_errors.RasterioError as e:
            raise errors.SourceReadError(f"Cannot open raster {path}: {e}") from e

        if nodata is not None and len(nodata) != dataset.count:
            dataset.close()
            raise errors.InvalidStyleError(
                f"The raster has {dataset.count} bands. "
                "Expected the same number of no_data values"
            )
        logger.debug("Opened raster %s (%s bands)", path, dataset.count)
        return cls(dataset, path, nodata)

    @property
    def closed(self) -> bool:
        return bool(self._dataset.closed)

    def close(self) -> None:
        """Release the dataset handle. Safe to call more than once."""
        with self._lock:
            if not self._dataset.closed:
                self._dataset.close()
                logger.debug("Closed raster %s", self.path)

    def bounds(self) -> tile_geometry.GeoExtent:
        """Return the raster extent in its native CRS."""
        west, south, east, north = rio_transform.array_bounds(
            self.height, self.width, self.transform
        )
        return tile_geometry.GeoExtent(
            minx=min(west, east),
            miny=min(south, north),
            maxx=max(west, east),
            maxy=max(south, north),
            crs=self.crs.to_string() if self.crs else "",
        )

    def geotransform(self) -> tuple[float, ...]:
        """Return the geotransform in GDAL coefficient order."""
        return tuple(self.transform.to_gdal())

    def _native_extent(
        self,
        extent: tile_geometry.GeoExtent,
    ) -> tile_geometry.GeoExtent:
        if self.crs is None:
            raise errors.ReprojectionError(
                f"Raster {self.path} has no coordinate reference system"
            )
        return tile_geometry.reproject_extent(extent, self.crs)

    def _check_bands(self, bands: Sequence[int]) -> None:
        for band in bands:
            if not 1 <= band <= self.count:
                raise errors.InvalidBandError(
                    f"Band {band} is outside 1..{self.count} for {self.path}"
                )

    def intersects(self, extent: tile_geometry.GeoExtent) -> bool:
        """Return True if the extent overlaps the raster's pixels."""
        window = extent_to_window(self._native_extent(extent), self.transform)
        return window.intersection(self.width, self.height) is not None

    def read_tile(
        self,
        extent: tile_geometry.GeoExtent,
        bands: Sequence[int],
        output_size: int,
        resampling: str = "nearest",
    ) -> PixelBuffer:
        """Warp the pixels covering an extent onto a square tile grid.

        The output grid is regular in the extent's own CRS, so every output
        pixel is sampled at its true location in the source. Passing an
        EPSG:3857 tile extent gives a slippy-map tile, whatever the CRS of
        the raster.

        Args:
            extent: Requested extent in any CRS rasterio can transform.
            bands: 1-based band indexes, each warped independently.
            output_size: Edge length of the output buffer in pixels.
            resampling: "nearest" or "bilinear".

        Returns:
            PixelBuffer of shape (len(bands), output_size, output_size).
            Areas outside the raster hold the band NoData value (0 when a
            band has none) and are always masked.

        Raises:
            InvalidBandError: If a band index is out of range.
            ReprojectionError: If the extent cannot be mapped to the raster.
            SourceReadError: If the underlying read fails.
            SourceClosedError: If the handle was released.
        """
        self._check_bands(bands)
        if self.crs is None:
            raise errors.ReprojectionError(
                f"Raster {self.path} has no coordinate reference system"
            )
        try:
            dst_crs = rio_crs.CRS.from_user_input(extent.crs)
        except rio_errors.CRSError as e:
            raise errors.ReprojectionError(
                f"Cannot read {self.path} in {extent.crs}: {e}"
            ) from e
        dst_transform = rio_transform.from_bounds(
            *extent.as_tuple(), output_size, output_size
        )

        data = numpy.full(
            (len(bands), output_size, output_size), numpy.nan, dtype=numpy.float64
        )
        if self.intersects(extent):
            self._warp(bands, data, dst_transform, dst_crs, RESAMPLING[resampling])

        mask = numpy.isnan(data)
        for idx, band in enumerate(bands):
            data[idx][mask[idx]] = self._fill_value(band)
        return PixelBuffer(data, mask)

    def _warp(
        self,
        bands: Sequence[int],
        destination: numpy.ndarray,
        dst_transform: affine.Affine,
        dst_crs: rio_crs.CRS,
        resampling: rio_enums.Resampling,
    ) -> None:
        with self._lock:
            if self._dataset.closed:
                raise errors.SourceClosedError(
                    f"Raster {self.path} has been released"
                )
            for idx, band in enumerate(bands):
                try:
                    warp.reproject(
                        source=rasterio.band(self._dataset, band),
                        destination=destination[idx],
                        src_crs=self.crs,
                        src_transform=self.transform,
                        src_nodata=self.nodata[band - 1],
                        dst_transform=dst_transform,
                        dst_crs=dst_crs,
                        dst_nodata=numpy.nan,
                        resampling=resampling,
                    )
                except rio_errors.CRSError as e:
                    raise errors.ReprojectionError(
                        f"Cannot warp {self.path} to {dst_crs}: {e}"
                    ) from e
                except rio_errors.RasterioError as e:
                    raise errors.SourceReadError(
                        f"Cannot read band {band} from {self.path}: {e}"
                    ) from e

    def _read(
        self,
        window: PixelWindow,
        bands: Sequence[int],
        out_shape: tuple[int, int],
        resampling: rio_enums.Resampling,
    ) -> numpy.ndarray:
        rio_window = rio_windows.Window(
            window.col_off, window.row_off, window.width, window.height
        )
        with self._lock:
            if self._dataset.closed:
                raise errors.SourceClosedError(
                    f"Raster {self.path} has been released"
                )
            try:
                block = self._dataset.read(
                    indexes=list(bands),
                    window=rio_window,
                    out_shape=(len(bands), *out_shape),
                    resampling=resampling,
                )
            except rio_errors.RasterioError as e:
                raise errors.SourceReadError(
                    f"Cannot read {rio_window} from {self.path}: {e}"
                ) from e
        return block.astype(numpy.float64, copy=False)

    def _fill_value(self, band: int) -> float:
        value = self.nodata[band - 1]
        return 0.0 if value is None else float(value)

    def _nodata_mask(self, values: numpy.ndarray, band: int) -> numpy.ndarray:
        value = self.nodata[band - 1]
        if value is None:
            return numpy.zeros(values.shape, dtype=bool)
        if math.isnan(value):
            return numpy.isnan(values)
        return values == value

    def band_range(self, band: int, trim: float = 0.02) -> tuple[float, float]:
        """Approximate the value range of a band.

        The band is read at a reduced resolution (overviews are used when
        present) and NoData is ignored. ``trim`` of the span is removed from
        each end of the range.

        Args:
            band: 1-based band index.
            trim: Fraction of the span trimmed from both ends.

        Returns:
            (low, high) with low < high.
        """
        self._check_bands([band])
        scale = max(self.width, self.height) / _STATS_SIZE
        out_shape = (
            max(1, math.ceil(self.height / max(scale, 1.0))),
            max(1, math.ceil(self.width / max(scale, 1.0))),
        )
        full = PixelWindow(0.0, 0.0, float(self.width), float(self.height))
        values = self._read(full, [band], out_shape, rio_enums.Resampling.nearest)[0]
        valid = values[~self._nodata_mask(values, band) & numpy.isfinite(values)]
        if valid.size == 0:
            return 0.0, 1.0
        low, high = float(valid.min()), float(valid.max())
        skip = (high - low) * trim
        low, high = low + skip, high - skip
        if low >= high:
            return low, low + 1.0
        return low, high
