"""Slippy-map tile geometry.

This module converts XYZ tile addresses into geographic extents and back.
The quadtree arithmetic is delegated to mercantile; this module adds the
address validation the HTTP layer relies on and CRS-aware extents.
reproject_extent delegates the coordinate transform to rasterio.

Example:
    Compute the lon/lat and mercator bounds of a tile:
        >>> from tile_server.services import tile_geometry
        >>> address = tile_geometry.TileAddress(z=1, x=0, y=0)
        >>> tile_geometry.tile_to_extent(address)
        GeoExtent(minx=-180.0, miny=0.0, maxx=0.0, maxy=85.0511287798066, crs='EPSG:4326')
        >>> tile_geometry.tile_to_mercator_extent(address).maxx
        0.0
"""

from __future__ import annotations

import dataclasses
import math

import mercantile
from rasterio import crs as rio_crs
from rasterio import errors as rio_errors
from rasterio import warp

from tile_server.core import errors

WGS84 = "EPSG:4326"
WEB_MERCATOR = "EPSG:3857"
MAX_ZOOM = 32
MAX_LATITUDE = 85.0511287798066


@dataclasses.dataclass(frozen=True)
class TileAddress:
    """An XYZ tile address; validated by the functions that consume it."""

    z: int
    x: int
    y: int

    def validate(self) -> None:
        """Raise OutOfRangeTileError unless the address is on the grid."""
        if not 0 <= self.z <= MAX_ZOOM:
            raise errors.OutOfRangeTileError(
                f"Zoom {self.z} is outside [0, {MAX_ZOOM}]"
            )
        n = 2**self.z
        if not (0 <= self.x < n and 0 <= self.y < n):
            raise errors.OutOfRangeTileError(
                f"Tile {self.x}/{self.y} is outside the grid at zoom {self.z}"
            )

    def to_mercantile(self) -> mercantile.Tile:
        return mercantile.Tile(x=self.x, y=self.y, z=self.z)

    @classmethod
    def from_mercantile(cls, tile: mercantile.Tile) -> TileAddress:
        return cls(z=tile.z, x=tile.x, y=tile.y)


@dataclasses.dataclass(frozen=True)
class GeoExtent:
    """Axis-aligned bounding box in a given CRS with min < max on both axes."""

    minx: float
    miny: float
    maxx: float
    maxy: float
    crs: str = WGS84

    def __post_init__(self) -> None:
        if not (self.minx < self.maxx and self.miny < self.maxy):
            raise ValueError(f"Degenerate extent {self.as_tuple()}")

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.minx, self.miny, self.maxx, self.maxy)


def tile_to_extent(address: TileAddress) -> GeoExtent:
    """Return the lon/lat (EPSG:4326) extent covered by a tile.

    Adjacent tiles share their boundary coordinate exactly, because
    mercantile computes both edges by the same expression from the same
    integer.

    Args:
        address: Tile address to convert.

    Returns:
        GeoExtent with longitudes on x and latitudes on y.

    Raises:
        OutOfRangeTileError: If z/x/y is not a valid slippy-map address.
    """
    address.validate()
    bbox = mercantile.bounds(address.to_mercantile())
    return GeoExtent(bbox.west, bbox.south, bbox.east, bbox.north, crs=WGS84)


def tile_to_mercator_extent(address: TileAddress) -> GeoExtent:
    """Return the EPSG:3857 extent covered by a tile."""
    address.validate()
    bbox = mercantile.xy_bounds(address.to_mercantile())
    return GeoExtent(
        bbox.left, bbox.bottom, bbox.right, bbox.top, crs=WEB_MERCATOR
    )


def lnglat_to_tile(lng: float, lat: float, zoom: int) -> TileAddress:
    """Find the tile containing a lon/lat coordinate at a zoom level.

    Coordinates outside the mercator square are clamped to the edge tiles.

    Args:
        lng: Longitude in degrees.
        lat: Latitude in degrees.
        zoom: Zoom level of the returned tile.

    Returns:
        The containing TileAddress.

    Raises:
        OutOfRangeTileError: If zoom is outside [0, MAX_ZOOM].
    """
    if not 0 <= zoom <= MAX_ZOOM:
        raise errors.OutOfRangeTileError(f"Zoom {zoom} is outside [0, {MAX_ZOOM}]")
    lng = min(max(lng, -180.0), 180.0)
    lat = min(max(lat, -MAX_LATITUDE), MAX_LATITUDE)
    address = TileAddress.from_mercantile(mercantile.tile(lng, lat, zoom))
    address.validate()
    return address


def parent(address: TileAddress, zoom: int | None = None) -> TileAddress | None:
    """Return the tile at a lower zoom level that contains this tile.

    Args:
        address: Child tile.
        zoom: Target zoom level, defaults to one level up.

    Returns:
        The containing tile, or None for the zoom 0 tile.
    """
    address.validate()
    if address.z == 0:
        return None
    target = address.z - 1 if zoom is None else zoom
    if not 0 <= target <= address.z:
        raise errors.OutOfRangeTileError(
            f"Cannot zoom out from {address.z} to {target}"
        )
    if target == address.z:
        return address
    return TileAddress.from_mercantile(
        mercantile.parent(address.to_mercantile(), zoom=target)
    )


def children(address: TileAddress, zoom: int | None = None) -> list[TileAddress]:
    """Return the tiles at a higher zoom level covered by this tile.

    Tiles are ordered row by row, west to east.
    """
    address.validate()
    target = address.z + 1 if zoom is None else zoom
    if not address.z <= target <= MAX_ZOOM:
        raise errors.OutOfRangeTileError(
            f"Cannot zoom in from {address.z} to {target}"
        )
    if target == address.z:
        return [address]
    tiles = mercantile.children(address.to_mercantile(), zoom=target)
    return sorted(
        (TileAddress.from_mercantile(tile) for tile in tiles),
        key=lambda tile: (tile.y, tile.x),
    )


def reproject_extent(
    extent: GeoExtent,
    dst_crs: rio_crs.CRS | str,
    densify_pts: int = 21,
) -> GeoExtent:
    """Transform an extent into another CRS.

    The boundary is densified before transformation so that curved edges
    in the target CRS are enclosed by the returned box.

    Args:
        extent: Extent to transform.
        dst_crs: Target CRS (rasterio CRS or any user input it accepts).
        densify_pts: Points added along each edge.

    Returns:
        The enclosing GeoExtent in the target CRS.

    Raises:
        ReprojectionError: If the target CRS is invalid or the transform
            yields non-finite or degenerate coordinates.
    """
    try:
        target = rio_crs.CRS.from_user_input(dst_crs)
        source = rio_crs.CRS.from_user_input(extent.crs)
        if target == source:
            return GeoExtent(*extent.as_tuple(), crs=target.to_string())
        bounds = warp.transform_bounds(
            source, target, *extent.as_tuple(), densify_pts=densify_pts
        )
    except (rio_errors.CRSError, rio_errors.RasterioError) as e:
        raise errors.ReprojectionError(
            f"Cannot transform {extent.crs} extent to {dst_crs}: {e}"
        ) from e

    if not all(math.isfinite(v) for v in bounds):
        raise errors.ReprojectionError(
            f"Transform of {extent.as_tuple()} to {dst_crs} is not finite"
        )
    try:
        return GeoExtent(*bounds, crs=target.to_string())
    except ValueError as e:
        raise errors.ReprojectionError(str(e)) from e
