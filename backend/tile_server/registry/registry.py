"""In-process registry of named map layers.

The registry owns every open raster handle. Registration opens and
validates the source and builds the entry without holding the registry
lock, then inserts it in one step, so concurrent lookups see either the
previous entry or the complete new one. A failed registration leaves the
registry unchanged and releases whatever it opened.

Removing or replacing an entry closes its raster handle; a tile read
still in flight against that handle fails with SourceClosedError.

Example:
    >>> from tile_server.registry import MapRegistry
    >>> from tile_server.services import styling
    >>> registry = MapRegistry()
    >>> entry = registry.register(
    ...     "dem",
    ...     "/data/dem.tif",
    ...     styling.StyleConfig(name="viridis", vmin=0, vmax=100),
    ... )
    >>> registry.resolve("dem") is entry
    True
    >>> registry.remove("dem")
    True
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import TYPE_CHECKING

from rasterio import crs as rio_crs

from tile_server.core import errors
from tile_server.registry import models
from tile_server.services import raster_source, styling, tile_geometry
from tile_server.services import vector as vector_layers

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)


def _spatial_info(crs: rio_crs.CRS) -> models.SpatialInfo:
    return models.SpatialInfo(
        epsg_code=crs.to_epsg(),
        proj4=crs.to_proj4(),
        wkt=crs.to_wkt(),
    )


def _raster_metadata(
    name: str,
    source: raster_source.RasterSource,
    style: styling.Style,
) -> models.MapMetadata:
    if source.crs is None:
        raise errors.ReprojectionError(
            f"Raster {source.path} has no coordinate reference system"
        )
    extent = source.bounds()
    bounds = tile_geometry.reproject_extent(extent, tile_geometry.WGS84)
    return models.MapMetadata(
        name=name,
        kind="raster",
        path=source.path,
        extent=list(extent.as_tuple()),
        bounds=list(bounds.as_tuple()),
        spatial_info=_spatial_info(source.crs),
        spatial_units=source.crs.linear_units,
        geotransform=list(source.geotransform()),
        no_data_value=list(source.nodata),
        driver_name=source.driver,
        has_overview=source.has_overview,
        band_count=source.count,
        style=styling.describe(style),
    )


def _vector_metadata(name: str, spec: vector_layers.VectorSpec) -> models.MapMetadata:
    crs = rio_crs.CRS.from_wkt(spec.crs_wkt)
    return models.MapMetadata(
        name=name,
        kind="vector",
        path=spec.path,
        extent=list(spec.extent.as_tuple()),
        bounds=list(spec.bounds.as_tuple()),
        spatial_info=_spatial_info(crs),
        spatial_units=crs.linear_units,
        feature_count=spec.feature_count,
    )


class MapRegistry:
    """Thread-safe mapping of layer names to MapEntry records."""

    def __init__(self) -> None:
        self._entries: dict[str, models.MapEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def _insert(self, entry: models.MapEntry) -> None:
        with self._lock:
            previous = self._entries.get(entry.name)
            self._entries[entry.name] = entry
        if previous is not None:
            self._release(previous)
            logger.info("Replaced map %s", entry.name)
        else:
            logger.info("Registered %s map %s", entry.kind, entry.name)

    @staticmethod
    def _release(entry: models.MapEntry) -> None:
        if entry.source is not None:
            entry.source.close()

    def register(
        self,
        name: str,
        path: str,
        style: styling.StyleConfig | styling.Style | None = None,
        no_data: Sequence[float] | None = None,
    ) -> models.MapEntry:
        """Open a raster, validate its style and add or replace the entry.

        Args:
            name: Layer name; an empty name is replaced by a UUID4.
            path: Raster file path.
            style: Style definition or validated style. When None a style
                is derived from the data.
            no_data: Optional per-band NoData override.

        Returns:
            The inserted MapEntry.

        Raises:
            SourceReadError: If the raster cannot be opened.
            InvalidStyleError: If the style is malformed or reads bands the
                raster does not have.
            ReprojectionError: If the raster extent cannot be expressed in
                lon/lat.
        """
        name = name or str(uuid.uuid4())
        source = raster_source.RasterSource.open(path, no_data)
        try:
            if style is None:
                resolved = styling.default_style(source)
            elif isinstance(style, styling.StyleConfig):
                resolved = style.to_style()
            else:
                resolved = style
            styling.check_bands(resolved, source.count)
            metadata = _raster_metadata(name, source, resolved)
        except Exception:
            source.close()
            raise

        entry = models.MapEntry(
            name=name, metadata=metadata, source=source, style=resolved
        )
        self._insert(entry)
        return entry

    def register_vector(
        self,
        name: str,
        path: str,
        xml: str | None = None,
    ) -> models.MapEntry:
        """Add or replace a vector layer.

        Args:
            name: Layer name; an empty name is replaced by a UUID4.
            path: Vector file path.
            xml: Mapnik stylesheet. Generated from the layer when None.

        Returns:
            The inserted MapEntry.

        Raises:
            SourceReadError: If the file cannot be opened.
            InvalidStyleError: If the stylesheet is not a ``<Map>`` document.
            ReprojectionError: If the layer extent cannot be expressed in
                lon/lat.
        """
        name = name or str(uuid.uuid4())
        spec = vector_layers.open_vector(name, path, xml)
        entry = models.MapEntry(
            name=name, metadata=_vector_metadata(name, spec), vector=spec
        )
        self._insert(entry)
        return entry

    def add(self, registration: models.MapRegistration) -> models.MapEntry:
        """Register a raster or vector layer from a registration payload."""
        if registration.is_vector:
            return self.register_vector(
                registration.name, registration.path, registration.xml
            )
        return self.register(
            registration.name,
            registration.path,
            registration.style,
            registration.no_data_value,
        )

    def load(self, registrations: Iterable[models.MapRegistration]) -> None:
        """Register a sequence of layers, stopping at the first failure."""
        for registration in registrations:
            self.add(registration)

    def resolve(self, name: str) -> models.MapEntry:
        """Return the entry for a name.

        Raises:
            UnknownLayerError: If no layer has that name.
        """
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            raise errors.UnknownLayerError(f"The map {name!r} does not exist")
        return entry

    def remove(self, name: str) -> bool:
        """Drop an entry and release its raster handle.

        Returns:
            True if an entry was removed, False if none existed.
        """
        with self._lock:
            entry = self._entries.pop(name, None)
        if entry is None:
            return False
        self._release(entry)
        logger.info("Removed map %s", name)
        return True

    def metadata(self, name: str) -> models.MapMetadata:
        """Return the derived metadata of a layer."""
        return self.resolve(name).metadata

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def entries(self) -> list[models.MapEntry]:
        with self._lock:
            return [self._entries[name] for name in sorted(self._entries)]

    def close(self) -> None:
        """Remove every entry, releasing all raster handles."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            self._release(entry)
        logger.info("Closed map registry (%d maps)", len(entries))
