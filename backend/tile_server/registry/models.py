"""Data models for registered maps.

This module defines the registration payload accepted over HTTP and in the
map config file, the metadata returned to the registering client, and the
MapEntry record the registry keeps per layer.

Example:
    Registering a single-band raster with a palette:
        >>> from tile_server.registry.models import MapRegistration
        >>> registration = MapRegistration.model_validate(
        ...     {
        ...         "name": "dem",
        ...         "path": "/data/dem.tif",
        ...         "style": {"name": "viridis", "vmin": 0, "vmax": 100},
        ...     }
        ... )
        >>> registration.is_vector
        False
"""

from __future__ import annotations

import dataclasses
from typing import Any, Literal

import pydantic
from pydantic import alias_generators

from tile_server.services import raster_source, styling
from tile_server.services import vector as vector_layers

MapKind = Literal["raster", "vector"]


class MapRegistration(pydantic.BaseModel):
    """One ``{name, path, style?, xml?}`` registration request.

    Attributes:
        name: Layer name used in tile URLs. Empty means "generate one".
        path: Raster or vector file path.
        style: Raster colour mapping. Derived from the data when omitted.
        xml: Mapnik stylesheet; its presence selects the vector path.
        no_data_value: Per-band NoData override for rasters.
    """

    name: str = ""
    path: str
    style: styling.StyleConfig | None = None
    xml: str | None = None
    no_data_value: list[float] | None = None

    @pydantic.field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if "/" in value or (value and not value.strip()):
            raise ValueError("Map names must not contain '/' or be blank")
        return value

    @property
    def is_vector(self) -> bool:
        return self.xml is not None


class _CamelModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        alias_generator=alias_generators.to_camel,
        populate_by_name=True,
    )


class SpatialInfo(_CamelModel):
    """Description of a source's spatial reference."""

    epsg_code: int | None
    proj4: str
    wkt: str


class MapMetadata(_CamelModel):
    """Derived information returned to the registering client.

    ``bounds`` is always ``[west, south, east, north]`` in lon/lat so the
    client can fit its view; ``extent`` is the same box in the source CRS.
    Raster-only fields are None for vector layers and vice versa.
    """

    name: str
    kind: MapKind
    path: str
    extent: list[float]
    bounds: list[float]
    spatial_info: SpatialInfo
    spatial_units: str | None = None
    geotransform: list[float] | None = None
    no_data_value: list[float | None] | None = None
    driver_name: str | None = None
    has_overview: bool | None = None
    band_count: int | None = None
    style: dict[str, Any] | None = None
    feature_count: int | None = None


@dataclasses.dataclass(frozen=True)
class MapEntry:
    """A registered layer.

    Exactly one of ``source`` and ``vector`` is set. Entries are never
    mutated; re-registering a name replaces the entry.
    """

    name: str
    metadata: MapMetadata
    source: raster_source.RasterSource | None = None
    style: styling.Style | None = None
    vector: vector_layers.VectorSpec | None = None

    @property
    def kind(self) -> MapKind:
        return "vector" if self.vector is not None else "raster"
