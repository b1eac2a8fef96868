"""Vector layer definitions and Mapnik stylesheets.

Vector layers are not rendered here. Registration reads the layer's
bounds and CRS with fiona and pairs the file with a Mapnik XML
stylesheet, either supplied by the caller or generated from a fixed
diverging palette. Tiles are produced by a VectorRenderer collaborator
that receives the stylesheet and the tile's mercator extent.

The generated stylesheet is built with ElementTree, so the file path and
projection strings are escaped as XML text and attributes.

Example:
    >>> from tile_server.services import vector
    >>> spec = vector.open_vector("countries", "/data/countries.shp")
    >>> spec.bounds.as_tuple()
    (-180.0, -90.0, 180.0, 83.6)
    >>> print(spec.stylesheet)  # doctest: +SKIP
    <Map srs="epsg:3857"><Style name="countries">...
"""

from __future__ import annotations

import dataclasses
import logging
import zlib
from typing import Protocol
from xml.etree import ElementTree

import fiona
from fiona import errors as fiona_errors
from rasterio import crs as rio_crs
from rasterio import errors as rio_errors

from tile_server.core import errors
from tile_server.services import tile_geometry

logger = logging.getLogger(__name__)

MAP_SRS = "epsg:3857"

PALETTE = (
    "#8e0152",
    "#c51b7d",
    "#de77ae",
    "#f1b6da",
    "#fde0ef",
    "#e6f5d0",
    "#b8e186",
    "#7fbc41",
    "#4d9221",
    "#276419",
)


class VectorRenderer(Protocol):
    """Rendering engine that turns a stylesheet into tile images."""

    def render(
        self,
        stylesheet: str,
        extent: tile_geometry.GeoExtent,
        size: int,
        img_format: str,
    ) -> bytes:
        """Render the mercator extent as a size x size image in img_format."""
        ...


@dataclasses.dataclass(frozen=True)
class VectorSpec:
    """A registered vector data source and its stylesheet.

    Attributes:
        path: File the data is read from.
        stylesheet: Mapnik XML document rendering the file.
        crs_wkt: WKT of the layer's CRS.
        bounds: Layer bounds in lon/lat.
        extent: Layer bounds in the layer's CRS.
        feature_count: Number of features in the first layer.
    """

    path: str
    stylesheet: str
    crs_wkt: str
    bounds: tile_geometry.GeoExtent
    extent: tile_geometry.GeoExtent
    feature_count: int


def pick_colour(name: str) -> str:
    """Pick a palette colour for a layer name, stable across processes."""
    return PALETTE[zlib.crc32(name.encode("utf-8")) % len(PALETTE)]


def generate_stylesheet(name: str, path: str, srs: str) -> str:
    """Build a single-rule stylesheet drawing polygons and lines.

    Args:
        name: Layer name, used for the style name and the colour.
        path: Data file read through Mapnik's ogr plugin.
        srs: Projection of the data file (proj4 or EPSG string).

    Returns:
        Serialized Mapnik XML.
    """
    fill = pick_colour(name)
    root = ElementTree.Element("Map", srs=MAP_SRS)
    style = ElementTree.SubElement(root, "Style", name=name)
    rule = ElementTree.SubElement(style, "Rule")
    ElementTree.SubElement(
        rule, "PolygonSymbolizer", {"fill": fill, "fill-opacity": "0.5"}
    )
    ElementTree.SubElement(
        rule,
        "LineSymbolizer",
        {"stroke": fill, "stroke-opacity": "1", "stroke-width": "1"},
    )

    layer = ElementTree.SubElement(root, "Layer", name=name, srs=srs)
    ElementTree.SubElement(layer, "StyleName").text = name
    datasource = ElementTree.SubElement(layer, "Datasource")
    for key, value in (("file", path), ("layer_by_index", "0"), ("type", "ogr")):
        ElementTree.SubElement(datasource, "Parameter", name=key).text = value
    return ElementTree.tostring(root, encoding="unicode")


def validate_stylesheet(xml: str) -> str:
    """Check that a supplied stylesheet is a Mapnik ``<Map>`` document.

    Raises:
        InvalidStyleError: If the XML does not parse or has another root.
    """
    try:
        root = ElementTree.fromstring(xml)
    except ElementTree.ParseError as e:
        raise errors.InvalidStyleError(f"Invalid stylesheet: {e}") from e
    if root.tag != "Map":
        raise errors.InvalidStyleError(
            f"The stylesheet root must be <Map>, got <{root.tag}>"
        )
    return xml


def open_vector(name: str, path: str, xml: str | None = None) -> VectorSpec:
    """Read a vector file's metadata and pair it with a stylesheet.

    Files without a CRS are assumed to be in lon/lat.

    Args:
        name: Layer name.
        path: Any OGR-readable vector path; the first layer is used.
        xml: Optional caller-supplied stylesheet.

    Returns:
        The VectorSpec.

    Raises:
        SourceReadError: If the file cannot be opened.
        ReprojectionError: If the bounds cannot be mapped to lon/lat.
        InvalidStyleError: If the supplied stylesheet is invalid.
    """
    if xml is not None:
        validate_stylesheet(xml)

    try:
        with fiona.open(path) as collection:
            minx, miny, maxx, maxy = collection.bounds
            crs_wkt = collection.crs_wkt or rio_crs.CRS.from_epsg(4326).to_wkt()
            feature_count = len(collection)
    except (fiona_errors.FionaError, OSError) as e:
        raise errors.SourceReadError(f"Cannot open vector {path}: {e}") from e

    try:
        source_crs = rio_crs.CRS.from_wkt(crs_wkt)
    except rio_errors.CRSError as e:
        raise errors.ReprojectionError(f"Unsupported CRS for {path}: {e}") from e
    try:
        extent = tile_geometry.GeoExtent(
            minx, miny, maxx, maxy, crs=source_crs.to_string()
        )
    except ValueError as e:
        raise errors.SourceReadError(f"Vector {path} has no extent: {e}") from e
    bounds = tile_geometry.reproject_extent(extent, tile_geometry.WGS84)

    if xml is None:
        xml = generate_stylesheet(name, path, source_crs.to_proj4())
    logger.debug("Read vector %s with %d features", path, feature_count)
    return VectorSpec(
        path=path,
        stylesheet=xml,
        crs_wkt=crs_wkt,
        bounds=bounds,
        extent=extent,
        feature_count=feature_count,
    )
