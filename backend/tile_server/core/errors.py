"""Error taxonomy shared by the tile rendering engine and the HTTP layer.

Every domain error derives from TileServerError and carries the HTTP
status the routers answer with. Registration-time failures are reported
to the registering caller and leave the registry untouched; per-tile
failures only fail the request that raised them.

Example:
    Translate an error into a response status:
        >>> from tile_server.core import errors
        >>> try:
        ...     raise errors.UnknownLayerError("The map 'dem' does not exist")
        ... except errors.TileServerError as e:
        ...     print(e.status_code, e)
        404 The map 'dem' does not exist
"""


class TileServerError(Exception):
    """Base class for all errors raised by the tile server."""

    status_code: int = 500


class OutOfRangeTileError(TileServerError):
    """Raised when z/x/y does not address a tile of the slippy-map grid."""

    status_code = 400


class ReprojectionError(TileServerError):
    """Raised when an extent cannot be transformed into a target CRS."""


class SourceReadError(TileServerError):
    """Raised when a raster or vector source cannot be opened or read."""


class InvalidBandError(TileServerError):
    """Raised when a requested band index is outside the source's bands."""


class InvalidStyleError(TileServerError):
    """Raised when a style definition is malformed or does not fit a source.

    Always raised while a layer is being registered, never while a tile
    is being rendered.
    """

    status_code = 400


class ColourParseError(InvalidStyleError):
    """Raised when a colour literal cannot be parsed."""


class UnknownLayerError(TileServerError):
    """Raised when a layer name is not present in the registry."""

    status_code = 404


class SourceClosedError(UnknownLayerError):
    """Raised when a read reaches a raster handle released by removal."""


class UnsupportedFormatError(TileServerError):
    """Raised when a tile is requested with an unsupported image format."""

    status_code = 501


class VectorRenderingUnavailableError(TileServerError):
    """Raised when a vector tile is requested without a rendering engine."""

    status_code = 501
