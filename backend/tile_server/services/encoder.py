"""RGBA image encoding.

Images are written through GDAL's PNG or WEBP driver into an in-memory
file, the same way rio-tiler renders tiles. Both outputs are lossless and
keep the alpha band.

Example:
    >>> import numpy
    >>> from tile_server.services import encoder
    >>> image = numpy.zeros((256, 256, 4), dtype=numpy.uint8)
    >>> encoder.encode(image, "png")[:8]
    b'\\x89PNG\\r\\n\\x1a\\n'
"""

from __future__ import annotations

import functools
import warnings
from typing import Any

import numpy
from rasterio import errors as rio_errors
from rasterio import io as rio_io

from tile_server.core import errors

CONTENT_TYPES = {
    "png": "image/png",
    "webp": "image/webp",
}

_DRIVER_OPTIONS: dict[str, dict[str, Any]] = {
    "png": {"driver": "PNG", "zlevel": 6},
    "webp": {"driver": "WEBP", "lossless": True},
}


def content_type(img_format: str) -> str:
    """Return the media type of an output format.

    Raises:
        UnsupportedFormatError: If the format is not png or webp.
    """
    try:
        return CONTENT_TYPES[img_format.lower()]
    except KeyError:
        raise errors.UnsupportedFormatError(
            f"Unsupported tile format {img_format!r}, "
            f"expected one of {sorted(CONTENT_TYPES)}"
        ) from None


def encode(image: numpy.ndarray, img_format: str = "png") -> bytes:
    """Encode an RGBA image.

    Args:
        image: uint8 array shaped (height, width, 4).
        img_format: "png" or "webp".

    Returns:
        Encoded image bytes.

    Raises:
        UnsupportedFormatError: If the format is not supported.
        ValueError: If the array is not an RGBA uint8 image.
    """
    img_format = img_format.lower()
    content_type(img_format)
    if image.ndim != 3 or image.shape[2] != 4 or image.dtype != numpy.uint8:
        raise ValueError(
            f"Expected a (height, width, 4) uint8 array, got {image.shape} "
            f"{image.dtype}"
        )

    height, width = image.shape[:2]
    bands = numpy.ascontiguousarray(numpy.moveaxis(image, -1, 0))
    profile = dict(
        _DRIVER_OPTIONS[img_format],
        dtype="uint8",
        count=4,
        height=height,
        width=width,
    )
    with warnings.catch_warnings():
        warnings.filterwarnings(
            "ignore",
            category=rio_errors.NotGeoreferencedWarning,
            module="rasterio",
        )
        with rio_io.MemoryFile() as memfile:
            with memfile.open(**profile) as dst:
                dst.write(bands, indexes=[1, 2, 3, 4])
            return memfile.read()


@functools.lru_cache(maxsize=16)
def empty_tile(size: int, img_format: str = "png") -> bytes:
    """Return a fully transparent encoded tile of the given edge length."""
    return encode(numpy.zeros((size, size, 4), dtype=numpy.uint8), img_format)
