"""Colour literals and named colour ramps.

Colours are handled as RGBA tuples of floats in [0, 1]. Literals accepted
by parse_colour:

- 3- or 4-element sequences of numbers, either in [0, 1] or in [0, 255];
  the range is inferred from whether any component exceeds 1. A missing
  alpha means fully opaque.
- Hex strings with an optional leading ``#``: 6 digits (opaque) or 8
  digits (explicit alpha), case-insensitive.

Named ramps are static stop tables sampled from matplotlib and evaluated
by linear interpolation of each channel over equally spaced stops.

Example:
    >>> from tile_server.services import colour
    >>> colour.parse_colour("#FF0000") == colour.parse_colour([255, 0, 0, 255])
    True
    >>> colour.to_rgba8(colour.parse_colour("ff000080"))
    (255, 0, 0, 128)
"""

from __future__ import annotations

import math
import numbers
import re
from typing import TYPE_CHECKING, Any

import numpy

from tile_server.core import errors

if TYPE_CHECKING:
    from collections.abc import Sequence

Rgba = tuple[float, float, float, float]

_HEX_RE = re.compile(r"^#?(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
# Guards against components such as 128 / 255 * 255 landing just below 128.
_QUANTISE_EPSILON = 1e-9

VIRIDIS: tuple[Rgba, ...] = (
    (0.267004, 0.004874, 0.329415, 1.0),
    (0.267968, 0.223549, 0.512008, 1.0),
    (0.190631, 0.407061, 0.556089, 1.0),
    (0.127568, 0.566949, 0.550556, 1.0),
    (0.20803, 0.718701, 0.472873, 1.0),
    (0.565498, 0.84243, 0.262877, 1.0),
    (0.993248, 0.906157, 0.143936, 1.0),
)

INFERNO: tuple[Rgba, ...] = (
    (0.001462, 0.000466, 0.013866, 1.0),
    (0.197297, 0.0384, 0.367535, 1.0),
    (0.472328, 0.110547, 0.428334, 1.0),
    (0.735683, 0.215906, 0.330245, 1.0),
    (0.929644, 0.411479, 0.145367, 1.0),
    (0.986175, 0.713153, 0.103863, 1.0),
    (0.988362, 0.998364, 0.644924, 1.0),
)

GREYS: tuple[Rgba, ...] = (
    (0.0, 0.0, 0.0, 1.0),
    (1.0, 1.0, 1.0, 1.0),
)

PALETTES: dict[str, tuple[Rgba, ...]] = {
    "viridis": VIRIDIS,
    "inferno": INFERNO,
    "greys": GREYS,
}


def _parse_hex(value: str) -> Rgba:
    if not _HEX_RE.match(value):
        raise errors.ColourParseError(
            f"Invalid hex colour {value!r}, expected RRGGBB or RRGGBBAA"
        )
    digits = value.lstrip("#")
    components = [int(digits[i : i + 2], 16) / 255.0 for i in range(0, len(digits), 2)]
    if len(components) == 3:
        components.append(1.0)
    return tuple(components)  # type: ignore[return-value]


def _parse_sequence(value: Sequence[Any]) -> Rgba:
    if len(value) not in (3, 4) or not all(
        isinstance(c, numbers.Real) and not isinstance(c, bool) for c in value
    ):
        raise errors.ColourParseError(
            f"Invalid colour {value!r}, expected 3 or 4 numeric components"
        )
    components = [float(c) for c in value]
    if any(not math.isfinite(c) or c < 0.0 for c in components):
        raise errors.ColourParseError(f"Invalid colour components {value!r}")
    if any(c > 1.0 for c in components):
        if any(c > 255.0 for c in components):
            raise errors.ColourParseError(
                f"Colour components {value!r} exceed 255"
            )
        components = [c / 255.0 for c in components]
    if len(components) == 3:
        components.append(1.0)
    return tuple(components)  # type: ignore[return-value]


def parse_colour(value: Any) -> Rgba:
    """Parse a colour literal into RGBA floats in [0, 1].

    Args:
        value: Hex string or 3/4-element numeric sequence.

    Returns:
        (r, g, b, a) tuple.

    Raises:
        ColourParseError: If the literal is not a supported colour.
    """
    if isinstance(value, str):
        return _parse_hex(value)
    if isinstance(value, (list, tuple)):
        return _parse_sequence(value)
    raise errors.ColourParseError(f"Unsupported colour literal {value!r}")


def is_colour(value: Any) -> bool:
    """Return True if value parses as a colour literal."""
    try:
        parse_colour(value)
    except errors.ColourParseError:
        return False
    return True


def quantise(components: numpy.ndarray) -> numpy.ndarray:
    """Scale [0, 1] components to uint8, truncating toward zero."""
    scaled = numpy.floor(numpy.clip(components, 0.0, 1.0) * 255.0 + _QUANTISE_EPSILON)
    return numpy.clip(scaled, 0, 255).astype(numpy.uint8)


def to_rgba8(rgba: Rgba) -> tuple[int, int, int, int]:
    """Convert an RGBA float tuple to 8-bit integer components."""
    r, g, b, a = (int(v) for v in quantise(numpy.asarray(rgba, dtype=numpy.float64)))
    return r, g, b, a


def to_hex(rgba: Rgba) -> str:
    """Format a colour as ``#rrggbb`` (alpha is dropped)."""
    r, g, b, _ = to_rgba8(rgba)
    return f"#{r:02x}{g:02x}{b:02x}"


class ColourRamp:
    """Piecewise-linear colour ramp over explicit stop positions.

    Values below the first stop or above the last one clamp to the end
    colours.
    """

    def __init__(self, positions: Sequence[float], colours: Sequence[Rgba]) -> None:
        if len(positions) != len(colours) or not colours:
            raise errors.InvalidStyleError(
                "A colour ramp needs one colour per stop and at least one stop"
            )
        self.positions = numpy.asarray(positions, dtype=numpy.float64)
        if numpy.any(numpy.diff(self.positions) <= 0):
            raise errors.InvalidStyleError(
                "Colour ramp stops must be strictly increasing"
            )
        self.colours = numpy.asarray(colours, dtype=numpy.float64)

    @classmethod
    def equally_spaced(
        cls,
        colours: Sequence[Rgba],
        start: float = 0.0,
        stop: float = 1.0,
    ) -> ColourRamp:
        if len(colours) == 1:
            return cls([start], colours)
        return cls(numpy.linspace(start, stop, len(colours)).tolist(), colours)

    def __call__(self, values: numpy.ndarray) -> numpy.ndarray:
        """Evaluate the ramp; returns an array shaped values.shape + (4,)."""
        out = numpy.empty((*values.shape, 4), dtype=numpy.float64)
        for channel in range(4):
            out[..., channel] = numpy.interp(
                values, self.positions, self.colours[:, channel]
            )
        return out


def named_ramp(name: str) -> ColourRamp:
    """Return the [0, 1] ramp of a named palette.

    Raises:
        InvalidStyleError: If no palette has that name.
    """
    try:
        stops = PALETTES[name.lower()]
    except KeyError:
        raise errors.InvalidStyleError(
            f"Unknown colour map {name!r}, expected one of {sorted(PALETTES)}"
        ) from None
    return ColourRamp.equally_spaced(stops)
