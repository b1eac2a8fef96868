"""Style variants and the colour mapping applied to raster tiles.

A style maps the bands of a PixelBuffer to an RGBA image. Five variants
exist, each a frozen dataclass validated when it is constructed, so that
rendering code can assume well-formed parameters:

- NamedPalette: one band normalized over [vmin, vmax] through a named ramp.
- ColourGradient: one band through N colours equally spaced on [vmin, vmax].
- Breakpoints: one band interpolated between explicit (value, colour) stops.
- DiscretePalette: one band, exact value to colour lookup; misses are
  transparent.
- RgbComposite: two or three bands stretched independently into R, G, B.

Styles arrive over HTTP and in the map config file as StyleConfig objects.
StyleConfig carries an explicit ``kind``; when it is omitted the kind is
inferred once from the shape of ``name`` and ``colours``.

Example:
    Style a single band with viridis:
        >>> from tile_server.services import styling
        >>> style = styling.StyleConfig(
        ...     name="viridis", vmin=0, vmax=100, bands=[1]
        ... ).to_style()
        >>> image = styling.apply_style(pixels, style)
        >>> image.shape
        (256, 256, 4)
"""

from __future__ import annotations

import dataclasses
import math
import numbers
from typing import TYPE_CHECKING, Any, ClassVar, Literal, Union

import numpy
import pydantic

from tile_server.core import errors
from tile_server.services import colour

if TYPE_CHECKING:
    from tile_server.services import raster_source

StyleKind = Literal["palette", "gradient", "breakpoints", "discrete", "rgb"]


def _check_range(vmin: float, vmax: float) -> None:
    if not (math.isfinite(vmin) and math.isfinite(vmax)) or vmin >= vmax:
        raise errors.InvalidStyleError(
            f"vmin ({vmin}) must be lower than vmax ({vmax})"
        )


def _check_single_band(bands: tuple[int, ...]) -> None:
    if len(bands) != 1:
        raise errors.InvalidStyleError(
            f"This style reads exactly one band, got {list(bands)}"
        )


def _normalise(values: numpy.ndarray, vmin: float, vmax: float) -> numpy.ndarray:
    return numpy.clip((values - vmin) / (vmax - vmin), 0.0, 1.0)


@dataclasses.dataclass(frozen=True)
class NamedPalette:
    """Continuous single-band style through a named colour ramp."""

    kind: ClassVar[StyleKind] = "palette"

    name: str
    vmin: float = 0.0
    vmax: float = 1.0
    bands: tuple[int, ...] = (1,)

    def __post_init__(self) -> None:
        _check_single_band(self.bands)
        _check_range(self.vmin, self.vmax)
        # Raises for unknown names.
        colour.named_ramp(self.name)

    def render(self, data: numpy.ndarray, mask: numpy.ndarray) -> numpy.ndarray:
        rgba = colour.named_ramp(self.name)(
            _normalise(data[0], self.vmin, self.vmax)
        )
        rgba[mask[0], 3] = 0.0
        return rgba


@dataclasses.dataclass(frozen=True)
class ColourGradient:
    """Single-band style over colours equally spaced on [vmin, vmax]."""

    kind: ClassVar[StyleKind] = "gradient"

    colours: tuple[colour.Rgba, ...]
    vmin: float = 0.0
    vmax: float = 1.0
    bands: tuple[int, ...] = (1,)

    def __post_init__(self) -> None:
        _check_single_band(self.bands)
        _check_range(self.vmin, self.vmax)
        if not self.colours:
            raise errors.InvalidStyleError("A gradient needs at least one colour")

    def render(self, data: numpy.ndarray, mask: numpy.ndarray) -> numpy.ndarray:
        ramp = colour.ColourRamp.equally_spaced(self.colours, self.vmin, self.vmax)
        rgba = ramp(data[0])
        rgba[mask[0], 3] = 0.0
        return rgba


@dataclasses.dataclass(frozen=True)
class Breakpoints:
    """Single-band style interpolated between explicit value stops.

    Values below the first stop or above the last one take the colour of
    the nearest stop.
    """

    kind: ClassVar[StyleKind] = "breakpoints"

    stops: tuple[tuple[float, colour.Rgba], ...]
    bands: tuple[int, ...] = (1,)

    def __post_init__(self) -> None:
        _check_single_band(self.bands)
        if not self.stops:
            raise errors.InvalidStyleError("The breakpoint list is empty")
        values = [value for value, _ in self.stops]
        if len(set(values)) != len(values):
            raise errors.InvalidStyleError("Breakpoint values must be unique")
        if any(not math.isfinite(value) for value in values):
            raise errors.InvalidStyleError("Breakpoint values must be finite")
        object.__setattr__(
            self, "stops", tuple(sorted(self.stops, key=lambda stop: stop[0]))
        )

    def render(self, data: numpy.ndarray, mask: numpy.ndarray) -> numpy.ndarray:
        ramp = colour.ColourRamp(
            [value for value, _ in self.stops],
            [rgba for _, rgba in self.stops],
        )
        rgba = ramp(data[0])
        rgba[mask[0], 3] = 0.0
        return rgba


@dataclasses.dataclass(frozen=True)
class DiscretePalette:
    """Single-band classification by exact value match."""

    kind: ClassVar[StyleKind] = "discrete"

    classes: tuple[tuple[float, colour.Rgba], ...]
    bands: tuple[int, ...] = (1,)

    def __post_init__(self) -> None:
        _check_single_band(self.bands)
        if not self.classes:
            raise errors.InvalidStyleError("The class list is empty")
        values = [value for value, _ in self.classes]
        if len(set(values)) != len(values):
            raise errors.InvalidStyleError("Class values must be unique")

    def render(self, data: numpy.ndarray, mask: numpy.ndarray) -> numpy.ndarray:
        values = data[0]
        rgba = numpy.zeros((*values.shape, 4), dtype=numpy.float64)
        for value, fill in self.classes:
            rgba[values == value] = fill
        rgba[mask[0], 3] = 0.0
        return rgba


@dataclasses.dataclass(frozen=True)
class RgbComposite:
    """Two or three bands each stretched from its own range to a channel.

    With two bands the blue channel is 0. A pixel is transparent only when
    every selected band is NoData.
    """

    kind: ClassVar[StyleKind] = "rgb"

    ranges: tuple[tuple[float, float], ...]
    bands: tuple[int, ...] = (1, 2, 3)

    def __post_init__(self) -> None:
        if len(self.bands) not in (2, 3):
            raise errors.InvalidStyleError(
                f"An RGB composite reads 2 or 3 bands, got {list(self.bands)}"
            )
        if len(self.ranges) != len(self.bands):
            raise errors.InvalidStyleError(
                f"Expected {len(self.bands)} [min, max] ranges, "
                f"got {len(self.ranges)}"
            )
        for low, high in self.ranges:
            _check_range(low, high)

    def render(self, data: numpy.ndarray, mask: numpy.ndarray) -> numpy.ndarray:
        rgba = numpy.zeros((*data.shape[1:], 4), dtype=numpy.float64)
        for idx, (low, high) in enumerate(self.ranges):
            rgba[..., idx] = _normalise(data[idx], low, high)
        rgba[..., 3] = numpy.where(mask.all(axis=0), 0.0, 1.0)
        return rgba


Style = Union[NamedPalette, ColourGradient, Breakpoints, DiscretePalette, RgbComposite]


def check_bands(style: Style, band_count: int) -> None:
    """Validate the bands a style reads against a source's band count.

    Raises:
        InvalidStyleError: If any band index is outside 1..band_count.
    """
    for band in style.bands:
        if not 1 <= band <= band_count:
            raise errors.InvalidStyleError(
                f"The style reads band {band} but the source has "
                f"{band_count} band(s)"
            )


def apply_style(
    pixels: raster_source.PixelBuffer,
    style: Style,
    no_data_mask: numpy.ndarray | None = None,
) -> numpy.ndarray:
    """Map a pixel buffer to an 8-bit RGBA image.

    Args:
        pixels: Buffer holding exactly the bands listed in ``style.bands``,
            in that order.
        style: A validated style.
        no_data_mask: Per-band NoData mask, defaults to ``pixels.mask``.
            Non-finite values are always treated as NoData.

    Returns:
        uint8 array shaped (height, width, 4).
    """
    mask = pixels.mask if no_data_mask is None else no_data_mask
    data = pixels.data
    invalid = ~numpy.isfinite(data)
    if invalid.any():
        mask = mask | invalid
        data = numpy.where(invalid, 0.0, data)
    return colour.quantise(style.render(data, mask))


def describe(style: Style) -> dict[str, Any]:
    """Return a JSON-friendly description of a style."""
    return {"kind": style.kind, **dataclasses.asdict(style)}


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _is_pair(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) == 2


def _is_numbers(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and all(_is_number(v) for v in value)


def _is_rgb_ranges(colours: list[Any]) -> bool:
    """Return True for a ``[[min_r, min_g, (min_b)], [max_r, max_g, (max_b)]]`` list."""
    if not _is_pair(colours) or not all(_is_numbers(c) for c in colours):
        return False
    mins, maxs = colours
    return len(mins) == len(maxs) and len(mins) in (2, 3)


class StyleConfig(pydantic.BaseModel):
    """Style definition as received in JSON.

    Attributes:
        kind: Variant discriminant. Inferred from the other fields when
            omitted, except for "discrete" which must be explicit.
        name: Palette name (palette).
        colours: Colour literals (gradient), ``[value, colour]`` pairs
            (breakpoints, discrete) or ``[mins, maxs]``, one value per band in
            each list (rgb).
        vmin: Lower bound of the normalization range.
        vmax: Upper bound of the normalization range.
        bands: 1-based band indexes read by the style.
    """

    model_config = pydantic.ConfigDict(extra="forbid")

    kind: StyleKind | None = None
    name: str | None = None
    colours: list[Any] | None = None
    vmin: float | None = None
    vmax: float | None = None
    bands: list[int] | None = None

    def infer_kind(self) -> StyleKind:
        """Return the explicit kind, or infer it from the field shapes.

        ``[mins, maxs]`` lists of numbers are also valid pairs of colour
        literals; they are read as RGB ranges when ``bands`` selects two or
        three bands, or when they cannot be colours.
        """
        if self.kind is not None:
            return self.kind
        if self.name is not None:
            return "palette"
        if not self.colours:
            raise errors.InvalidStyleError(
                "A style needs a palette name or a non-empty colours list"
            )
        rgb_ranges = _is_rgb_ranges(self.colours)
        if rgb_ranges and self.bands is not None and len(self.bands) in (2, 3):
            return "rgb"
        if all(colour.is_colour(c) for c in self.colours):
            return "gradient"
        if all(
            _is_pair(c) and _is_number(c[0]) and colour.is_colour(c[1])
            for c in self.colours
        ):
            return "breakpoints"
        if rgb_ranges:
            return "rgb"
        raise errors.InvalidStyleError(
            "Cannot tell the style kind from the colours list, set 'kind'"
        )

    def _stops(self) -> tuple[tuple[float, colour.Rgba], ...]:
        stops = []
        for item in self.colours or []:
            if not _is_pair(item) or not _is_number(item[0]):
                raise errors.InvalidStyleError(
                    f"Expected a [value, colour] pair, got {item!r}"
                )
            stops.append((float(item[0]), colour.parse_colour(item[1])))
        return tuple(stops)

    def _ranges(self) -> tuple[tuple[float, float], ...]:
        colours = self.colours or []
        if not _is_pair(colours) or not all(_is_numbers(c) for c in colours):
            raise errors.InvalidStyleError(
                f"Expected [[min, ...], [max, ...]] for an RGB style, got {colours!r}"
            )
        mins, maxs = colours
        if len(mins) != len(maxs):
            raise errors.InvalidStyleError(
                f"Got {len(mins)} minimums but {len(maxs)} maximums"
            )
        return tuple((float(low), float(high)) for low, high in zip(mins, maxs))

    def to_style(self) -> Style:
        """Build and validate the style variant.

        Raises:
            InvalidStyleError: If the definition is malformed.
        """
        kind = self.infer_kind()
        vmin = 0.0 if self.vmin is None else self.vmin
        vmax = 1.0 if self.vmax is None else self.vmax
        bands = tuple(self.bands) if self.bands is not None else None

        if kind == "palette":
            if not self.name:
                raise errors.InvalidStyleError("A palette style needs a name")
            return NamedPalette(self.name, vmin, vmax, bands or (1,))
        if kind == "gradient":
            colours = tuple(colour.parse_colour(c) for c in self.colours or [])
            return ColourGradient(colours, vmin, vmax, bands or (1,))
        if kind == "breakpoints":
            return Breakpoints(self._stops(), bands or (1,))
        if kind == "discrete":
            return DiscretePalette(self._stops(), bands or (1,))
        ranges = self._ranges()
        if bands is None:
            bands = tuple(range(1, len(ranges) + 1))
        return RgbComposite(ranges, bands)


def default_style(source: raster_source.RasterSource) -> Style:
    """Derive a style for a raster registered without one.

    Sources with three or more bands are shown as an RGB composite of the
    first three bands; others through viridis on band 1. Ranges come from
    RasterSource.band_range.
    """
    if source.count >= 3:
        return RgbComposite(
            ranges=tuple(source.band_range(band) for band in (1, 2, 3)),
            bands=(1, 2, 3),
        )
    low, high = source.band_range(1)
    return NamedPalette("viridis", low, high, (1,))
