"""Tests for colour literal parsing and colour ramps.

See Also:
    - backend/tile_server/services/colour.py
"""

from __future__ import annotations

from typing import Any

import numpy
import pytest

from tile_server.core import errors
from tile_server.services import colour

RED = (1.0, 0.0, 0.0, 1.0)


@pytest.mark.parametrize(
    "literal",
    ["FF0000", "ff0000ff", "#ff0000", [255, 0, 0, 255], [1.0, 0.0, 0.0, 1.0], (255, 0, 0)],
)
def test_red_literals_agree(literal: Any) -> None:
    """Test that every red literal parses to opaque red."""
    assert colour.parse_colour(literal) == RED


def test_hex_alpha() -> None:
    """Test that 8-digit hex strings carry alpha."""
    assert colour.to_rgba8(colour.parse_colour("#00FF0080")) == (0, 255, 0, 128)


def test_unit_range_components_are_kept() -> None:
    """Test that components in [0, 1] are not rescaled."""
    assert colour.parse_colour([0.5, 0.25, 1.0]) == (0.5, 0.25, 1.0, 1.0)


@pytest.mark.parametrize(
    "literal",
    ["#12345", "zzzzzz", "", [1, 2], [300, 0, 0], [-1, 0, 0], ["a", 0, 0], True, None, 3],
)
def test_invalid_literals(literal: Any) -> None:
    """Test that malformed literals raise ColourParseError."""
    with pytest.raises(errors.ColourParseError):
        colour.parse_colour(literal)
    assert not colour.is_colour(literal)


def test_colour_parse_error_is_a_style_error() -> None:
    """Test that colour errors surface as style errors."""
    assert issubclass(errors.ColourParseError, errors.InvalidStyleError)


def test_quantise_truncates() -> None:
    """Test that components are scaled by 255 and truncated."""
    result = colour.quantise(numpy.array([0.0, 0.5, 0.999, 1.0, 1.5, -0.5]))
    assert result.tolist() == [0, 127, 254, 255, 255, 0]


def test_to_hex() -> None:
    """Test hex formatting drops alpha."""
    assert colour.to_hex((1.0, 0.5, 0.0, 0.2)) == "#ff7f00"


def test_ramp_interpolates_and_clamps() -> None:
    """Test linear interpolation between stops and clamping outside them."""
    ramp = colour.ColourRamp([0.0, 10.0], [(0.0, 0.0, 0.0, 1.0), (1.0, 1.0, 1.0, 0.0)])
    values = ramp(numpy.array([-5.0, 0.0, 5.0, 10.0, 50.0]))
    assert values.shape == (5, 4)
    assert values[:, 0].tolist() == [0.0, 0.0, 0.5, 1.0, 1.0]
    assert values[:, 3].tolist() == [1.0, 1.0, 0.5, 0.0, 0.0]


def test_ramp_requires_increasing_stops() -> None:
    """Test that unordered stop positions are rejected."""
    with pytest.raises(errors.InvalidStyleError):
        colour.ColourRamp([1.0, 0.0], [RED, RED])


def test_named_ramp_endpoints() -> None:
    """Test the end colours of the named palettes."""
    viridis = colour.named_ramp("viridis")
    ends = colour.quantise(viridis(numpy.array([0.0, 1.0])))
    assert ends.tolist() == [[68, 1, 84, 255], [253, 231, 36, 255]]
    greys = colour.quantise(colour.named_ramp("Greys")(numpy.array([0.0, 1.0])))
    assert greys.tolist() == [[0, 0, 0, 255], [255, 255, 255, 255]]


def test_unknown_named_ramp() -> None:
    """Test that unknown palette names raise InvalidStyleError."""
    with pytest.raises(errors.InvalidStyleError):
        colour.named_ramp("rainbow")
