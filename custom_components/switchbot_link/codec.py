"""Colour and unit conversions.

All functions here are pure. Hue is in degrees [0, 360), saturation and
value are percentages [0, 100], RGB channels are integers [0, 255].
"""
from __future__ import annotations

import colorsys
import math
from typing import Tuple

from .const import (
    COLOR_TEMP_KELVIN_MAX,
    COLOR_TEMP_KELVIN_MIN,
    COLOR_TEMP_KELVIN_STEP,
    COLOR_TEMP_MIRED_MAX,
    COLOR_TEMP_MIRED_MIN,
    DEFAULT_MAX_LUX,
    DEFAULT_MIN_LUX,
    LIGHT_LEVEL_BUCKETS,
)


def _clamp(value, low, high):
    return max(low, min(high, value))


def rgb_to_hsv(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """Return (hue, saturation, value) for an RGB triple."""
    h, s, v = colorsys.rgb_to_hsv(
        _clamp(r, 0, 255) / 255.0,
        _clamp(g, 0, 255) / 255.0,
        _clamp(b, 0, 255) / 255.0,
    )
    return (h * 360.0) % 360.0, s * 100.0, v * 100.0


def rgb_to_hue_sat(r: int, g: int, b: int) -> Tuple[float, float]:
    """Return (hue, saturation). Brightness is carried separately by devices."""
    hue, sat, _ = rgb_to_hsv(r, g, b)
    return hue, sat


def hue_sat_to_rgb(hue: float, sat: float, value: float = 100.0) -> Tuple[int, int, int]:
    """Inverse of rgb_to_hue_sat.

    With the default full value the result is the fully bright colour; pass the
    value from rgb_to_hsv to recover the original channels.
    """
    r, g, b = colorsys.hsv_to_rgb(
        (hue % 360.0) / 360.0,
        _clamp(sat, 0.0, 100.0) / 100.0,
        _clamp(value, 0.0, 100.0) / 100.0,
    )
    return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))


def parse_rgb(text: str) -> Tuple[int, int, int]:
    """Parse the packed "R:G:B" colour string used by the cloud API."""
    parts = str(text).split(":")
    if len(parts) != 3:
        raise ValueError(f"Not an R:G:B colour: {text!r}")
    r, g, b = (int(p) for p in parts)
    if not all(0 <= c <= 255 for c in (r, g, b)):
        raise ValueError(f"Colour channel out of range: {text!r}")
    return r, g, b


def format_rgb(rgb: Tuple[int, int, int]) -> str:
    return ":".join(str(int(_clamp(c, 0, 255))) for c in rgb)


def mired_to_kelvin(mired: float) -> int:
    return int(round(1_000_000 / mired))


def kelvin_to_mired(kelvin: float) -> int:
    return int(round(1_000_000 / kelvin))


def clamp_mired(mired: float) -> int:
    return int(_clamp(int(round(mired)), COLOR_TEMP_MIRED_MIN, COLOR_TEMP_MIRED_MAX))


def kelvin_for_device(
    kelvin: float,
    min_kelvin: int = COLOR_TEMP_KELVIN_MIN,
    max_kelvin: int = COLOR_TEMP_KELVIN_MAX,
) -> int:
    """Round to the nearest 100K and clamp to the device's range."""
    stepped = int(round(kelvin / COLOR_TEMP_KELVIN_STEP)) * COLOR_TEMP_KELVIN_STEP
    return int(_clamp(stepped, min_kelvin, max_kelvin))


def _kelvin_to_rgb(kelvin: float) -> Tuple[float, float, float]:
    # Tanner Helland's curve fit of the black-body locus
    temp = kelvin / 100.0
    if temp <= 66:
        red = 255.0
        green = 99.4708025861 * math.log(temp) - 161.1195681661
    else:
        red = 329.698727446 * ((temp - 60) ** -0.1332047592)
        green = 288.1221695283 * ((temp - 60) ** -0.0755148492)
    if temp >= 66:
        blue = 255.0
    elif temp <= 19:
        blue = 0.0
    else:
        blue = 138.5177312231 * math.log(temp - 10) - 305.0447927307
    return _clamp(red, 0.0, 255.0), _clamp(green, 0.0, 255.0), _clamp(blue, 0.0, 255.0)


def mired_to_hue_sat_approx(mired: float) -> Tuple[float, float]:
    """Approximate hue/saturation for a colour temperature.

    This is NOT a colorimetric transform. It follows a curve fit of the
    black-body locus and is only meant to mirror adaptive lighting on
    displays that can show hue/saturation but not colour temperature.
    """
    kelvin = 1_000_000 / _clamp(mired, COLOR_TEMP_MIRED_MIN, COLOR_TEMP_MIRED_MAX)
    r, g, b = _kelvin_to_rgb(kelvin)
    h, s, _ = colorsys.rgb_to_hsv(r / 255.0, g / 255.0, b / 255.0)
    return round((h * 360.0) % 360.0, 1), round(s * 100.0, 1)


def light_level_to_lux(
    bucket: int,
    min_lux: float = DEFAULT_MIN_LUX,
    max_lux: float = DEFAULT_MAX_LUX,
) -> float:
    """Map a 1-20 light level bucket onto [min_lux, max_lux] linearly."""
    if bucket >= LIGHT_LEVEL_BUCKETS:
        return float(max_lux)
    index = max(int(bucket), 1) - 1
    width = (max_lux - min_lux) / (LIGHT_LEVEL_BUCKETS - 1)
    return float(min_lux + index * width)


def percent_to_byte(percent: float) -> int:
    """Device brightness 0-100 to a 0-255 scale."""
    return int(_clamp(int(round(percent / 100 * 255)), 0, 255))


def byte_to_percent(value: float) -> int:
    """0-255 brightness to the device's 1-100 scale; zero stays zero."""
    if value <= 0:
        return 0
    return int(_clamp(int(round(value / 255 * 100)), 1, 100))
