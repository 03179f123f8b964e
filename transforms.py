"""Value conversions between Homey capability values and Matter attributes.

Homey reports most continuous values as fractions (``dim``, ``light_hue``,
``light_saturation``, ``light_temperature`` and ``windowcoverings_set`` are
all 0..1), while Matter uses fixed integer ranges. Every forward conversion
clamps to the Matter range and returns ``None`` when the input is missing or
not a number, so an unknown value never turns into 0.
"""

import math
from typing import Any, Optional

from constants import (
    ELLIPSIS,
    HEATING_SETPOINT_MAX,
    HEATING_SETPOINT_MIN,
    HUE_DEGREES,
    HUE_MAX,
    HUMIDITY_MAX,
    ILLUMINANCE_MAX,
    ILLUMINANCE_MIN,
    LEVEL_MAX,
    LEVEL_MIN,
    MAX_IDENTITY_LENGTH,
    MIREDS_MAX,
    MIREDS_MIN,
    PERCENT100THS_MAX,
    SATURATION_MAX,
    TEMPERATURE_MAX,
    TEMPERATURE_MIN,
)


def is_number(value: Any) -> bool:
    """True for int/float values that are finite. Booleans are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def rescale(value: float, in_min: float, in_max: float, out_min: float, out_max: float) -> float:
    """Linearly map value from [in_min, in_max] to [out_min, out_max], clamped to the output."""
    if in_max == in_min:
        raise ValueError("Input range must not be empty")
    ratio = (value - in_min) / (in_max - in_min)
    result = out_min + ratio * (out_max - out_min)
    return clamp(result, min(out_min, out_max), max(out_min, out_max))


def scale_int(value: float, factor: float, low: int, high: int) -> int:
    """round(value * factor) clamped to [low, high]. Huge inputs saturate instead of overflowing."""
    return int(round(clamp(value * factor, low, high)))


def rescale_int(
    value: Any, in_min: float, in_max: float, out_min: int, out_max: int
) -> Optional[int]:
    """Rescale to an integer range. Non-numeric input gives None."""
    if not is_number(value):
        return None
    return int(round(rescale(value, in_min, in_max, out_min, out_max)))


def truncate(text: Optional[str], max_length: int = MAX_IDENTITY_LENGTH) -> str:
    """Shorten text to max_length, ending in an ellipsis when cut."""
    text = text or ""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


# levelControl.currentLevel

def fraction_to_level(value: Any) -> Optional[int]:
    if not is_number(value):
        return None
    return scale_int(value, LEVEL_MAX, LEVEL_MIN, LEVEL_MAX)


def level_to_fraction(level: Any) -> Optional[float]:
    if not is_number(level):
        return None
    return round(clamp(level, 0, LEVEL_MAX) / LEVEL_MAX, 4)


# colorControl.currentHue / currentSaturation

def fraction_to_degrees(value: float) -> float:
    return clamp(value, 0.0, 1.0) * HUE_DEGREES


def fraction_to_hue(value: Any) -> Optional[int]:
    if not is_number(value):
        return None
    return rescale_int(fraction_to_degrees(value), 0, HUE_DEGREES, 0, HUE_MAX)


def hue_to_fraction(hue: Any) -> Optional[float]:
    if not is_number(hue):
        return None
    degrees = rescale(hue, 0, HUE_MAX, 0, HUE_DEGREES)
    return round(degrees / HUE_DEGREES, 4)


def fraction_to_saturation(value: Any) -> Optional[int]:
    return rescale_int(value, 0.0, 1.0, 0, SATURATION_MAX)


def saturation_to_fraction(saturation: Any) -> Optional[float]:
    if not is_number(saturation):
        return None
    return round(rescale(saturation, 0, SATURATION_MAX, 0.0, 1.0), 4)


# colorControl.colorTemperatureMireds (Homey: 0 = cold, 1 = warm)

def fraction_to_mireds(value: Any) -> Optional[int]:
    return rescale_int(value, 0.0, 1.0, MIREDS_MIN, MIREDS_MAX)


def mireds_to_fraction(mireds: Any) -> Optional[float]:
    if not is_number(mireds):
        return None
    return round(rescale(mireds, MIREDS_MIN, MIREDS_MAX, 0.0, 1.0), 4)


# Measurements in 0.01 units

def celsius_to_centi(value: Any) -> Optional[int]:
    if not is_number(value):
        return None
    return scale_int(value, 100, TEMPERATURE_MIN, TEMPERATURE_MAX)


def celsius_to_setpoint(value: Any) -> Optional[int]:
    if not is_number(value):
        return None
    return scale_int(value, 100, HEATING_SETPOINT_MIN, HEATING_SETPOINT_MAX)


def centi_to_celsius(value: Any) -> Optional[float]:
    if not is_number(value):
        return None
    return round(value / 100, 2)


def percent_to_centi(value: Any) -> Optional[int]:
    if not is_number(value):
        return None
    return scale_int(value, 100, 0, HUMIDITY_MAX)


def lux_to_illuminance(value: Any) -> Optional[int]:
    """illuminanceMeasurement.measuredValue is 10000 * log10(lux) + 1."""
    if not is_number(value):
        return None
    if value <= 0:
        return 0
    return int(round(clamp(10000 * math.log10(value) + 1, ILLUMINANCE_MIN, ILLUMINANCE_MAX)))


# windowCovering lift position (Matter: 0 = open, 10000 = closed; Homey: 1 = open)

def position_to_lift(value: Any) -> Optional[int]:
    return rescale_int(value, 1.0, 0.0, 0, PERCENT100THS_MAX)


def lift_to_position(lift: Any) -> Optional[float]:
    if not is_number(lift):
        return None
    return round(rescale(lift, 0, PERCENT100THS_MAX, 1.0, 0.0), 4)
