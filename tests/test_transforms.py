"""Tests for value transforms."""

from __future__ import annotations

import pytest

from transforms import (
    celsius_to_centi,
    celsius_to_setpoint,
    fraction_to_hue,
    fraction_to_level,
    fraction_to_mireds,
    fraction_to_saturation,
    hue_to_fraction,
    is_number,
    level_to_fraction,
    lift_to_position,
    lux_to_illuminance,
    mireds_to_fraction,
    percent_to_centi,
    position_to_lift,
    rescale,
    rescale_int,
    truncate,
)


class TestRescale:
    """Tests for the generic range helpers."""

    def test_linear(self):
        assert rescale(5, 0, 10, 0, 100) == 50.0

    def test_clamps_to_output(self):
        assert rescale(20, 0, 10, 0, 100) == 100
        assert rescale(-3, 0, 10, 0, 100) == 0

    def test_inverted_output_range(self):
        assert rescale(0.25, 0, 1, 100, 0) == 75.0

    def test_empty_input_range(self):
        with pytest.raises(ValueError):
            rescale(1, 5, 5, 0, 1)

    def test_rescale_int_rejects_non_numbers(self):
        assert rescale_int("bright", 0, 1, 0, 254) is None
        assert rescale_int(True, 0, 1, 0, 254) is None

    def test_is_number(self):
        assert is_number(0)
        assert is_number(0.5)
        assert not is_number(False)
        assert not is_number(None)
        assert not is_number(float("nan"))


class TestLevel:
    """Tests for dim <-> currentLevel."""

    def test_mid_scale(self):
        assert abs(fraction_to_level(0.5) - 127) <= 1

    def test_bounds(self):
        assert fraction_to_level(1.0) == 254
        assert fraction_to_level(0.0) == 1

    def test_out_of_range_is_clamped(self):
        assert fraction_to_level(1.5) == 254
        assert fraction_to_level(-0.2) == 1

    @pytest.mark.parametrize("value", [0.1, 0.33, 0.5, 0.77, 1.0])
    def test_round_trip_within_one_step(self, value):
        level = fraction_to_level(value)
        assert abs(level_to_fraction(level) - value) <= 1 / 254
        assert abs(fraction_to_level(level_to_fraction(level)) - level) <= 1

    def test_unknown_stays_unknown(self):
        assert fraction_to_level(None) is None
        assert fraction_to_level("n/a") is None
        assert level_to_fraction(None) is None


class TestColor:
    """Tests for hue, saturation and color temperature."""

    def test_hue_goes_through_degrees(self):
        assert fraction_to_hue(0.5) == 127
        assert fraction_to_hue(1.0) == 254
        assert hue_to_fraction(127) == 0.5

    def test_saturation(self):
        assert fraction_to_saturation(1.0) == 254
        assert fraction_to_saturation(2.0) == 254
        assert fraction_to_saturation(None) is None

    def test_temperature_cold_to_warm(self):
        assert fraction_to_mireds(0.0) == 147
        assert fraction_to_mireds(1.0) == 500
        assert mireds_to_fraction(500) == 1.0
        assert mireds_to_fraction(600) == 1.0


class TestMeasurements:
    """Tests for sensor and thermostat conversions."""

    def test_temperature(self):
        assert celsius_to_centi(21.5) == 2150
        assert celsius_to_centi(-400) == -27315
        assert celsius_to_centi(None) is None

    def test_setpoint_limits(self):
        assert celsius_to_setpoint(21) == 2100
        assert celsius_to_setpoint(50) == 3000
        assert celsius_to_setpoint(2) == 700

    def test_humidity(self):
        assert percent_to_centi(45.5) == 4550
        assert percent_to_centi(120) == 10000

    def test_illuminance(self):
        assert lux_to_illuminance(0) == 0
        assert lux_to_illuminance(1) == 1
        assert lux_to_illuminance(10) == 10001
        assert lux_to_illuminance(None) is None

    def test_window_covering_position(self):
        assert position_to_lift(1.0) == 0
        assert position_to_lift(0.0) == 10000
        assert position_to_lift(0.25) == 7500
        assert lift_to_position(7500) == 0.25


class TestHugeInputs:
    """Finite values too large to scale saturate at the output bound."""

    @pytest.mark.parametrize(
        "convert, expected",
        [
            (fraction_to_level, 254),
            (celsius_to_centi, 32767),
            (celsius_to_setpoint, 3000),
            (percent_to_centi, 10000),
            (fraction_to_hue, 254),
            (fraction_to_saturation, 254),
            (fraction_to_mireds, 500),
            (position_to_lift, 0),
        ],
    )
    def test_max_float(self, convert, expected):
        assert convert(1e308) == expected

    @pytest.mark.parametrize(
        "convert, expected",
        [
            (fraction_to_level, 1),
            (celsius_to_centi, -27315),
            (percent_to_centi, 0),
            (position_to_lift, 10000),
        ],
    )
    def test_min_float(self, convert, expected):
        assert convert(-1e308) == expected

    def test_illuminance(self):
        assert lux_to_illuminance(1e308) == 0xFFFE


class TestTruncate:
    """Tests for identity string truncation."""

    def test_short_text_unchanged(self):
        assert truncate("Kitchen Lamp") == "Kitchen Lamp"

    def test_exactly_limit_unchanged(self):
        assert truncate("x" * 32) == "x" * 32

    def test_long_text_gets_ellipsis(self):
        result = truncate("A very long device name for the living room lamp")
        assert len(result) == 32
        assert result.endswith("...")
        assert result.startswith("A very long device name")

    def test_none(self):
        assert truncate(None) == ""
