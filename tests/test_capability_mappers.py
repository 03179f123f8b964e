"""Tests for the capability mapping rules."""

from __future__ import annotations

import pytest

from capability_mappers import MappingRule, MapperRegistry, build_default_registry, endpoint_id
from constants import (
    COLOR_MODE_HUE_SATURATION,
    COLOR_MODE_TEMPERATURE,
    DEVICE_TYPE_CONTACT_SENSOR,
    DEVICE_TYPE_DIMMABLE_LIGHT,
    DEVICE_TYPE_EXTENDED_COLOR_LIGHT,
    DEVICE_TYPE_HUMIDITY_SENSOR,
    DEVICE_TYPE_ON_OFF_LIGHT,
    DEVICE_TYPE_ON_OFF_PLUG_IN_UNIT,
    DEVICE_TYPE_TEMPERATURE_SENSOR,
)
from models import Device

from .conftest import raw_device


@pytest.fixture
def registry() -> MapperRegistry:
    return build_default_registry()


FULL_COLOR = dict(onoff=True, dim=0.8, light_hue=0.5, light_saturation=1.0, light_temperature=0.0)


class TestRuleSelection:
    """Tests for picking a rule per device class."""

    def test_dimmable_light(self, registry, make_device):
        mapping = registry.synthesize(make_device("d1", onoff=True, dim=0.5))

        assert mapping.rule == "dimmable_light"
        (shape,) = mapping.shapes
        assert shape.device_type == DEVICE_TYPE_DIMMABLE_LIGHT
        assert shape.clusters == ("onOff", "levelControl")
        assert shape.attributes["onOff"]["onOff"] is True
        assert abs(shape.attributes["levelControl"]["currentLevel"] - 127) <= 1

    def test_on_off_light(self, registry, make_device):
        mapping = registry.synthesize(make_device("d2", onoff=False))

        (shape,) = mapping.shapes
        assert shape.device_type == DEVICE_TYPE_ON_OFF_LIGHT
        assert shape.attributes == {"onOff": {"onOff": False}}

    def test_richest_rule_wins(self, registry, make_device):
        mapping = registry.synthesize(make_device(**FULL_COLOR))
        assert mapping.rule == "extended_color_light"
        assert mapping.shapes[0].device_type == DEVICE_TYPE_EXTENDED_COLOR_LIGHT

    def test_temperature_only_light(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=True, dim=1.0, light_temperature=0.5))
        assert mapping.rule == "color_temperature_light"

    def test_socket_uses_plug_types(self, registry, make_device):
        mapping = registry.synthesize(make_device(device_class="socket", onoff=True))
        assert mapping.shapes[0].device_type == DEVICE_TYPE_ON_OFF_PLUG_IN_UNIT

    def test_virtual_class_takes_precedence(self, registry):
        raw = raw_device("d9", device_class="socket", onoff=True)
        raw["virtualClass"] = "light"
        mapping = registry.synthesize(Device.from_api(raw))
        assert mapping.shapes[0].device_type == DEVICE_TYPE_ON_OFF_LIGHT

    def test_no_matching_rule(self, registry, make_device):
        assert registry.synthesize(make_device(dim=0.5)) is None

    def test_unsupported_class(self, registry, make_device):
        assert registry.synthesize(make_device(device_class="speaker", volume_set=0.2)) is None

    def test_synthesis_is_repeatable(self, registry, make_device):
        device = make_device(**FULL_COLOR)
        assert registry.synthesize(device).shapes == registry.synthesize(device).shapes

    def test_custom_rule_order(self, make_device):
        registry = MapperRegistry()
        registry.register("light", MappingRule("first", frozenset({"onoff"}), lambda b: b.endpoint("A")))
        registry.register("light", MappingRule("second", frozenset({"onoff"}), lambda b: b.endpoint("B")))

        mapping = registry.synthesize(make_device(onoff=True))
        assert mapping.rule == "first"


class TestNullHandling:
    """Unknown capability values map to None, never to 0 or False."""

    def test_unknown_values(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=None, dim=None))
        attrs = mapping.shapes[0].attributes
        assert attrs["onOff"]["onOff"] is None
        assert attrs["levelControl"]["currentLevel"] is None

    def test_forward_unknown(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=True, dim=0.5))
        assert mapping.forward_patches("dim", None, {}) == [("", {"levelControl": {"currentLevel": None}})]


class TestForward:
    """Tests for capability -> attribute translation."""

    def test_clamps_out_of_range(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=True, dim=0.5))
        assert mapping.forward_patches("dim", 1.5, {}) == [("", {"levelControl": {"currentLevel": 254}})]

    def test_unmapped_capability(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=True, dim=0.5, measure_power=12))
        assert mapping.forward_patches("measure_power", 13, {}) == []
        assert "measure_power" not in mapping.capabilities


class TestColorModes:
    """Only the active color mode's fields are exposed."""

    def test_temperature_mode_snapshot(self, registry, make_device):
        mapping = registry.synthesize(make_device(light_mode="temperature", **FULL_COLOR))
        color = mapping.shapes[0].attributes["colorControl"]

        assert color["colorMode"] == COLOR_MODE_TEMPERATURE
        assert color["colorTemperatureMireds"] == 147
        assert "currentHue" not in color
        assert "currentSaturation" not in color

    def test_color_mode_snapshot(self, registry, make_device):
        mapping = registry.synthesize(make_device(light_mode="color", **FULL_COLOR))
        color = mapping.shapes[0].attributes["colorControl"]

        assert color["colorMode"] == COLOR_MODE_HUE_SATURATION
        assert color["currentHue"] == 127
        assert color["currentSaturation"] == 254
        assert "colorTemperatureMireds" not in color

    def test_inactive_mode_updates_are_dropped(self, registry, make_device):
        mapping = registry.synthesize(make_device(light_mode="temperature", **FULL_COLOR))
        values = {"light_mode": "temperature"}

        assert mapping.forward_patches("light_hue", 0.25, values) == []
        (suffix, patch), = mapping.forward_patches("light_temperature", 1.0, values)
        assert patch == {"colorControl": {"colorMode": COLOR_MODE_TEMPERATURE, "colorTemperatureMireds": 500}}

    def test_mode_switch_sends_active_fields(self, registry, make_device):
        mapping = registry.synthesize(make_device(light_mode="temperature", **FULL_COLOR))
        values = dict(FULL_COLOR, light_mode="color")

        (_, patch), = mapping.forward_patches("light_mode", "color", values)
        assert patch["colorControl"] == {
            "colorMode": COLOR_MODE_HUE_SATURATION,
            "currentHue": 127,
            "currentSaturation": 254,
        }

    def test_without_mode_capability_last_change_decides(self, registry, make_device):
        mapping = registry.synthesize(make_device(**FULL_COLOR))

        (_, patch), = mapping.forward_patches("light_temperature", 0.0, {})
        assert patch["colorControl"]["colorMode"] == COLOR_MODE_TEMPERATURE
        (_, patch), = mapping.forward_patches("light_hue", 0.5, {})
        assert patch["colorControl"]["colorMode"] == COLOR_MODE_HUE_SATURATION

    def test_color_temperature_command_switches_mode(self, registry, make_device):
        mapping = registry.synthesize(make_device(light_mode="color", **FULL_COLOR))
        writes = mapping.reverse_writes("colorControl", "moveToColorTemperature", {"colorTemperatureMireds": 500}, {})
        assert writes == {"light_temperature": 1.0, "light_mode": "temperature"}

    def test_hue_command_without_mode_capability(self, registry, make_device):
        mapping = registry.synthesize(make_device(**FULL_COLOR))
        writes = mapping.reverse_writes("colorControl", "moveToHueAndSaturation", {"hue": 127, "saturation": 254}, {})
        assert writes == {"light_hue": 0.5, "light_saturation": 1.0}


class TestReverse:
    """Tests for command -> capability writes."""

    def test_on_off_commands(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=False))
        assert mapping.reverse_writes("onOff", "on", {}, {}) == {"onoff": True}
        assert mapping.reverse_writes("onOff", "off", {}, {}) == {"onoff": False}
        assert mapping.reverse_writes("onOff", "toggle", {}, {"onoff": True}) == {"onoff": False}

    def test_move_to_level_round_trip(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=True, dim=0.5))
        for value in (0.1, 0.42, 0.5, 0.9):
            (_, patch), = mapping.forward_patches("dim", value, {})
            level = patch["levelControl"]["currentLevel"]
            writes = mapping.reverse_writes("levelControl", "moveToLevel", {"level": level}, {})
            assert abs(writes["dim"] - value) <= 1 / 254

    def test_move_to_level_with_on_off_is_compound(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=False, dim=0.1))

        writes = mapping.reverse_writes("levelControl", "moveToLevelWithOnOff", {"level": 127}, {})
        assert writes == {"dim": 0.5, "onoff": True}

        writes = mapping.reverse_writes("levelControl", "moveToLevelWithOnOff", {"level": 1}, {})
        assert writes["onoff"] is False

    def test_invalid_arguments(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=True, dim=0.5))
        with pytest.raises(ValueError):
            mapping.reverse_writes("levelControl", "moveToLevel", {}, {})

    def test_unsupported_command(self, registry, make_device):
        mapping = registry.synthesize(make_device(onoff=True))
        assert not mapping.supports("levelControl", "moveToLevel")
        with pytest.raises(KeyError):
            mapping.reverse_writes("levelControl", "moveToLevel", {"level": 3}, {})


class TestSensors:
    """Sensors get one endpoint per measurement."""

    def test_multiple_endpoints(self, registry, make_device):
        mapping = registry.synthesize(
            make_device("s1", device_class="sensor", measure_temperature=21.5, measure_humidity=40)
        )

        assert [(s.suffix, s.device_type) for s in mapping.shapes] == [
            ("", DEVICE_TYPE_TEMPERATURE_SENSOR),
            ("humidity", DEVICE_TYPE_HUMIDITY_SENSOR),
        ]
        assert mapping.shapes[0].attributes == {"temperatureMeasurement": {"measuredValue": 2150}}
        assert mapping.forward_patches("measure_humidity", 55, {}) == [
            ("humidity", {"relativeHumidityMeasurement": {"measuredValue": 5500}})
        ]

    def test_contact_is_inverted(self, registry, make_device):
        mapping = registry.synthesize(make_device("s2", device_class="sensor", alarm_contact=True))

        assert mapping.shapes[0].device_type == DEVICE_TYPE_CONTACT_SENSOR
        assert mapping.shapes[0].attributes["booleanState"]["stateValue"] is False
        assert mapping.forward_patches("alarm_contact", None, {}) == [("", {"booleanState": {"stateValue": None}})]

    def test_sensor_without_measurements(self, registry, make_device):
        assert registry.synthesize(make_device("s3", device_class="sensor", alarm_battery=False)) is None


class TestOtherClasses:
    """Thermostats, window coverings and locks."""

    def test_thermostat(self, registry, make_device):
        mapping = registry.synthesize(make_device(
            "t1", device_class="thermostat",
            target_temperature=20.0, measure_temperature=19.25, thermostat_mode="cool",
        ))
        attrs = mapping.shapes[0].attributes["thermostat"]
        assert attrs == {"localTemperature": 1925, "occupiedHeatingSetpoint": 2000, "systemMode": 3}

        values = {"target_temperature": 20.0}
        assert mapping.reverse_writes("thermostat", "setpointRaiseLower", {"mode": 0, "amount": 5}, values) == {
            "target_temperature": 20.5
        }
        assert mapping.reverse_writes("thermostat", "occupiedHeatingSetpoint$Changed", {"value": 2150}, {}) == {
            "target_temperature": 21.5
        }
        assert mapping.reverse_writes("thermostat", "systemMode$Changed", {"value": 4}, {}) == {
            "thermostat_mode": "heat"
        }

    def test_window_covering(self, registry, make_device):
        mapping = registry.synthesize(make_device("w1", device_class="windowcoverings", windowcoverings_set=1.0))
        assert mapping.shapes[0].attributes["windowCovering"]["currentPositionLiftPercent100ths"] == 0
        assert mapping.reverse_writes(
            "windowCovering", "goToLiftPercentage", {"liftPercent100thsValue": 2500}, {}
        ) == {"windowcoverings_set": 0.75}
        assert not mapping.supports("windowCovering", "stopMotion")

    def test_lock(self, registry, make_device):
        mapping = registry.synthesize(make_device("l1", device_class="lock", locked=True))
        assert mapping.shapes[0].attributes["doorLock"]["lockState"] == 1
        assert mapping.reverse_writes("doorLock", "unlockDoor", {}, {}) == {"locked": False}


def test_endpoint_id():
    assert endpoint_id("abc") == "abc"
    assert endpoint_id("abc", "humidity") == "abc-humidity"
