"""Mapping rules from Homey capabilities to Matter endpoints.

Each device class has an ordered list of rules. The first rule whose required
capabilities are all present builds the device's endpoint shapes together with
the forward (capability -> attribute) and reverse (command -> capability
writes) translations. Richer rules come first.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from constants import (
    CLUSTER_BOOLEAN_STATE,
    CLUSTER_COLOR_CONTROL,
    CLUSTER_DOOR_LOCK,
    CLUSTER_HUMIDITY_MEASUREMENT,
    CLUSTER_ILLUMINANCE_MEASUREMENT,
    CLUSTER_LEVEL_CONTROL,
    CLUSTER_OCCUPANCY_SENSING,
    CLUSTER_ON_OFF,
    CLUSTER_TEMPERATURE_MEASUREMENT,
    CLUSTER_THERMOSTAT,
    CLUSTER_WINDOW_COVERING,
    COLOR_MODE_HUE_SATURATION,
    COLOR_MODE_TEMPERATURE,
    DEVICE_TYPE_COLOR_TEMPERATURE_LIGHT,
    DEVICE_TYPE_CONTACT_SENSOR,
    DEVICE_TYPE_DIMMABLE_LIGHT,
    DEVICE_TYPE_DIMMABLE_PLUG_IN_UNIT,
    DEVICE_TYPE_DOOR_LOCK,
    DEVICE_TYPE_EXTENDED_COLOR_LIGHT,
    DEVICE_TYPE_HUMIDITY_SENSOR,
    DEVICE_TYPE_LIGHT_SENSOR,
    DEVICE_TYPE_OCCUPANCY_SENSOR,
    DEVICE_TYPE_ON_OFF_LIGHT,
    DEVICE_TYPE_ON_OFF_PLUG_IN_UNIT,
    DEVICE_TYPE_TEMPERATURE_SENSOR,
    DEVICE_TYPE_THERMOSTAT,
    DEVICE_TYPE_WINDOW_COVERING,
    LEVEL_MAX,
    LEVEL_MIN,
    LOCK_STATE_LOCKED,
    LOCK_STATE_UNLOCKED,
    MIREDS_MAX,
    MIREDS_MIN,
    SYSTEM_MODE_AUTO,
    SYSTEM_MODE_COOL,
    SYSTEM_MODE_HEAT,
    SYSTEM_MODE_OFF,
)
from models import AttributeTree, Device, EndpointShape
from transforms import (
    celsius_to_centi,
    celsius_to_setpoint,
    centi_to_celsius,
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
    saturation_to_fraction,
    to_bool,
)

logger = logging.getLogger(__name__)

Patch = Tuple[str, AttributeTree]  # (endpoint suffix, attribute tree)
ForwardFn = Callable[[Any, Mapping[str, Any]], List[Patch]]
ReverseFn = Callable[[Mapping[str, Any], Mapping[str, Any]], Dict[str, Any]]

SYSTEM_MODES = {
    "off": SYSTEM_MODE_OFF,
    "auto": SYSTEM_MODE_AUTO,
    "cool": SYSTEM_MODE_COOL,
    "heat": SYSTEM_MODE_HEAT,
}
THERMOSTAT_MODES = {mode: name for name, mode in SYSTEM_MODES.items()}


def endpoint_id(device_id: str, suffix: str = "") -> str:
    """Endpoint id for a device's endpoint; the primary endpoint uses the device id."""
    return f"{device_id}-{suffix}" if suffix else device_id


def _patch(cluster: str, attributes: Dict[str, Any], suffix: str = "") -> List[Patch]:
    return [(suffix, {cluster: attributes})]


def _arg(args: Mapping[str, Any], key: str) -> Any:
    value = args.get(key)
    if not is_number(value):
        raise ValueError(f"Missing or invalid argument '{key}': {value!r}")
    return value


@dataclass
class DeviceMapping:
    """Result of applying a rule to one device."""
    rule: str
    shapes: List[EndpointShape]
    forward: Dict[str, ForwardFn] = field(default_factory=dict)
    reverse: Dict[Tuple[str, str], ReverseFn] = field(default_factory=dict)

    @property
    def capabilities(self) -> List[str]:
        """Capabilities that need a subscription."""
        return list(self.forward)

    def forward_patches(self, capability_id: str, value: Any, values: Mapping[str, Any]) -> List[Patch]:
        fn = self.forward.get(capability_id)
        if fn is None:
            return []
        return fn(value, values)

    def supports(self, cluster: str, command: str) -> bool:
        return (cluster, command) in self.reverse

    def reverse_writes(
        self, cluster: str, command: str, args: Mapping[str, Any], values: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """Capability writes for an inbound command. Raises KeyError if unsupported."""
        return self.reverse[(cluster, command)](args, values)


class MappingBuilder:
    """Accumulates endpoints and translations while a rule runs."""

    def __init__(self, rule: str, device: Device):
        self.rule = rule
        self.device = device
        self.capabilities = device.capability_ids
        self.values = device.capability_values()
        self._endpoints: Dict[str, Tuple[str, Dict[str, Dict[str, Any]]]] = {}
        self._forward: Dict[str, ForwardFn] = {}
        self._reverse: Dict[Tuple[str, str], ReverseFn] = {}

    def has(self, capability_id: str) -> bool:
        return capability_id in self.capabilities

    def endpoint(self, device_type: str, suffix: str = "") -> None:
        if suffix in self._endpoints:
            raise ValueError(f"Endpoint '{suffix}' defined twice by rule {self.rule}")
        self._endpoints[suffix] = (device_type, {})

    def cluster(self, cluster: str, attributes: Dict[str, Any], suffix: str = "") -> None:
        _, clusters = self._endpoints[suffix]
        clusters.setdefault(cluster, {}).update(attributes)

    def on_change(self, capability_id: str, fn: ForwardFn) -> None:
        self._forward[capability_id] = fn

    def on_command(self, cluster: str, command: str, fn: ReverseFn) -> None:
        self._reverse[(cluster, command)] = fn

    def build(self) -> DeviceMapping:
        shapes = [
            EndpointShape(
                device_type=device_type,
                clusters=tuple(clusters),
                attributes={name: dict(attrs) for name, attrs in clusters.items()},
                suffix=suffix,
            )
            for suffix, (device_type, clusters) in self._endpoints.items()
        ]
        return DeviceMapping(
            rule=self.rule,
            shapes=shapes,
            forward=dict(self._forward),
            reverse=dict(self._reverse),
        )


@dataclass(frozen=True)
class MappingRule:
    """Declarative rule: which capabilities it needs and how to build endpoints."""
    name: str
    requires: FrozenSet[str]
    build: Callable[[MappingBuilder], None]
    any_of: FrozenSet[str] = frozenset()

    def matches(self, capabilities: Iterable[str]) -> bool:
        caps = set(capabilities)
        if not self.requires <= caps:
            return False
        return not self.any_of or bool(self.any_of & caps)


class MapperRegistry:
    """Device class -> ordered list of mapping rules."""

    def __init__(self):
        self._rules: Dict[str, List[MappingRule]] = {}

    def register(self, device_class: str, rule: MappingRule) -> None:
        """Append a rule; earlier rules take precedence."""
        self._rules.setdefault(device_class, []).append(rule)

    def rules_for(self, device_class: str) -> List[MappingRule]:
        return list(self._rules.get(device_class, []))

    @property
    def device_classes(self) -> List[str]:
        return list(self._rules)

    def match(self, device: Device) -> Optional[MappingRule]:
        for rule in self._rules.get(device.effective_class, []):
            if rule.matches(device.capability_ids):
                return rule
        return None

    def synthesize(self, device: Device) -> Optional[DeviceMapping]:
        """Build the mapping for a device, or None if no rule applies."""
        device_class = device.effective_class
        if device_class not in self._rules:
            logger.info(f"Skipping device {device.id} ({device.name}): unsupported class '{device_class}'")
            return None
        rule = self.match(device)
        if rule is None:
            logger.info(
                f"Skipping device {device.id} ({device.name}): no {device_class} rule matches "
                f"capabilities {sorted(device.capability_ids)}"
            )
            return None
        builder = MappingBuilder(rule.name, device)
        rule.build(builder)
        mapping = builder.build()
        logger.debug(
            f"Device {device.id} mapped by rule {rule.name} to "
            f"{[shape.device_type for shape in mapping.shapes]}"
        )
        return mapping


# On/off and level

def _add_on_off(b: MappingBuilder) -> None:
    b.cluster(CLUSTER_ON_OFF, {"onOff": to_bool(b.values.get("onoff"))})
    b.on_change("onoff", lambda value, _: _patch(CLUSTER_ON_OFF, {"onOff": to_bool(value)}))
    b.on_command(CLUSTER_ON_OFF, "on", lambda args, _: {"onoff": True})
    b.on_command(CLUSTER_ON_OFF, "off", lambda args, _: {"onoff": False})
    b.on_command(CLUSTER_ON_OFF, "toggle", lambda args, values: {"onoff": not bool(values.get("onoff"))})


def _move_to_level_with_on_off(args: Mapping[str, Any], _values: Mapping[str, Any]) -> Dict[str, Any]:
    level = _arg(args, "level")
    return {"dim": level_to_fraction(level), "onoff": level > LEVEL_MIN}


def _add_level(b: MappingBuilder) -> None:
    b.cluster(
        CLUSTER_LEVEL_CONTROL,
        {
            "currentLevel": fraction_to_level(b.values.get("dim")),
            "minLevel": LEVEL_MIN,
            "maxLevel": LEVEL_MAX,
        },
    )
    b.on_change("dim", lambda value, _: _patch(CLUSTER_LEVEL_CONTROL, {"currentLevel": fraction_to_level(value)}))
    b.on_command(
        CLUSTER_LEVEL_CONTROL,
        "moveToLevel",
        lambda args, _: {"dim": level_to_fraction(_arg(args, "level"))},
    )
    b.on_command(CLUSTER_LEVEL_CONTROL, "moveToLevelWithOnOff", _move_to_level_with_on_off)


# Color

def _add_color(b: MappingBuilder, hs: bool, ct: bool) -> None:
    """colorControl with hue/saturation and/or temperature.

    Only the fields of the active color mode are ever sent. With both modes,
    the mode follows light_mode when the device has it, otherwise the
    capability that changed last decides.
    """
    switchable = hs and ct
    has_mode = switchable and b.has("light_mode")

    def active_mode(values: Mapping[str, Any]) -> int:
        if not hs:
            return COLOR_MODE_TEMPERATURE
        if not ct:
            return COLOR_MODE_HUE_SATURATION
        if values.get("light_mode") == "temperature":
            return COLOR_MODE_TEMPERATURE
        return COLOR_MODE_HUE_SATURATION

    def mode_fields(mode: int, values: Mapping[str, Any]) -> Dict[str, Any]:
        if mode == COLOR_MODE_TEMPERATURE:
            return {"colorTemperatureMireds": fraction_to_mireds(values.get("light_temperature"))}
        return {
            "currentHue": fraction_to_hue(values.get("light_hue")),
            "currentSaturation": fraction_to_saturation(values.get("light_saturation")),
        }

    mode = active_mode(b.values)
    attributes: Dict[str, Any] = {"colorMode": mode}
    attributes.update(mode_fields(mode, b.values))
    if ct:
        attributes["colorTempPhysicalMinMireds"] = MIREDS_MIN
        attributes["colorTempPhysicalMaxMireds"] = MIREDS_MAX
    b.cluster(CLUSTER_COLOR_CONTROL, attributes)

    if hs:
        def hs_change(attribute: str, convert: Callable[[Any], Optional[int]]) -> ForwardFn:
            def forward(value: Any, values: Mapping[str, Any]) -> List[Patch]:
                if has_mode and values.get("light_mode") == "temperature":
                    return []
                return _patch(CLUSTER_COLOR_CONTROL, {"colorMode": COLOR_MODE_HUE_SATURATION, attribute: convert(value)})
            return forward

        b.on_change("light_hue", hs_change("currentHue", fraction_to_hue))
        b.on_change("light_saturation", hs_change("currentSaturation", fraction_to_saturation))

        def with_color_mode(writes: Dict[str, Any]) -> Dict[str, Any]:
            if has_mode:
                writes["light_mode"] = "color"
            return writes

        b.on_command(
            CLUSTER_COLOR_CONTROL,
            "moveToHue",
            lambda args, _: with_color_mode({"light_hue": hue_to_fraction(_arg(args, "hue"))}),
        )
        b.on_command(
            CLUSTER_COLOR_CONTROL,
            "moveToSaturation",
            lambda args, _: with_color_mode({"light_saturation": saturation_to_fraction(_arg(args, "saturation"))}),
        )
        b.on_command(
            CLUSTER_COLOR_CONTROL,
            "moveToHueAndSaturation",
            lambda args, _: with_color_mode({
                "light_hue": hue_to_fraction(_arg(args, "hue")),
                "light_saturation": saturation_to_fraction(_arg(args, "saturation")),
            }),
        )

    if ct:
        def temperature_change(value: Any, values: Mapping[str, Any]) -> List[Patch]:
            if has_mode and values.get("light_mode") == "color":
                return []
            return _patch(
                CLUSTER_COLOR_CONTROL,
                {"colorMode": COLOR_MODE_TEMPERATURE, "colorTemperatureMireds": fraction_to_mireds(value)},
            )

        b.on_change("light_temperature", temperature_change)

        def move_to_color_temperature(args: Mapping[str, Any], _values: Mapping[str, Any]) -> Dict[str, Any]:
            writes: Dict[str, Any] = {
                "light_temperature": mireds_to_fraction(_arg(args, "colorTemperatureMireds")),
            }
            if has_mode:
                writes["light_mode"] = "temperature"
            return writes

        b.on_command(CLUSTER_COLOR_CONTROL, "moveToColorTemperature", move_to_color_temperature)

    if has_mode:
        def mode_change(value: Any, values: Mapping[str, Any]) -> List[Patch]:
            current = active_mode(values)
            return _patch(CLUSTER_COLOR_CONTROL, dict(colorMode=current, **mode_fields(current, values)))

        b.on_change("light_mode", mode_change)


def _light(device_type: str, level: bool = True, hs: bool = False, ct: bool = False) -> Callable[[MappingBuilder], None]:
    def build(b: MappingBuilder) -> None:
        b.endpoint(device_type)
        _add_on_off(b)
        if level:
            _add_level(b)
        if hs or ct:
            _add_color(b, hs=hs, ct=ct)
    return build


# Sensors

def _measurement(
    capability_id: str,
    device_type: str,
    cluster: str,
    attribute: str,
    convert: Callable[[Any], Any],
    suffix: str,
) -> Tuple[str, Callable[[MappingBuilder, str], None]]:
    def build(b: MappingBuilder, endpoint_suffix: str) -> None:
        b.endpoint(device_type, endpoint_suffix)
        b.cluster(cluster, {attribute: convert(b.values.get(capability_id))}, endpoint_suffix)
        b.on_change(capability_id, lambda value, _: _patch(cluster, {attribute: convert(value)}, endpoint_suffix))
    return suffix, build


def _occupancy(value: Any) -> Optional[Dict[str, bool]]:
    if value is None:
        return None
    return {"occupied": bool(value)}


def _contact(value: Any) -> Optional[bool]:
    # Homey alarm_contact is true when open; booleanState is true when in contact
    if value is None:
        return None
    return not value


SENSOR_MEASUREMENTS = {
    "measure_temperature": _measurement(
        "measure_temperature", DEVICE_TYPE_TEMPERATURE_SENSOR,
        CLUSTER_TEMPERATURE_MEASUREMENT, "measuredValue", celsius_to_centi, "temperature",
    ),
    "measure_humidity": _measurement(
        "measure_humidity", DEVICE_TYPE_HUMIDITY_SENSOR,
        CLUSTER_HUMIDITY_MEASUREMENT, "measuredValue", percent_to_centi, "humidity",
    ),
    "measure_luminance": _measurement(
        "measure_luminance", DEVICE_TYPE_LIGHT_SENSOR,
        CLUSTER_ILLUMINANCE_MEASUREMENT, "measuredValue", lux_to_illuminance, "luminance",
    ),
    "alarm_motion": _measurement(
        "alarm_motion", DEVICE_TYPE_OCCUPANCY_SENSOR,
        CLUSTER_OCCUPANCY_SENSING, "occupancy", _occupancy, "motion",
    ),
    "alarm_contact": _measurement(
        "alarm_contact", DEVICE_TYPE_CONTACT_SENSOR,
        CLUSTER_BOOLEAN_STATE, "stateValue", _contact, "contact",
    ),
}


def _sensors(b: MappingBuilder) -> None:
    """One endpoint per measurement; the first present one is the primary endpoint."""
    primary = True
    for capability_id, (suffix, build) in SENSOR_MEASUREMENTS.items():
        if not b.has(capability_id):
            continue
        build(b, "" if primary else suffix)
        primary = False


# Thermostat

def _system_mode(value: Any) -> Optional[int]:
    return SYSTEM_MODES.get(value) if isinstance(value, str) else None


def _thermostat(b: MappingBuilder) -> None:
    b.endpoint(DEVICE_TYPE_THERMOSTAT)
    attributes: Dict[str, Any] = {
        "localTemperature": celsius_to_centi(b.values.get("measure_temperature")),
        "occupiedHeatingSetpoint": celsius_to_setpoint(b.values.get("target_temperature")),
        "systemMode": SYSTEM_MODE_HEAT,
    }
    if b.has("thermostat_mode"):
        attributes["systemMode"] = _system_mode(b.values.get("thermostat_mode"))
    b.cluster(CLUSTER_THERMOSTAT, attributes)

    b.on_change(
        "target_temperature",
        lambda value, _: _patch(CLUSTER_THERMOSTAT, {"occupiedHeatingSetpoint": celsius_to_setpoint(value)}),
    )
    b.on_command(
        CLUSTER_THERMOSTAT,
        "occupiedHeatingSetpoint$Changed",
        lambda args, _: {"target_temperature": centi_to_celsius(_arg(args, "value"))},
    )

    def raise_lower(args: Mapping[str, Any], values: Mapping[str, Any]) -> Dict[str, Any]:
        current = values.get("target_temperature")
        if not is_number(current):
            raise ValueError("Current target temperature is unknown")
        # amount is in steps of 0.1 degC
        return {"target_temperature": round(current + _arg(args, "amount") / 10, 1)}

    b.on_command(CLUSTER_THERMOSTAT, "setpointRaiseLower", raise_lower)

    if b.has("measure_temperature"):
        b.on_change(
            "measure_temperature",
            lambda value, _: _patch(CLUSTER_THERMOSTAT, {"localTemperature": celsius_to_centi(value)}),
        )
    if b.has("thermostat_mode"):
        b.on_change(
            "thermostat_mode",
            lambda value, _: _patch(CLUSTER_THERMOSTAT, {"systemMode": _system_mode(value)}),
        )

        def system_mode_changed(args: Mapping[str, Any], _values: Mapping[str, Any]) -> Dict[str, Any]:
            mode = THERMOSTAT_MODES.get(args.get("value"))
            if mode is None:
                raise ValueError(f"Unsupported system mode: {args.get('value')!r}")
            return {"thermostat_mode": mode}

        b.on_command(CLUSTER_THERMOSTAT, "systemMode$Changed", system_mode_changed)


# Window coverings

def _window_covering(b: MappingBuilder) -> None:
    b.endpoint(DEVICE_TYPE_WINDOW_COVERING)
    lift = position_to_lift(b.values.get("windowcoverings_set"))
    b.cluster(
        CLUSTER_WINDOW_COVERING,
        {"currentPositionLiftPercent100ths": lift, "targetPositionLiftPercent100ths": lift},
    )

    def position_change(value: Any, _values: Mapping[str, Any]) -> List[Patch]:
        lift = position_to_lift(value)
        return _patch(
            CLUSTER_WINDOW_COVERING,
            {"currentPositionLiftPercent100ths": lift, "targetPositionLiftPercent100ths": lift},
        )

    b.on_change("windowcoverings_set", position_change)
    b.on_command(
        CLUSTER_WINDOW_COVERING,
        "goToLiftPercentage",
        lambda args, _: {"windowcoverings_set": lift_to_position(_arg(args, "liftPercent100thsValue"))},
    )
    b.on_command(CLUSTER_WINDOW_COVERING, "upOrOpen", lambda args, _: {"windowcoverings_set": 1.0})
    b.on_command(CLUSTER_WINDOW_COVERING, "downOrClose", lambda args, _: {"windowcoverings_set": 0.0})
    if b.has("windowcoverings_state"):
        b.on_command(CLUSTER_WINDOW_COVERING, "stopMotion", lambda args, _: {"windowcoverings_state": "idle"})


# Locks

def _lock_state(value: Any) -> Optional[int]:
    if value is None:
        return None
    return LOCK_STATE_LOCKED if value else LOCK_STATE_UNLOCKED


def _door_lock(b: MappingBuilder) -> None:
    b.endpoint(DEVICE_TYPE_DOOR_LOCK)
    b.cluster(CLUSTER_DOOR_LOCK, {"lockState": _lock_state(b.values.get("locked"))})
    b.on_change("locked", lambda value, _: _patch(CLUSTER_DOOR_LOCK, {"lockState": _lock_state(value)}))
    b.on_command(CLUSTER_DOOR_LOCK, "lockDoor", lambda args, _: {"locked": True})
    b.on_command(CLUSTER_DOOR_LOCK, "unlockDoor", lambda args, _: {"locked": False})


def _rule(name: str, requires: Iterable[str], build: Callable[[MappingBuilder], None], any_of: Iterable[str] = ()) -> MappingRule:
    return MappingRule(name=name, requires=frozenset(requires), build=build, any_of=frozenset(any_of))


RULES: Dict[str, List[MappingRule]] = {
    "light": [
        _rule(
            "extended_color_light",
            ("onoff", "dim", "light_hue", "light_saturation", "light_temperature"),
            _light(DEVICE_TYPE_EXTENDED_COLOR_LIGHT, hs=True, ct=True),
        ),
        _rule(
            "color_light",
            ("onoff", "dim", "light_hue", "light_saturation"),
            _light(DEVICE_TYPE_EXTENDED_COLOR_LIGHT, hs=True),
        ),
        _rule(
            "color_temperature_light",
            ("onoff", "dim", "light_temperature"),
            _light(DEVICE_TYPE_COLOR_TEMPERATURE_LIGHT, ct=True),
        ),
        _rule("dimmable_light", ("onoff", "dim"), _light(DEVICE_TYPE_DIMMABLE_LIGHT)),
        _rule("on_off_light", ("onoff",), _light(DEVICE_TYPE_ON_OFF_LIGHT, level=False)),
    ],
    "socket": [
        _rule("dimmable_plug", ("onoff", "dim"), _light(DEVICE_TYPE_DIMMABLE_PLUG_IN_UNIT)),
        _rule("on_off_plug", ("onoff",), _light(DEVICE_TYPE_ON_OFF_PLUG_IN_UNIT, level=False)),
    ],
    "sensor": [
        _rule("sensors", (), _sensors, any_of=SENSOR_MEASUREMENTS),
    ],
    "thermostat": [
        _rule("thermostat", ("target_temperature",), _thermostat),
    ],
    "windowcoverings": [
        _rule("window_covering", ("windowcoverings_set",), _window_covering),
    ],
    "lock": [
        _rule("door_lock", ("locked",), _door_lock),
    ],
}


def build_default_registry() -> MapperRegistry:
    registry = MapperRegistry()
    for device_class, rules in RULES.items():
        for rule in rules:
            registry.register(device_class, rule)
    return registry
