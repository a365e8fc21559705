"""Per device-type capability descriptors.

One generic state model serves every device; what differs per type is
listed here: the properties it carries, which of them can be set, how
commands are grouped and which BLE model byte identifies it.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from .models import (
    PROP_BATTERY,
    PROP_BRIGHTNESS,
    PROP_COLOR_TEMP,
    PROP_CONTACT_OPEN,
    PROP_HOLD,
    PROP_HUE,
    PROP_HUMIDITY,
    PROP_LIGHT_LEVEL,
    PROP_LOW_BATTERY,
    PROP_MODE,
    PROP_MOTION,
    PROP_MOTION_DETECTED,
    PROP_ONLINE,
    PROP_POSITION,
    PROP_POWER,
    PROP_SATURATION,
    PROP_TARGET_HUMIDITY,
    PROP_TEMPERATURE,
    TransportCapability,
)

FAMILY_LIGHT = "light"
FAMILY_COVER = "cover"
FAMILY_SWITCH = "switch"
FAMILY_HUMIDIFIER = "humidifier"
FAMILY_SENSOR = "sensor"


@dataclass(frozen=True)
class Capability:
    device_type: str
    family: str
    properties: FrozenSet[str]
    settable: FrozenSet[str] = frozenset()
    # Model bytes seen in BLE advertisements; empty when the device has no local path
    ble_models: Tuple[str, ...] = ()
    # Brightness and RGB travel in one command (strip lights)
    combine_brightness_color: bool = False
    # The device reports a usable moving flag
    reports_moving: bool = False
    color_temp_range: Optional[Tuple[int, int]] = None

    @property
    def supports_local(self) -> bool:
        return bool(self.ble_models)

    def supports(self, prop: str) -> bool:
        return prop in self.properties

    def effective_transport(self, requested: TransportCapability) -> TransportCapability:
        """Downgrade the requested transport when the device has no local path."""
        if not self.supports_local:
            return TransportCapability.REMOTE_ONLY
        return requested


_LIGHT_COLOR = frozenset({PROP_POWER, PROP_BRIGHTNESS, PROP_HUE, PROP_SATURATION, PROP_COLOR_TEMP, PROP_ONLINE})
_COVER = frozenset(
    {PROP_POSITION, PROP_MOTION, PROP_HOLD, PROP_BATTERY, PROP_LOW_BATTERY, PROP_LIGHT_LEVEL, PROP_ONLINE}
)
_CLIMATE = frozenset({PROP_TEMPERATURE, PROP_HUMIDITY, PROP_BATTERY, PROP_LOW_BATTERY, PROP_ONLINE})


_CAPABILITIES: Dict[str, Capability] = {
    "Bot": Capability(
        "Bot",
        FAMILY_SWITCH,
        frozenset({PROP_POWER, PROP_MODE, PROP_BATTERY, PROP_LOW_BATTERY, PROP_ONLINE}),
        settable=frozenset({PROP_POWER}),
        ble_models=("H",),
    ),
    "Plug": Capability("Plug", FAMILY_SWITCH, frozenset({PROP_POWER, PROP_ONLINE}), settable=frozenset({PROP_POWER})),
    "Plug Mini (US)": Capability(
        "Plug Mini (US)",
        FAMILY_SWITCH,
        frozenset({PROP_POWER, PROP_ONLINE}),
        settable=frozenset({PROP_POWER}),
        ble_models=("g",),
    ),
    "Plug Mini (JP)": Capability(
        "Plug Mini (JP)",
        FAMILY_SWITCH,
        frozenset({PROP_POWER, PROP_ONLINE}),
        settable=frozenset({PROP_POWER}),
        ble_models=("j",),
    ),
    "Color Bulb": Capability(
        "Color Bulb",
        FAMILY_LIGHT,
        _LIGHT_COLOR,
        settable=frozenset({PROP_POWER, PROP_BRIGHTNESS, PROP_HUE, PROP_SATURATION, PROP_COLOR_TEMP}),
        ble_models=("u",),
        color_temp_range=(2700, 6500),
    ),
    "Strip Light": Capability(
        "Strip Light",
        FAMILY_LIGHT,
        frozenset({PROP_POWER, PROP_BRIGHTNESS, PROP_HUE, PROP_SATURATION, PROP_ONLINE}),
        settable=frozenset({PROP_POWER, PROP_BRIGHTNESS, PROP_HUE, PROP_SATURATION}),
        ble_models=("r",),
        combine_brightness_color=True,
    ),
    "Ceiling Light": Capability(
        "Ceiling Light",
        FAMILY_LIGHT,
        frozenset({PROP_POWER, PROP_BRIGHTNESS, PROP_COLOR_TEMP, PROP_ONLINE}),
        settable=frozenset({PROP_POWER, PROP_BRIGHTNESS, PROP_COLOR_TEMP}),
        color_temp_range=(2700, 6500),
    ),
    "Curtain": Capability(
        "Curtain",
        FAMILY_COVER,
        _COVER,
        settable=frozenset({PROP_POSITION, PROP_HOLD}),
        ble_models=("c",),
        reports_moving=True,
    ),
    "Curtain3": Capability(
        "Curtain3",
        FAMILY_COVER,
        _COVER,
        settable=frozenset({PROP_POSITION, PROP_HOLD}),
        ble_models=("{",),
        reports_moving=True,
    ),
    "Roller Shade": Capability(
        "Roller Shade",
        FAMILY_COVER,
        _COVER,
        settable=frozenset({PROP_POSITION, PROP_HOLD}),
    ),
    "Humidifier": Capability(
        "Humidifier",
        FAMILY_HUMIDIFIER,
        frozenset({PROP_POWER, PROP_MODE, PROP_TARGET_HUMIDITY, PROP_HUMIDITY, PROP_TEMPERATURE, PROP_ONLINE}),
        settable=frozenset({PROP_POWER, PROP_MODE, PROP_TARGET_HUMIDITY}),
    ),
    "Meter": Capability("Meter", FAMILY_SENSOR, _CLIMATE, ble_models=("T",)),
    "MeterPlus": Capability("MeterPlus", FAMILY_SENSOR, _CLIMATE, ble_models=("i",)),
    "Hub 2": Capability(
        "Hub 2",
        FAMILY_SENSOR,
        frozenset({PROP_TEMPERATURE, PROP_HUMIDITY, PROP_LIGHT_LEVEL, PROP_ONLINE}),
    ),
    "Motion Sensor": Capability(
        "Motion Sensor",
        FAMILY_SENSOR,
        frozenset({PROP_MOTION_DETECTED, PROP_LIGHT_LEVEL, PROP_BATTERY, PROP_LOW_BATTERY, PROP_ONLINE}),
        ble_models=("s",),
    ),
    "Contact Sensor": Capability(
        "Contact Sensor",
        FAMILY_SENSOR,
        frozenset(
            {PROP_CONTACT_OPEN, PROP_MOTION_DETECTED, PROP_LIGHT_LEVEL, PROP_BATTERY, PROP_LOW_BATTERY, PROP_ONLINE}
        ),
        ble_models=("d",),
    ),
}

# The cloud reports some models under alternative names
_ALIASES = {
    "Curtain 3": "Curtain3",
    "Meter Plus": "MeterPlus",
}


def resolve_capability(device_type: str) -> Optional[Capability]:
    """Return the capability descriptor for a device type if known."""
    return _CAPABILITIES.get(_ALIASES.get(device_type, device_type))


def capability_for_ble_model(model: str) -> Optional[Capability]:
    for cap in _CAPABILITIES.values():
        if model in cap.ble_models:
            return cap
    return None


def known_device_types() -> Tuple[str, ...]:
    return tuple(_CAPABILITIES)
