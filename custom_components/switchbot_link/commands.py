"""Turn pending property changes into ordered device commands."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from .capabilities import FAMILY_COVER, FAMILY_HUMIDIFIER, FAMILY_LIGHT, FAMILY_SWITCH
from .codec import format_rgb, hue_sat_to_rgb, kelvin_for_device, mired_to_kelvin
from .const import CURTAIN_MODE_PERFORMANCE, CURTAIN_MODE_SILENT
from .models import (
    PROP_BRIGHTNESS,
    PROP_COLOR_TEMP,
    PROP_HOLD,
    PROP_HUE,
    PROP_MODE,
    PROP_POSITION,
    PROP_POWER,
    PROP_SATURATION,
    PROP_TARGET_HUMIDITY,
    DeviceCommand,
)
from .state import DeviceState

_LOGGER = logging.getLogger(__name__)

PRIORITY_POWER = 0
PRIORITY_SETPOINT = 1
PRIORITY_FINE = 2

_PRIORITIES = {
    PROP_POWER: PRIORITY_POWER,
    PROP_HOLD: PRIORITY_SETPOINT,
    PROP_POSITION: PRIORITY_SETPOINT,
    PROP_MODE: PRIORITY_SETPOINT,
    PROP_TARGET_HUMIDITY: PRIORITY_SETPOINT,
    PROP_BRIGHTNESS: PRIORITY_FINE,
    PROP_HUE: PRIORITY_FINE,
    PROP_SATURATION: PRIORITY_FINE,
    PROP_COLOR_TEMP: PRIORITY_FINE,
}

# BLE command prefixes
_BOT = bytes.fromhex("5701")
_PLUG_MINI = bytes.fromhex("570f5001")
_BULB = bytes.fromhex("570f4701")
_STRIP = bytes.fromhex("570f4901")
_CURTAIN = bytes.fromhex("570f4501")

_CURTAIN_MODE_BYTES = {CURTAIN_MODE_PERFORMANCE: 0x00, CURTAIN_MODE_SILENT: 0x01}
_CURTAIN_MODE_PARAMS = {CURTAIN_MODE_PERFORMANCE: "0", CURTAIN_MODE_SILENT: "1"}


def command_priority(command: DeviceCommand) -> int:
    return min((_PRIORITIES.get(p, PRIORITY_FINE) for p in command.covers), default=PRIORITY_FINE)


def _power_command(state: DeviceState, on: bool) -> DeviceCommand:
    device_type = state.identity.device_type
    local = None
    if device_type == "Bot":
        if on and state.get(PROP_MODE) == "pressMode":
            return DeviceCommand("press", covers=(PROP_POWER,), local_payload=_BOT + b"\x00")
        local = _BOT + (b"\x01" if on else b"\x02")
    elif device_type in ("Plug Mini (US)", "Plug Mini (JP)"):
        local = _PLUG_MINI + (b"\x01\x80" if on else b"\x01\x00")
    elif device_type == "Color Bulb":
        local = _BULB + (b"\x01" if on else b"\x02")
    elif device_type == "Strip Light":
        local = _STRIP + (b"\x01" if on else b"\x02")
    return DeviceCommand("turnOn" if on else "turnOff", covers=(PROP_POWER,), local_payload=local)


def _light_prefix(state: DeviceState) -> bytes | None:
    return {"Color Bulb": _BULB, "Strip Light": _STRIP}.get(state.identity.device_type)


def _light_commands(state: DeviceState, deltas: Dict[str, Any]) -> List[DeviceCommand]:
    out: List[DeviceCommand] = []
    prefix = _light_prefix(state)
    brightness = int(state.target(PROP_BRIGHTNESS, 100) or 100)
    color_changed = PROP_HUE in deltas or PROP_SATURATION in deltas
    combined = state.capability.combine_brightness_color and color_changed
    brightness_cmd = DeviceCommand(
        "setBrightness",
        str(brightness),
        covers=(PROP_BRIGHTNESS,),
        local_payload=prefix + bytes([0x14, brightness]) if prefix else None,
    )

    if PROP_BRIGHTNESS in deltas and not combined:
        out.append(brightness_cmd)

    if color_changed:
        rgb = hue_sat_to_rgb(float(state.target(PROP_HUE, 0.0)), float(state.target(PROP_SATURATION, 0.0)))
        covers: Tuple[str, ...] = (PROP_HUE, PROP_SATURATION)
        followups: Tuple[DeviceCommand, ...] = ()
        if combined:
            covers += (PROP_BRIGHTNESS,)
            if PROP_BRIGHTNESS in deltas:
                # The cloud API has no combined call
                followups = (brightness_cmd,)
        out.append(
            DeviceCommand(
                "setColor",
                format_rgb(rgb),
                covers=covers,
                local_payload=prefix + bytes([0x12, brightness, *rgb]) if prefix else None,
                remote_followups=followups,
            )
        )
    elif PROP_COLOR_TEMP in deltas:
        low, high = state.kelvin_range()
        kelvin = kelvin_for_device(mired_to_kelvin(float(deltas[PROP_COLOR_TEMP])), low, high)
        out.append(
            DeviceCommand(
                "setColorTemperature",
                str(kelvin),
                covers=(PROP_COLOR_TEMP,),
                local_payload=(
                    prefix + bytes([0x13, brightness]) + kelvin.to_bytes(2, "big")
                    if prefix == _BULB
                    else None
                ),
            )
        )
    return out


def curtain_mode_for(state: DeviceState, target: int) -> str | None:
    """Open mode applies to targets above half open, close mode otherwise."""
    if target > 50:
        return state.config.open_mode
    return state.config.close_mode


def _cover_commands(state: DeviceState, deltas: Dict[str, Any]) -> List[DeviceCommand]:
    supports_local = state.capability.supports_local
    if PROP_HOLD in deltas:
        return [
            DeviceCommand(
                "pause",
                covers=(PROP_HOLD,),
                local_payload=_CURTAIN + bytes([0x00, 0xFF]) if supports_local else None,
            )
        ]
    if PROP_POSITION not in deltas:
        return []
    target = max(0, min(100, int(round(float(deltas[PROP_POSITION])))))
    # The device counts how far closed it is
    device_position = 100 - target
    mode = curtain_mode_for(state, target)
    return [
        DeviceCommand(
            "setPosition",
            f"0,{_CURTAIN_MODE_PARAMS.get(mode, 'ff')},{device_position}",
            covers=(PROP_POSITION,),
            local_payload=(
                _CURTAIN + bytes([0x05, _CURTAIN_MODE_BYTES.get(mode, 0xFF), device_position])
                if supports_local
                else None
            ),
        )
    ]


def _humidifier_commands(state: DeviceState, deltas: Dict[str, Any]) -> List[DeviceCommand]:
    out: List[DeviceCommand] = []
    if deltas.get(PROP_MODE) == "auto":
        out.append(DeviceCommand("setMode", "auto", covers=(PROP_MODE,)))
    elif PROP_TARGET_HUMIDITY in deltas:
        target = max(0, min(100, int(deltas[PROP_TARGET_HUMIDITY])))
        out.append(DeviceCommand("setMode", str(target), covers=(PROP_TARGET_HUMIDITY,)))
    return out


def build_commands(state: DeviceState, deltas: Dict[str, Any]) -> List[DeviceCommand]:
    """Commands for one push cycle in priority order.

    Power goes first; when the cycle turns the device off nothing else is sent.
    """
    family = state.capability.family
    deltas = {k: v for k, v in deltas.items() if k in state.capability.settable}
    out: List[DeviceCommand] = []

    if PROP_POWER in deltas:
        on = bool(deltas[PROP_POWER])
        out.append(_power_command(state, on))
        if not on:
            skipped = sorted(k for k in deltas if k != PROP_POWER)
            if skipped:
                _LOGGER.debug("%s turning off; skipping %s", state.device_id, skipped)
            return out

    if family == FAMILY_LIGHT:
        out.extend(_light_commands(state, deltas))
    elif family == FAMILY_COVER:
        out.extend(_cover_commands(state, deltas))
    elif family == FAMILY_HUMIDIFIER:
        out.extend(_humidifier_commands(state, deltas))
    elif family != FAMILY_SWITCH:
        _LOGGER.debug("%s (%s) has no settable commands", state.device_id, family)

    out.sort(key=command_priority)
    return out


def covered_values(command: DeviceCommand, deltas: Dict[str, Any]) -> Dict[str, Any]:
    """The requested values a successful command confirms."""
    return {prop: deltas[prop] for prop in command.covers if prop in deltas}
