"""Merge inbound status into the canonical device state.

Every status source ends up here: polled cloud envelopes, BLE
advertisements and webhook contexts. Decoding differs per source; the
swap into ``current``, the curtain motion state machine and the change
notifications are shared.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from .codec import clamp_mired, kelvin_to_mired, light_level_to_lux, parse_rgb, rgb_to_hue_sat
from .const import API_SUCCESS_CODES, HUB_ID_NONE, LOW_BATTERY_THRESHOLD
from .errors import OFFLINE_CODES, DeviceFault, FinalError, Malformed
from .models import (
    PROP_BATTERY,
    PROP_BRIGHTNESS,
    PROP_COLOR_TEMP,
    PROP_CONTACT_OPEN,
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
    Advertisement,
    CommunicationFault,
    MotionState,
    TransportKind,
)
from .state import DeviceState

_LOGGER = logging.getLogger(__name__)

NotifyCallback = Callable[[str, str, Any], None]

# Moving flag travels alongside decoded properties but never lands in current
_MOVING = "_moving"


def normalize_fault_code(state: DeviceState, code: int) -> int:
    """A hub-offline report for a device that is its own hub means the device is offline."""
    if code == 171:
        hub_id = state.identity.hub_id
        if not hub_id or hub_id == HUB_ID_NONE or hub_id == state.device_id:
            return 161
    return code


def _on_off(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("on", "true"):
        return True
    if text in ("off", "false"):
        return False
    raise ValueError(f"not an on/off value: {value!r}")


def _position(state: DeviceState, device_position: Any) -> int:
    # Devices report how far closed they are
    position = 100 - max(0, min(100, int(device_position)))
    if position <= state.config.set_min:
        return 0
    if position >= state.config.set_max:
        return 100
    return position


def _bright_dim(state: DeviceState, value: str) -> float:
    if value == "bright":
        return float(state.config.max_lux)
    if value == "dim":
        return float(state.config.min_lux)
    raise ValueError(f"not a bright/dim value: {value!r}")


def _battery(updates: Dict[str, Any], value: Any) -> None:
    battery = int(value)
    updates[PROP_BATTERY] = battery
    updates[PROP_LOW_BATTERY] = battery < LOW_BATTERY_THRESHOLD


def _light_level(state: DeviceState, value: Any) -> float:
    if isinstance(value, str) and not value.isdigit():
        return _bright_dim(state, value)
    return light_level_to_lux(int(value), state.config.min_lux, state.config.max_lux)


def decode_body(state: DeviceState, body: Dict[str, Any]) -> Dict[str, Any]:
    """Decode a cloud status body or webhook context into property updates."""
    updates: Dict[str, Any] = {}
    family_light = state.capability.supports(PROP_HUE) or state.capability.supports(PROP_COLOR_TEMP)

    for key in ("power", "powerState"):
        if key in body:
            updates[PROP_POWER] = _on_off(body[key])
            break

    if "brightness" in body:
        value = body["brightness"]
        if isinstance(value, str) and not value.isdigit():
            updates[PROP_LIGHT_LEVEL] = _bright_dim(state, value)
        elif family_light or state.capability.supports(PROP_BRIGHTNESS):
            updates[PROP_BRIGHTNESS] = max(0, min(100, int(value)))

    if "lightLevel" in body:
        updates[PROP_LIGHT_LEVEL] = _light_level(state, body["lightLevel"])

    if "color" in body and body["color"]:
        hue, sat = rgb_to_hue_sat(*parse_rgb(body["color"]))
        updates[PROP_HUE] = round(hue, 2)
        updates[PROP_SATURATION] = round(sat, 2)

    if "colorTemperature" in body and body["colorTemperature"]:
        updates[PROP_COLOR_TEMP] = clamp_mired(kelvin_to_mired(float(body["colorTemperature"])))

    if "slidePosition" in body:
        updates[PROP_POSITION] = _position(state, body["slidePosition"])

    if "moving" in body and state.capability.reports_moving:
        updates[_MOVING] = bool(body["moving"])

    if "battery" in body:
        _battery(updates, body["battery"])

    if "temperature" in body:
        temperature = float(body["temperature"])
        if str(body.get("scale", "")).upper() == "FAHRENHEIT":
            temperature = (temperature - 32) * 5 / 9
        updates[PROP_TEMPERATURE] = round(temperature, 1)

    if "humidity" in body:
        updates[PROP_HUMIDITY] = int(body["humidity"])

    if "nebulizationEfficiency" in body:
        updates[PROP_TARGET_HUMIDITY] = int(body["nebulizationEfficiency"])

    if "auto" in body:
        updates[PROP_MODE] = "auto" if body["auto"] else "manual"
    for key in ("mode", "deviceMode"):
        if key in body and isinstance(body[key], str):
            updates.setdefault(PROP_MODE, body[key])

    if "moveDetected" in body:
        updates[PROP_MOTION_DETECTED] = bool(body["moveDetected"])
    if "detectionState" in body:
        updates[PROP_MOTION_DETECTED] = str(body["detectionState"]).upper() == "DETECTED"

    if "openState" in body:
        updates[PROP_CONTACT_OPEN] = str(body["openState"]) in ("open", "timeOutNotClose")

    return updates


def decode_advertisement(state: DeviceState, ad: Advertisement) -> Dict[str, Any]:
    """Decode a parsed BLE advertisement into property updates."""
    if ad.model not in state.capability.ble_models:
        raise ValueError(f"advertisement model {ad.model!r} does not match {state.identity.device_type}")
    data = ad.data
    updates: Dict[str, Any] = {}
    if "is_on" in data:
        updates[PROP_POWER] = bool(data["is_on"])
    if "switch_mode" in data:
        updates[PROP_MODE] = "switchMode" if data["switch_mode"] else "pressMode"
    if "brightness" in data and state.capability.supports(PROP_BRIGHTNESS):
        updates[PROP_BRIGHTNESS] = max(0, min(100, int(data["brightness"])))
    if "position" in data:
        updates[PROP_POSITION] = _position(state, data["position"])
    if "in_motion" in data and state.capability.reports_moving:
        updates[_MOVING] = bool(data["in_motion"])
    if "light_level" in data:
        updates[PROP_LIGHT_LEVEL] = light_level_to_lux(
            int(data["light_level"]), state.config.min_lux, state.config.max_lux
        )
    if "light_intensity" in data:
        updates[PROP_LIGHT_LEVEL] = _bright_dim(state, "bright" if data["light_intensity"] == 2 else "dim")
    if "is_light" in data:
        updates[PROP_LIGHT_LEVEL] = _bright_dim(state, "bright" if data["is_light"] else "dim")
    if "battery" in data:
        _battery(updates, data["battery"])
    if "temperature" in data:
        updates[PROP_TEMPERATURE] = float(data["temperature"])
    if "humidity" in data:
        updates[PROP_HUMIDITY] = int(data["humidity"])
    if "motion_detected" in data:
        updates[PROP_MOTION_DETECTED] = bool(data["motion_detected"])
    if "contact_open" in data:
        updates[PROP_CONTACT_OPEN] = bool(data["contact_open"])
    return updates


class Reconciler:
    """Owns every mutation of DeviceState.current."""

    def __init__(self, notify: NotifyCallback):
        self._notify = notify

    def validate_envelope(self, state: DeviceState, raw: Any) -> Dict[str, Any]:
        if not isinstance(raw, dict) or "statusCode" not in raw:
            raise Malformed(f"{state.device_id}: status response has no envelope")
        try:
            code = int(raw["statusCode"])
        except (TypeError, ValueError) as ex:
            raise Malformed(f"{state.device_id}: statusCode is not a number") from ex
        if code not in API_SUCCESS_CODES:
            raise DeviceFault(normalize_fault_code(state, code), raw.get("message") or None)
        body = raw.get("body")
        if not isinstance(body, dict):
            raise Malformed(f"{state.device_id}: status body is not an object")
        return body

    def reconcile(self, state: DeviceState, raw: Any, source: TransportKind) -> Dict[str, Any]:
        """Decode raw into state.current; return the changed properties.

        Raises Malformed or DeviceFault and leaves current untouched. The
        caller hands the result to emit() once it has released the device.
        """
        if source is TransportKind.REMOTE:
            body = self.validate_envelope(state, raw)
        elif source is TransportKind.PUSH:
            if not isinstance(raw, dict):
                raise Malformed(f"{state.device_id}: push context is not an object")
            body = raw
        elif not isinstance(raw, Advertisement):
            raise Malformed(f"{state.device_id}: expected an advertisement, got {type(raw).__name__}")
        else:
            body = None

        try:
            if body is None:
                updates = decode_advertisement(state, raw)
            else:
                updates = decode_body(state, body)
        except (TypeError, ValueError, KeyError) as ex:
            raise Malformed(f"{state.device_id}: {ex}") from ex

        moving = updates.pop(_MOVING, None)
        updates = {k: v for k, v in updates.items() if state.capability.supports(k)}
        if not updates:
            raise Malformed(f"{state.device_id}: no known fields in {source.value} payload")
        updates[PROP_ONLINE] = True

        if state.capability.supports(PROP_POSITION):
            self._derive_motion(state, updates, moving)

        changed = state.swap_current(updates)
        if state.fault is not None:
            # Host is showing a fault on these; give them their values back
            for prop in state.fault_properties:
                if prop in state.current:
                    changed.setdefault(prop, state.current[prop])
            _LOGGER.info("%s: communication restored", state.device_id)
            state.fault = None
            state.fault_properties = ()
        _LOGGER.debug("%s reconciled from %s: changed=%s", state.device_id, source.value, changed)
        return changed

    def _derive_motion(self, state: DeviceState, updates: Dict[str, Any], moving: Optional[bool]) -> None:
        state.cancel_assume_stopped()
        position = updates.get(PROP_POSITION, state.get(PROP_POSITION))
        if position is None:
            return
        target = state.pending_target.get(PROP_POSITION)
        if target is None or target == position or moving is False:
            updates[PROP_MOTION] = MotionState.STOPPED
            state.pending_target[PROP_POSITION] = position
            return
        updates[PROP_MOTION] = MotionState.INCREASING if target > position else MotionState.DECREASING
        if moving is None:
            delay = state.config.assume_stopped_after
            loop = asyncio.get_running_loop()
            state.assume_stopped_handle = loop.call_later(delay, self._assume_stopped, state)

    def _assume_stopped(self, state: DeviceState) -> None:
        state.assume_stopped_handle = None
        if state.motion is MotionState.STOPPED:
            return
        _LOGGER.debug("%s: no stop report, assuming stopped", state.device_id)
        state.collapse_target(PROP_POSITION)
        self.emit(state, state.swap_current({PROP_MOTION: MotionState.STOPPED}))

    def emit(self, state: DeviceState, changed: Dict[str, Any]) -> None:
        for prop, value in changed.items():
            try:
                self._notify(state.device_id, prop, value)
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Listener failed for %s %s", state.device_id, prop)

    def report_fault(self, state: DeviceState, error: FinalError, props: Optional[Iterable[str]] = None) -> None:
        """Surface a terminal failure to the host once per distinct condition."""
        code = normalize_fault_code(state, error.code) if error.code is not None else None
        fault = CommunicationFault(error.kind.value, code, str(error.cause or error))
        if state.fault is not None and (state.fault.kind, state.fault.code) == (fault.kind, fault.code):
            _LOGGER.debug("%s: still failing: %s", state.device_id, fault.message)
            return
        _LOGGER.warning("%s (%s): %s", state.identity.name or state.device_id, state.identity.device_type, error)

        changed: Dict[str, Any] = {}
        affected = state.affected_properties(props)
        if code in OFFLINE_CODES and state.config.offline_is_off:
            # Report an unreachable device as switched off rather than failing
            updates: Dict[str, Any] = {PROP_ONLINE: False}
            if state.capability.supports(PROP_POWER):
                updates[PROP_POWER] = False
                affected = tuple(p for p in affected if p != PROP_POWER)
            changed = state.swap_current(updates)

        state.fault = fault
        state.fault_properties = affected
        self.emit(state, changed)
        self.emit(state, {prop: fault for prop in affected})

