"""Decode SwitchBot BLE advertisement frames into structured records."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .models import Advertisement

_LOGGER = logging.getLogger(__name__)

SERVICE_DATA_UUIDS = (
    "0000fd3d-0000-1000-8000-00805f9b34fb",
    "00000d00-0000-1000-8000-00805f9b34fb",
)
MANUFACTURER_ID = 2409

MODEL_BOT = "H"
MODEL_CURTAIN = "c"
MODEL_CURTAIN3 = "{"
MODEL_METER = "T"
MODEL_METER_PLUS = "i"
MODEL_COLOR_BULB = "u"
MODEL_STRIP_LIGHT = "r"
MODEL_PLUG_MINI_US = "g"
MODEL_PLUG_MINI_JP = "j"
MODEL_MOTION = "s"
MODEL_CONTACT = "d"


def _bot(data: bytes, _mfr: bytes) -> Optional[Dict[str, Any]]:
    if len(data) < 3:
        return None
    switch_mode = bool(data[1] & 0b10000000)
    return {
        "switch_mode": switch_mode,
        "is_on": (not bool(data[1] & 0b01000000)) if switch_mode else False,
        "battery": data[2] & 0b01111111,
    }


def _curtain(data: bytes, _mfr: bytes) -> Optional[Dict[str, Any]]:
    if len(data) < 5:
        return None
    return {
        "calibration": bool(data[1] & 0b01000000),
        "battery": data[2] & 0b01111111,
        "in_motion": bool(data[3] & 0b10000000),
        # Reported as how far closed the curtain is
        "position": min(data[3] & 0b01111111, 100),
        "light_level": (data[4] >> 4) & 0b00001111,
        "device_chain": data[4] & 0b00000111,
    }


def _meter(data: bytes, _mfr: bytes) -> Optional[Dict[str, Any]]:
    if len(data) < 6:
        return None
    sign = 1 if data[4] & 0b10000000 else -1
    temperature = sign * ((data[4] & 0b01111111) + (data[3] & 0b00001111) / 10)
    return {
        "temperature": round(temperature, 1),
        "humidity": data[5] & 0b01111111,
        "battery": data[2] & 0b01111111,
    }


def _motion(data: bytes, _mfr: bytes) -> Optional[Dict[str, Any]]:
    if len(data) < 6:
        return None
    return {
        "motion_detected": bool(data[1] & 0b01000000),
        "battery": data[2] & 0b01111111,
        # 1 = dark, 2 = bright
        "light_intensity": data[5] & 0b00000011,
    }


def _contact(data: bytes, _mfr: bytes) -> Optional[Dict[str, Any]]:
    if len(data) < 4:
        return None
    return {
        "motion_detected": bool(data[1] & 0b01000000),
        "battery": data[2] & 0b01111111,
        "contact_open": bool(data[3] & 0b00000010),
        "contact_timeout": (data[3] & 0b00000110) == 0b00000110,
        "is_light": bool(data[3] & 0b00000001),
    }


def _light(_data: bytes, mfr: bytes) -> Optional[Dict[str, Any]]:
    if len(mfr) < 11:
        return None
    return {
        "sequence": mfr[6],
        "is_on": bool(mfr[7] & 0b10000000),
        "brightness": mfr[7] & 0b01111111,
        "color_mode": mfr[8] & 0b00000111,
    }


def _plug_mini(_data: bytes, mfr: bytes) -> Optional[Dict[str, Any]]:
    if len(mfr) < 12:
        return None
    return {
        "is_on": mfr[7] == 0x80,
        "power_w": (((mfr[10] << 8) + mfr[11]) & 0x7FFF) / 10,
    }


_PARSERS: Dict[str, Callable[[bytes, bytes], Optional[Dict[str, Any]]]] = {
    MODEL_BOT: _bot,
    MODEL_CURTAIN: _curtain,
    MODEL_CURTAIN3: _curtain,
    MODEL_METER: _meter,
    MODEL_METER_PLUS: _meter,
    MODEL_MOTION: _motion,
    MODEL_CONTACT: _contact,
    MODEL_COLOR_BULB: _light,
    MODEL_STRIP_LIGHT: _light,
    MODEL_PLUG_MINI_US: _plug_mini,
    MODEL_PLUG_MINI_JP: _plug_mini,
}


def parse_advertisement(
    address: str,
    service_data: Mapping[str, bytes],
    manufacturer_data: Optional[Mapping[int, bytes]] = None,
    rssi: Optional[int] = None,
) -> Optional[Advertisement]:
    """Return a parsed record, or None when the frame is not a known SwitchBot one."""
    data = None
    for uuid in SERVICE_DATA_UUIDS:
        if uuid in service_data:
            data = bytes(service_data[uuid])
            break
    if not data:
        return None
    mfr = bytes((manufacturer_data or {}).get(MANUFACTURER_ID, b""))
    model = chr(data[0] & 0b01111111)
    parser = _PARSERS.get(model)
    if parser is None:
        _LOGGER.debug("Ignoring advertisement from %s with unknown model %r", address, model)
        return None
    fields = parser(data, mfr)
    if fields is None:
        _LOGGER.debug("Short advertisement from %s (model %r): %s", address, model, data.hex())
        return None
    return Advertisement(address=address.lower(), model=model, data=fields, rssi=rssi)
