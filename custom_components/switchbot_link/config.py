"""Configuration schemas and resolved per-device settings."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import voluptuous as vol

from .capabilities import known_device_types, resolve_capability
from .const import (
    COLOR_TEMP_KELVIN_MAX,
    COLOR_TEMP_KELVIN_MIN,
    CONF_ADDRESS,
    CONF_ASSUME_STOPPED_AFTER,
    CONF_CLOSE_MODE,
    CONF_CONNECTION_TYPE,
    CONF_DELAY_BETWEEN_RETRIES,
    CONF_DEVICE_ID,
    CONF_DEVICE_TYPE,
    CONF_DEVICES,
    CONF_HUB_ID,
    CONF_MAX_KELVIN,
    CONF_MAX_LUX,
    CONF_MAX_RETRIES,
    CONF_MIN_KELVIN,
    CONF_MIN_LUX,
    CONF_MQTT_OPTIONS,
    CONF_MQTT_URL,
    CONF_NAME,
    CONF_OFFLINE_IS_OFF,
    CONF_OPEN_MODE,
    CONF_PUSH_RATE,
    CONF_REFRESH_DELAY,
    CONF_REFRESH_RATE,
    CONF_REQUEST_TIMEOUT,
    CONF_SCAN_DURATION,
    CONF_SECRET,
    CONF_SET_MAX,
    CONF_SET_MIN,
    CONF_TOKEN,
    CONF_UPDATE_RATE,
    CONF_WEBHOOK,
    CONF_WEBHOOK_HOST,
    CONF_WEBHOOK_PORT,
    CONF_WEBHOOK_URL,
    CONNECTION_BLE,
    CONNECTION_BLE_OPENAPI,
    CONNECTION_OPENAPI,
    CURTAIN_MODE_PERFORMANCE,
    CURTAIN_MODE_SILENT,
    DAILY_REQUEST_QUOTA,
    DEFAULT_ASSUME_STOPPED_AFTER,
    DEFAULT_DELAY_BETWEEN_RETRIES,
    DEFAULT_MAX_LUX,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MIN_LUX,
    DEFAULT_PUSH_RATE,
    DEFAULT_REFRESH_DELAY,
    DEFAULT_REFRESH_RATE,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SCAN_DURATION,
    DEFAULT_UPDATE_RATE,
    DEFAULT_WEBHOOK_PORT,
    MIN_REFRESH_RATE,
)
from .models import TransportCapability

_LOGGER = logging.getLogger(__name__)

_CONNECTION_TO_CAPABILITY = {
    CONNECTION_BLE: TransportCapability.LOCAL_ONLY,
    CONNECTION_OPENAPI: TransportCapability.REMOTE_ONLY,
    CONNECTION_BLE_OPENAPI: TransportCapability.LOCAL_PREFERRED,
}


def refresh_rate(value: Any) -> int:
    """Validate a refresh rate; 0 selects the automatic interval."""
    try:
        rate = int(value)
    except (TypeError, ValueError) as ex:
        raise vol.Invalid(f"refresh rate must be a number of seconds, got {value!r}") from ex
    if rate != 0 and rate < MIN_REFRESH_RATE:
        raise vol.Invalid(f"refresh rate must be 0 (auto) or at least {MIN_REFRESH_RATE} seconds")
    return rate


_seconds = vol.All(vol.Coerce(float), vol.Range(min=0))
_percent = vol.All(vol.Coerce(int), vol.Range(min=0, max=100))
_curtain_mode = vol.Any(None, vol.In([CURTAIN_MODE_SILENT, CURTAIN_MODE_PERFORMANCE]))

# Tunables shared by the platform options and per-device overrides
_TUNABLES = {
    CONF_REFRESH_RATE: refresh_rate,
    CONF_UPDATE_RATE: _seconds,
    CONF_PUSH_RATE: _seconds,
    CONF_REFRESH_DELAY: _seconds,
    CONF_ASSUME_STOPPED_AFTER: _seconds,
    CONF_MAX_RETRIES: vol.All(vol.Coerce(int), vol.Range(min=1)),
    CONF_DELAY_BETWEEN_RETRIES: _seconds,
    CONF_REQUEST_TIMEOUT: vol.All(vol.Coerce(float), vol.Range(min=1)),
    CONF_SCAN_DURATION: vol.All(vol.Coerce(float), vol.Range(min=0.1)),
    CONF_OFFLINE_IS_OFF: vol.Boolean(),
    CONF_MIN_LUX: vol.Coerce(float),
    CONF_MAX_LUX: vol.Coerce(float),
    CONF_MIN_KELVIN: vol.All(vol.Coerce(int), vol.Range(min=1000, max=10000)),
    CONF_MAX_KELVIN: vol.All(vol.Coerce(int), vol.Range(min=1000, max=10000)),
    CONF_SET_MIN: _percent,
    CONF_SET_MAX: _percent,
    CONF_OPEN_MODE: _curtain_mode,
    CONF_CLOSE_MODE: _curtain_mode,
}

_DEFAULTS = {
    CONF_REFRESH_RATE: DEFAULT_REFRESH_RATE,
    CONF_UPDATE_RATE: DEFAULT_UPDATE_RATE,
    CONF_PUSH_RATE: DEFAULT_PUSH_RATE,
    CONF_REFRESH_DELAY: DEFAULT_REFRESH_DELAY,
    CONF_ASSUME_STOPPED_AFTER: DEFAULT_ASSUME_STOPPED_AFTER,
    CONF_MAX_RETRIES: DEFAULT_MAX_RETRIES,
    CONF_DELAY_BETWEEN_RETRIES: DEFAULT_DELAY_BETWEEN_RETRIES,
    CONF_REQUEST_TIMEOUT: DEFAULT_REQUEST_TIMEOUT,
    CONF_SCAN_DURATION: DEFAULT_SCAN_DURATION,
    CONF_OFFLINE_IS_OFF: False,
    CONF_MIN_LUX: DEFAULT_MIN_LUX,
    CONF_MAX_LUX: DEFAULT_MAX_LUX,
    CONF_MIN_KELVIN: COLOR_TEMP_KELVIN_MIN,
    CONF_MAX_KELVIN: COLOR_TEMP_KELVIN_MAX,
    CONF_SET_MIN: 0,
    CONF_SET_MAX: 100,
    CONF_OPEN_MODE: None,
    CONF_CLOSE_MODE: None,
}

OPTIONS_SCHEMA = vol.Schema(
    {
        **{vol.Optional(key, default=_DEFAULTS[key]): validator for key, validator in _TUNABLES.items()},
        vol.Optional(CONF_CONNECTION_TYPE, default=CONNECTION_OPENAPI): vol.In(list(_CONNECTION_TO_CAPABILITY)),
        vol.Optional(CONF_WEBHOOK, default=False): vol.Boolean(),
        vol.Optional(CONF_WEBHOOK_HOST, default="0.0.0.0"): str,
        vol.Optional(CONF_WEBHOOK_PORT, default=DEFAULT_WEBHOOK_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional(CONF_WEBHOOK_URL, default=""): str,
        vol.Optional(CONF_MQTT_URL, default=""): str,
        vol.Optional(CONF_MQTT_OPTIONS, default={}): dict,
    },
    extra=vol.REMOVE_EXTRA,
)

DEVICE_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_DEVICE_ID): vol.All(str, vol.Length(min=1)),
        vol.Required(CONF_DEVICE_TYPE): vol.In(known_device_types() + ("Curtain 3", "Meter Plus")),
        vol.Optional(CONF_HUB_ID, default=""): str,
        vol.Optional(CONF_ADDRESS): str,
        vol.Optional(CONF_NAME, default=""): str,
        vol.Optional(CONF_CONNECTION_TYPE, default=CONNECTION_OPENAPI): vol.In(list(_CONNECTION_TO_CAPABILITY)),
        **{vol.Optional(key): validator for key, validator in _TUNABLES.items()},
    },
    extra=vol.REMOVE_EXTRA,
)

PLATFORM_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_TOKEN, default=""): str,
        vol.Optional(CONF_SECRET, default=""): str,
        vol.Optional(CONF_DEVICES, default=[]): [DEVICE_SCHEMA],
    },
    extra=vol.ALLOW_EXTRA,
)


@dataclass
class DeviceConfig:
    """Tunables for one device after platform defaults and overrides are merged."""

    refresh_rate: float = DEFAULT_REFRESH_RATE
    update_rate: float = DEFAULT_UPDATE_RATE
    push_rate: float = DEFAULT_PUSH_RATE
    refresh_delay: float = DEFAULT_REFRESH_DELAY
    assume_stopped_after: float = DEFAULT_ASSUME_STOPPED_AFTER
    max_retries: int = DEFAULT_MAX_RETRIES
    delay_between_retries: float = DEFAULT_DELAY_BETWEEN_RETRIES
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    scan_duration: float = DEFAULT_SCAN_DURATION
    offline_is_off: bool = False
    min_lux: float = DEFAULT_MIN_LUX
    max_lux: float = DEFAULT_MAX_LUX
    min_kelvin: int = COLOR_TEMP_KELVIN_MIN
    max_kelvin: int = COLOR_TEMP_KELVIN_MAX
    set_min: int = 0
    set_max: int = 100
    open_mode: Optional[str] = None
    close_mode: Optional[str] = None


@dataclass
class PlatformConfig:
    token: str = ""
    secret: str = ""
    options: Dict[str, Any] = field(default_factory=lambda: OPTIONS_SCHEMA({}))
    devices: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_credentials(self) -> bool:
        return bool(self.token and self.secret)


def auto_refresh_rate(device_count: int) -> int:
    """Poll interval that keeps the account under the daily cloud quota."""
    count = max(1, device_count)
    return max(DEFAULT_REFRESH_RATE, int(math.ceil(86400 * count / DAILY_REQUEST_QUOTA)))


def load_platform_config(data: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> PlatformConfig:
    """Validate credentials, device list and options; raises vol.Invalid."""
    merged = dict(data)
    merged.update(options or {})
    platform = PLATFORM_SCHEMA(merged)
    return PlatformConfig(
        token=platform[CONF_TOKEN],
        secret=platform[CONF_SECRET],
        options=OPTIONS_SCHEMA(merged),
        devices=list(platform[CONF_DEVICES]),
    )


def resolve_device_config(options: Dict[str, Any], device: Dict[str, Any], device_count: int = 1) -> DeviceConfig:
    values = {key: options.get(key, _DEFAULTS[key]) for key in _TUNABLES}
    values.update({key: device[key] for key in _TUNABLES if device.get(key) is not None})
    if values[CONF_REFRESH_RATE] == 0:
        values[CONF_REFRESH_RATE] = auto_refresh_rate(device_count)
    return DeviceConfig(**values)


def transport_capability(connection_type: str) -> TransportCapability:
    return _CONNECTION_TO_CAPABILITY.get(connection_type, TransportCapability.REMOTE_ONLY)


def devices_from_cloud(device_list: List[Dict[str, Any]], connection_type: str = CONNECTION_OPENAPI) -> List[Dict[str, Any]]:
    """Device entries for every supported device in a cloud device list."""
    out: List[Dict[str, Any]] = []
    for item in device_list:
        device_type = item.get("deviceType")
        capability = resolve_capability(device_type or "")
        if capability is None:
            _LOGGER.debug("Skipping %s: unsupported type %s", item.get("deviceId"), device_type)
            continue
        connection = connection_type if capability.supports_local else CONNECTION_OPENAPI
        out.append(
            DEVICE_SCHEMA(
                {
                    CONF_DEVICE_ID: item["deviceId"],
                    CONF_DEVICE_TYPE: device_type,
                    CONF_HUB_ID: item.get("hubDeviceId") or "",
                    CONF_NAME: item.get("deviceName") or "",
                    CONF_CONNECTION_TYPE: connection,
                }
            )
        )
    return out
