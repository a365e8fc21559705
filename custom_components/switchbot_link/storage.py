"""Simple persistent storage for last known device state."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from .const import STORAGE_FILE

_LOGGER = logging.getLogger(__name__)

STATE_SCHEMA_VERSION = 1


class StateStorage:
    """JSON snapshot of each device's reconciled properties under ``.storage``."""

    def __init__(self, config_dir: str, hass=None) -> None:
        self._hass = hass
        self._config_dir = config_dir
        self._integration_version = self._load_manifest_version()

    @staticmethod
    def _load_manifest_version() -> str | None:
        manifest_path = Path(__file__).with_name("manifest.json")
        try:
            with manifest_path.open("r", encoding="utf-8") as handle:
                manifest = json.load(handle)
        except (OSError, ValueError):
            return None
        version = manifest.get("version") if isinstance(manifest, dict) else None
        if isinstance(version, str) and version:
            return version
        return None

    @property
    def path(self) -> str:
        # Prefer hass.config.path if hass is provided
        if self._hass is not None:
            return self._hass.config.path(STORAGE_FILE)
        return os.path.join(self._config_dir, STORAGE_FILE)

    async def read(self) -> Dict[str, Dict[str, Any]]:
        def _read() -> Dict[str, Dict[str, Any]]:
            try:
                with open(self.path, "r", encoding="utf-8") as f_handle:
                    raw = json.load(f_handle)
            except FileNotFoundError:
                return {}
            except (OSError, ValueError) as ex:
                _LOGGER.warning("Ignoring unreadable state file %s: %s", self.path, ex)
                return {}

            if not isinstance(raw, dict) or raw.get("__schema_version") != STATE_SCHEMA_VERSION:
                _LOGGER.debug("State file schema changed; starting fresh")
                return {}

            devices = raw.get("devices")
            if not isinstance(devices, dict):
                return {}
            return {key: value for key, value in devices.items() if isinstance(value, dict)}

        if self._hass is not None:
            return await self._hass.async_add_executor_job(_read)
        return _read()

    async def write(self, devices: Dict[str, Dict[str, Any]]) -> None:
        def _write() -> None:
            payload = {
                "__schema_version": STATE_SCHEMA_VERSION,
                "__integration_version": self._integration_version,
                "devices": devices,
            }
            path = self.path
            os.makedirs(os.path.dirname(path), exist_ok=True)
            tmp_path = f"{path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f_handle:
                json.dump(payload, f_handle, ensure_ascii=False)
            os.replace(tmp_path, path)

        try:
            if self._hass is not None:
                await self._hass.async_add_executor_job(_write)
            else:
                _write()
        except (OSError, TypeError, ValueError) as ex:
            _LOGGER.warning("Could not persist device state: %s", ex)
