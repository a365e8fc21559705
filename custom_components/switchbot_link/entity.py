"""Shared base for SwitchBot Link entities."""
import logging
from typing import Any

from homeassistant.core import callback  # type: ignore
from homeassistant.helpers.entity import Entity  # type: ignore

from .const import DOMAIN
from .hub import SwitchBotHub
from .models import CommunicationFault
from .state import DeviceState

_LOGGER = logging.getLogger(__name__)


async def wait_for_push(future, device_id: str, what: str) -> bool:
    """Await a dispatcher push result and log a failure the way HA services expect."""
    ok, err = await future
    if not ok:
        _LOGGER.warning("%s failed for %s: %s", what, device_id, err)
    return ok


class SwitchBotEntity(Entity):
    """Projection of one device's current state; refreshed by hub notifications."""

    _attr_should_poll = False
    _attr_has_entity_name = True

    def __init__(self, hub: SwitchBotHub, state: DeviceState, key: str | None = None):
        self._hub = hub
        self._state = state
        suffix = f"_{key}" if key else ""
        self._attr_unique_id = f"{DOMAIN}_{state.device_id}{suffix}"

    @property
    def device_info(self):
        identity = self._state.identity
        return {
            "identifiers": {(DOMAIN, identity.device_id)},
            "name": identity.name or f"{identity.device_type} {identity.device_id[-4:]}",
            "manufacturer": "SwitchBot",
            "model": identity.device_type,
        }

    @property
    def available(self) -> bool:
        return self._state.online and self._state.fault is None

    async def async_added_to_hass(self):
        self.async_on_remove(self._hub.add_listener(self._handle_notify))

    @callback
    def _handle_notify(self, device_id: str, prop: str, value: Any) -> None:
        if device_id != self._state.device_id:
            return
        if isinstance(value, CommunicationFault):
            _LOGGER.debug("%s %s unavailable: %s", device_id, prop, value.message)
        self.async_write_ha_state()
