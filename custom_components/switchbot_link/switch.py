"""SwitchBot Link switch platform (Bot and plugs)."""
import logging

from homeassistant.components.switch import SwitchEntity  # type: ignore

from .capabilities import FAMILY_HUMIDIFIER, FAMILY_SWITCH
from .const import DOMAIN
from .entity import SwitchBotEntity, wait_for_push
from .models import PROP_POWER

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(hass, entry, async_add_entities):
    hub = hass.data[DOMAIN][entry.entry_id]["hub"]
    entities = [
        SwitchBotSwitchEntity(hub, state)
        for state in hub.devices.values()
        if state.capability.family in (FAMILY_SWITCH, FAMILY_HUMIDIFIER)
    ]
    _LOGGER.debug("Registering %s SwitchBot switch entities", len(entities))
    async_add_entities(entities)


class SwitchBotSwitchEntity(SwitchBotEntity, SwitchEntity):
    _attr_name = None

    @property
    def is_on(self):
        return bool(self._state.target(PROP_POWER, False))

    async def async_turn_on(self, **kwargs):
        future = self._hub.request_change(self._state.device_id, PROP_POWER, True)
        self.async_write_ha_state()
        await wait_for_push(future, self._state.device_id, "turn_on")

    async def async_turn_off(self, **kwargs):
        future = self._hub.request_change(self._state.device_id, PROP_POWER, False)
        self.async_write_ha_state()
        await wait_for_push(future, self._state.device_id, "turn_off")
