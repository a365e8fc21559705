"""SwitchBot Link cover platform (curtains and shades)."""
import logging

from homeassistant.components.cover import (  # type: ignore
    ATTR_POSITION,
    CoverDeviceClass,
    CoverEntity,
    CoverEntityFeature,
)

from .capabilities import FAMILY_COVER
from .const import DOMAIN
from .entity import SwitchBotEntity, wait_for_push
from .models import PROP_POSITION, MotionState

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(hass, entry, async_add_entities):
    """Set up SwitchBot covers."""
    hub = hass.data[DOMAIN][entry.entry_id]["hub"]
    entities = [
        SwitchBotCoverEntity(hub, state) for state in hub.devices.values() if state.capability.family == FAMILY_COVER
    ]
    _LOGGER.debug("Registering %s SwitchBot cover entities", len(entities))
    async_add_entities(entities)


class SwitchBotCoverEntity(SwitchBotEntity, CoverEntity):
    _attr_name = None
    _attr_device_class = CoverDeviceClass.CURTAIN
    _attr_supported_features = (
        CoverEntityFeature.OPEN | CoverEntityFeature.CLOSE | CoverEntityFeature.SET_POSITION | CoverEntityFeature.STOP
    )

    @property
    def current_cover_position(self):
        return self._state.get(PROP_POSITION)

    @property
    def is_closed(self):
        position = self._state.get(PROP_POSITION)
        return None if position is None else position == 0

    @property
    def is_opening(self):
        return self._state.motion is MotionState.INCREASING

    @property
    def is_closing(self):
        return self._state.motion is MotionState.DECREASING

    async def _set_position(self, position: int, what: str):
        future = self._hub.request_change(self._state.device_id, PROP_POSITION, position)
        await wait_for_push(future, self._state.device_id, what)

    async def async_open_cover(self, **kwargs):
        await self._set_position(100, "open_cover")

    async def async_close_cover(self, **kwargs):
        await self._set_position(0, "close_cover")

    async def async_set_cover_position(self, **kwargs):
        await self._set_position(int(kwargs[ATTR_POSITION]), "set_cover_position")

    async def async_stop_cover(self, **kwargs):
        future = self._hub.hold_position(self._state.device_id)
        await wait_for_push(future, self._state.device_id, "stop_cover")
