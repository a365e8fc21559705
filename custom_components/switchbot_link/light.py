"""SwitchBot Link light platform."""
import logging

from homeassistant.components.light import (  # type: ignore
    ATTR_BRIGHTNESS,
    ATTR_COLOR_TEMP_KELVIN,
    ATTR_HS_COLOR,
    ColorMode,
    LightEntity,
)
from homeassistant.util.color import brightness_to_value, value_to_brightness  # type: ignore

from .capabilities import FAMILY_LIGHT
from .codec import kelvin_to_mired, mired_to_hue_sat_approx, mired_to_kelvin
from .const import DOMAIN
from .entity import SwitchBotEntity, wait_for_push
from .models import PROP_BRIGHTNESS, PROP_COLOR_TEMP, PROP_HUE, PROP_POWER, PROP_SATURATION

_LOGGER = logging.getLogger(__name__)

# Device brightness scale
BRIGHTNESS_SCALE = (1, 100)


async def async_setup_entry(hass, entry, async_add_entities):
    """Set up SwitchBot lights."""
    hub = hass.data[DOMAIN][entry.entry_id]["hub"]
    entities = [
        SwitchBotLightEntity(hub, state) for state in hub.devices.values() if state.capability.family == FAMILY_LIGHT
    ]
    _LOGGER.debug("Registering %s SwitchBot light entities", len(entities))
    async_add_entities(entities)


class SwitchBotLightEntity(SwitchBotEntity, LightEntity):
    """Representation of a SwitchBot light."""

    _attr_name = None

    @property
    def is_on(self):
        return bool(self._state.target(PROP_POWER, False))

    @property
    def brightness(self):
        value = self._state.target(PROP_BRIGHTNESS)
        if value is None:
            return None
        return value_to_brightness(BRIGHTNESS_SCALE, value)

    @property
    def hs_color(self):
        if not self._state.capability.supports(PROP_HUE):
            return None
        hue, sat = self._state.target(PROP_HUE), self._state.target(PROP_SATURATION)
        if hue is None or sat is None:
            return None
        return (hue, sat)

    @property
    def color_temp_kelvin(self):
        mired = self._state.target(PROP_COLOR_TEMP)
        return mired_to_kelvin(mired) if mired else None

    @property
    def min_color_temp_kelvin(self) -> int:
        return self._state.kelvin_range()[0]

    @property
    def max_color_temp_kelvin(self) -> int:
        return self._state.kelvin_range()[1]

    @property
    def supported_color_modes(self) -> set[ColorMode]:
        capability = self._state.capability
        modes = set()
        if capability.supports(PROP_HUE):
            modes.add(ColorMode.HS)
        if capability.supports(PROP_COLOR_TEMP):
            modes.add(ColorMode.COLOR_TEMP)
        if not modes:
            modes.add(ColorMode.BRIGHTNESS if capability.supports(PROP_BRIGHTNESS) else ColorMode.ONOFF)
        return modes

    @property
    def color_mode(self) -> ColorMode:
        modes = self.supported_color_modes
        if ColorMode.COLOR_TEMP in modes and (ColorMode.HS not in modes or self._state.target(PROP_SATURATION) == 0):
            return ColorMode.COLOR_TEMP
        if ColorMode.HS in modes:
            return ColorMode.HS
        return next(iter(modes))

    async def async_turn_on(self, **kwargs):
        hub, device_id = self._hub, self._state.device_id
        future = hub.request_change(device_id, PROP_POWER, True)
        if ATTR_BRIGHTNESS in kwargs and self._state.capability.supports(PROP_BRIGHTNESS):
            value = max(1, round(brightness_to_value(BRIGHTNESS_SCALE, kwargs[ATTR_BRIGHTNESS])))
            future = hub.request_change(device_id, PROP_BRIGHTNESS, value)
        # If both color and color temp are present, prefer color and ignore CT
        if ATTR_HS_COLOR in kwargs and self._state.capability.supports(PROP_HUE):
            hue, sat = kwargs[ATTR_HS_COLOR]
            hub.request_change(device_id, PROP_HUE, hue)
            future = hub.request_change(device_id, PROP_SATURATION, sat)
        elif ATTR_COLOR_TEMP_KELVIN in kwargs and self._state.capability.supports(PROP_COLOR_TEMP):
            future = hub.request_change(device_id, PROP_COLOR_TEMP, kelvin_to_mired(kwargs[ATTR_COLOR_TEMP_KELVIN]))
        elif ATTR_COLOR_TEMP_KELVIN in kwargs and self._state.capability.supports(PROP_HUE):
            # Colour-only lights follow adaptive lighting through an approximate hue/saturation
            hue, sat = mired_to_hue_sat_approx(kelvin_to_mired(kwargs[ATTR_COLOR_TEMP_KELVIN]))
            hub.request_change(device_id, PROP_HUE, hue)
            future = hub.request_change(device_id, PROP_SATURATION, sat)
        self.async_write_ha_state()
        await wait_for_push(future, device_id, "turn_on")

    async def async_turn_off(self, **kwargs):
        future = self._hub.request_change(self._state.device_id, PROP_POWER, False)
        self.async_write_ha_state()
        await wait_for_push(future, self._state.device_id, "turn_off")
