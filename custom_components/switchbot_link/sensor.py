"""SwitchBot Link sensor platform."""
import logging

from homeassistant.components.sensor import (  # type: ignore
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.const import LIGHT_LUX, PERCENTAGE, UnitOfTemperature  # type: ignore

from .const import DOMAIN
from .entity import SwitchBotEntity
from .models import PROP_BATTERY, PROP_HUMIDITY, PROP_LIGHT_LEVEL, PROP_TEMPERATURE

_LOGGER = logging.getLogger(__name__)

# property -> (translation key, device class, unit)
SENSOR_TYPES = {
    PROP_TEMPERATURE: ("temperature", SensorDeviceClass.TEMPERATURE, UnitOfTemperature.CELSIUS),
    PROP_HUMIDITY: ("humidity", SensorDeviceClass.HUMIDITY, PERCENTAGE),
    PROP_BATTERY: ("battery", SensorDeviceClass.BATTERY, PERCENTAGE),
    PROP_LIGHT_LEVEL: ("illuminance", SensorDeviceClass.ILLUMINANCE, LIGHT_LUX),
}


async def async_setup_entry(hass, entry, async_add_entities):
    """Set up one sensor entity per measured property."""
    hub = hass.data[DOMAIN][entry.entry_id]["hub"]
    entities = [
        SwitchBotSensorEntity(hub, state, prop)
        for state in hub.devices.values()
        for prop in SENSOR_TYPES
        if state.capability.supports(prop)
    ]
    _LOGGER.debug("Registering %s SwitchBot sensor entities", len(entities))
    async_add_entities(entities)


class SwitchBotSensorEntity(SwitchBotEntity, SensorEntity):
    _attr_state_class = SensorStateClass.MEASUREMENT

    def __init__(self, hub, state, prop: str):
        key, device_class, unit = SENSOR_TYPES[prop]
        super().__init__(hub, state, key)
        self._prop = prop
        self._attr_translation_key = key
        self._attr_name = key.capitalize()
        self._attr_device_class = device_class
        self._attr_native_unit_of_measurement = unit

    @property
    def native_value(self):
        return self._state.get(self._prop)
