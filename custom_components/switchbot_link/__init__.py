"""The SwitchBot Link integration.

Home Assistant is imported inside the setup functions only, so the sync
core in this package imports and runs without it.
"""
import logging

from .config import devices_from_cloud, load_platform_config
from .const import CONF_CONNECTION_TYPE, CONNECTION_OPENAPI, DOMAIN
from .errors import SwitchBotError
from .hub import SwitchBotHub

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[str] = ["light", "cover", "sensor", "switch"]


async def async_setup_entry(hass, entry):
    """Set up SwitchBot Link from a config entry."""
    from homeassistant.exceptions import ConfigEntryNotReady  # type: ignore

    config = load_platform_config(dict(entry.data), dict(entry.options))
    hub = await SwitchBotHub.create(config, hass, hass.config.config_dir)

    devices = config.devices
    if not devices and config.has_credentials:
        try:
            discovered = await hub.discover_devices()
        except SwitchBotError as ex:
            await hub.stop()
            raise ConfigEntryNotReady(f"Could not load SwitchBot devices: {ex}") from ex
        devices = devices_from_cloud(discovered, config.options.get(CONF_CONNECTION_TYPE, CONNECTION_OPENAPI))

    for device in devices:
        hub.register_device(device)

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {"hub": hub}
    await hub.start()

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    entry.async_on_unload(entry.add_update_listener(async_reload_entry))
    return True


async def async_unload_entry(hass, entry):
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)

    if unload_ok:
        hub = hass.data[DOMAIN].get(entry.entry_id, {}).pop("hub", None)
        if hub:
            await hub.stop()
        hass.data[DOMAIN].pop(entry.entry_id, None)

    return unload_ok


async def async_reload_entry(hass, entry):
    """Handle reload of a config entry."""
    await hass.config_entries.async_reload(entry.entry_id)
