"""Config flow for SwitchBot Link."""

import logging

import voluptuous as vol  # pyright: ignore[reportMissingImports]

from homeassistant import config_entries, exceptions  # type: ignore
import homeassistant.helpers.config_validation as cv  # type: ignore
from homeassistant.core import callback  # type: ignore

from .config import OPTIONS_SCHEMA
from .const import (
    CONF_CONNECTION_TYPE,
    CONF_MQTT_URL,
    CONF_OFFLINE_IS_OFF,
    CONF_PUSH_RATE,
    CONF_REFRESH_RATE,
    CONF_SECRET,
    CONF_TOKEN,
    CONF_WEBHOOK,
    CONF_WEBHOOK_PORT,
    CONF_WEBHOOK_URL,
    CONNECTION_BLE,
    CONNECTION_BLE_OPENAPI,
    CONNECTION_OPENAPI,
    DOMAIN,
)
from .errors import SwitchBotError, TransportRejected
from .remote import RemoteTransport

_LOGGER = logging.getLogger(__name__)


async def validate_credentials(hass, token: str, secret: str) -> int:
    """Return the number of devices on the account; raises on bad credentials."""
    remote = await RemoteTransport.create(token, secret, hass)
    try:
        devices = await remote.get_devices()
    except TransportRejected as ex:
        if ex.code in (401, 403):
            raise InvalidAuth from ex
        raise CannotConnect from ex
    except SwitchBotError as ex:
        raise CannotConnect from ex
    finally:
        await remote.close()
    return len(devices)


class SwitchBotLinkFlowHandler(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for SwitchBot Link."""

    VERSION = 1

    async def async_step_user(self, user_input=None):
        """Handle the initial step."""
        errors = {}
        if user_input is not None:
            token = user_input[CONF_TOKEN].strip()
            secret = user_input[CONF_SECRET].strip()
            await self.async_set_unique_id(token[-8:])
            self._abort_if_unique_id_configured()
            try:
                count = await validate_credentials(self.hass, token, secret)
            except InvalidAuth:
                errors["base"] = "invalid_auth"
            except CannotConnect:
                errors["base"] = "cannot_connect"
            else:
                _LOGGER.debug("Credentials accepted; %s devices on account", count)
                return self.async_create_entry(
                    title="SwitchBot", data={CONF_TOKEN: token, CONF_SECRET: secret}
                )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_TOKEN): cv.string,
                    vol.Required(CONF_SECRET): cv.string,
                }
            ),
            errors=errors,
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        """Get the options flow."""
        return SwitchBotLinkOptionsFlowHandler(config_entry)


class SwitchBotLinkOptionsFlowHandler(config_entries.OptionsFlow):
    """Handle options."""

    def __init__(self, config_entry):
        # Do not assign to self.config_entry (deprecated in HA 2025.12)
        self._entry = config_entry

    async def async_step_init(self, user_input=None):
        errors = {}
        if user_input is not None:
            try:
                options = OPTIONS_SCHEMA({**self._entry.options, **user_input})
            except vol.Invalid as ex:
                _LOGGER.debug("Rejected options: %s", ex)
                errors["base"] = "invalid_option"
            else:
                return self.async_create_entry(title="", data=options)

        current = OPTIONS_SCHEMA(dict(self._entry.options))
        options_schema = vol.Schema(
            {
                vol.Required(CONF_REFRESH_RATE, default=current[CONF_REFRESH_RATE]): cv.positive_int,
                vol.Required(CONF_PUSH_RATE, default=current[CONF_PUSH_RATE]): vol.Coerce(float),
                vol.Required(CONF_CONNECTION_TYPE, default=current[CONF_CONNECTION_TYPE]): vol.In(
                    [CONNECTION_OPENAPI, CONNECTION_BLE, CONNECTION_BLE_OPENAPI]
                ),
                vol.Required(CONF_OFFLINE_IS_OFF, default=current[CONF_OFFLINE_IS_OFF]): cv.boolean,
                vol.Required(CONF_WEBHOOK, default=current[CONF_WEBHOOK]): cv.boolean,
                vol.Optional(CONF_WEBHOOK_PORT, default=current[CONF_WEBHOOK_PORT]): cv.port,
                vol.Optional(CONF_WEBHOOK_URL, default=current[CONF_WEBHOOK_URL]): cv.string,
                vol.Optional(CONF_MQTT_URL, default=current[CONF_MQTT_URL]): cv.string,
            }
        )
        return self.async_show_form(
            step_id="init",
            data_schema=options_schema,
            errors=errors,
            description_placeholders={
                "polling_note": (
                    "Set the refresh rate to 0 for an automatic interval. The SwitchBot API allows "
                    "10,000 requests per day per account."
                )
            },
        )


class CannotConnect(exceptions.HomeAssistantError):
    """Error to indicate we cannot connect."""


class InvalidAuth(exceptions.HomeAssistantError):
    """Error to indicate the token or secret was rejected."""
