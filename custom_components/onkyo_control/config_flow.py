"""
Onkyo Control Config Flow
=========================

Picks the media player to follow and the receiver to drive. Setup is
allowed even when the receiver is off or unreachable, the integration
connects once it answers.
"""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.components.media_player import DOMAIN as MEDIA_PLAYER_DOMAIN
from homeassistant.config_entries import ConfigFlowResult
from homeassistant.const import CONF_HOST, CONF_PORT
from homeassistant.core import callback
from homeassistant.helpers import selector

from .connection import ReceiverLink
from .const import (
    CONF_AUTO_DISCOVERY,
    CONF_MAX_VOLUME,
    CONF_MODEL,
    CONF_POWER_ON,
    CONF_RECEIVER,
    CONF_SET_INPUT,
    CONF_SET_INPUT_VALUE,
    CONF_SET_VOLUME,
    CONF_SET_VOLUME_VALUE,
    CONF_SOURCE_ENTITY,
    CONF_STANDBY,
    CONF_STANDBY_DELAY,
    CONF_ZONE,
    DEFAULT_INPUT,
    DEFAULT_PORT,
    DEFAULT_ZONE,
    DOMAIN,
    ERROR_INVALID_HOST,
    MANUAL_RECEIVER,
    SUPPORTED_MAX_VOLUME,
)
from .discovery import async_discover_receivers
from .exceptions import OnkyoControlError
from .helpers import build_input_list, build_zone_list
from .models import (
    ControlConfig,
    DiscoveryResult,
    ReceiverConnection,
    ReceiverInfo,
    parse_port,
)

_LOGGER = logging.getLogger(__name__)


def _receiver_options(result: DiscoveryResult) -> dict[str, str]:
    """Return the receivers a user can choose from."""
    options = {device.option_value: device.label for device in result.devices}
    options[MANUAL_RECEIVER] = "Manual"
    return options


def _connection_data(receiver: str) -> dict[str, Any]:
    """Return the stored values for a discovered receiver choice."""
    info = ReceiverInfo.from_option_value(receiver)
    return {CONF_HOST: info.host, CONF_PORT: info.port, CONF_MODEL: info.model}


def _manual_data(user_input: dict[str, Any]) -> dict[str, Any]:
    """Return the stored values for a manually entered receiver."""
    return {
        CONF_HOST: user_input[CONF_HOST].strip(),
        CONF_PORT: parse_port(user_input.get(CONF_PORT)),
        CONF_MODEL: user_input.get(CONF_MODEL, ""),
    }


def _manual_schema(defaults: dict[str, Any]) -> vol.Schema:
    return vol.Schema(
        {
            vol.Required(CONF_HOST, default=defaults.get(CONF_HOST, "")): str,
            vol.Optional(
                CONF_PORT, default=str(defaults.get(CONF_PORT) or DEFAULT_PORT)
            ): str,
            vol.Optional(CONF_MODEL, default=defaults.get(CONF_MODEL) or ""): str,
        }
    )


async def _async_check_receiver(hass, connection: ReceiverConnection) -> bool:
    """Return True if the receiver answers."""
    try:
        link = ReceiverLink(connection)
        await hass.async_add_executor_job(link.open)
        await hass.async_add_executor_job(link.close)
    except OnkyoControlError as err:
        _LOGGER.warning(
            "Could not verify connection to %s, but allowing setup. Error: %s",
            connection.host,
            err,
        )
        return False
    _LOGGER.info("Successfully connected to Onkyo receiver at %s", connection.host)
    return True


class OnkyoControlConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Onkyo Control."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the config flow."""
        self._receivers = DiscoveryResult()
        self._data: dict[str, Any] = {}

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial step - player and receiver choice."""
        if user_input is not None:
            source_entity = user_input[CONF_SOURCE_ENTITY]
            await self.async_set_unique_id(source_entity)
            self._abort_if_unique_id_configured()

            receiver = user_input.get(CONF_RECEIVER, MANUAL_RECEIVER)
            self._data = {
                CONF_SOURCE_ENTITY: source_entity,
                CONF_AUTO_DISCOVERY: user_input[CONF_AUTO_DISCOVERY],
                CONF_RECEIVER: receiver,
            }
            if receiver != MANUAL_RECEIVER:
                self._data.update(_connection_data(receiver))
            elif not user_input[CONF_AUTO_DISCOVERY]:
                return await self.async_step_manual()
            return self._async_create()

        self._receivers = await async_discover_receivers(self.hass)
        options = _receiver_options(self._receivers)
        first = self._receivers.first
        data_schema = vol.Schema(
            {
                vol.Required(CONF_SOURCE_ENTITY): selector.EntitySelector(
                    selector.EntitySelectorConfig(domain=MEDIA_PLAYER_DOMAIN)
                ),
                vol.Required(CONF_AUTO_DISCOVERY, default=True): bool,
                vol.Required(
                    CONF_RECEIVER,
                    default=first.option_value if first else MANUAL_RECEIVER,
                ): vol.In(options),
            }
        )
        return self.async_show_form(step_id="user", data_schema=data_schema)

    async def async_step_manual(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle a manually entered receiver."""
        errors: dict[str, str] = {}

        if user_input is not None:
            data = _manual_data(user_input)
            if not data[CONF_HOST]:
                errors["base"] = ERROR_INVALID_HOST
            else:
                await _async_check_receiver(
                    self.hass,
                    ReceiverConnection(
                        data[CONF_HOST], data[CONF_PORT], data[CONF_MODEL]
                    ),
                )
                self._data.update(data)
                return self._async_create()

        return self.async_show_form(
            step_id="manual", data_schema=_manual_schema(user_input or {}), errors=errors
        )

    @callback
    def _async_create(self) -> ConfigFlowResult:
        return self.async_create_entry(
            title=self._data[CONF_SOURCE_ENTITY], data=self._data
        )

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> config_entries.OptionsFlow:
        """Get the options flow for this handler."""
        return OnkyoControlOptionsFlowHandler()


class OnkyoControlOptionsFlowHandler(config_entries.OptionsFlow):
    """Handle Onkyo Control options."""

    def __init__(self) -> None:
        """Initialize options flow."""
        self._receivers: DiscoveryResult | None = None

    @property
    def _config(self) -> ControlConfig:
        return ControlConfig.from_entry(self.config_entry)

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Manage the options."""
        return self.async_show_menu(step_id="init", menu_options=["connection", "actions"])

    async def async_step_connection(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Choose the receiver."""
        if user_input is not None:
            receiver = user_input[CONF_RECEIVER]
            options = {
                CONF_AUTO_DISCOVERY: user_input[CONF_AUTO_DISCOVERY],
                CONF_RECEIVER: receiver,
            }
            if receiver == MANUAL_RECEIVER:
                if not user_input.get(CONF_HOST, "").strip():
                    return self.async_show_form(
                        step_id="connection",
                        data_schema=await self._async_connection_schema(),
                        errors={"base": ERROR_INVALID_HOST},
                    )
                options.update(_manual_data(user_input))
            else:
                options.update(_connection_data(receiver))
            return self._async_save(options)

        return self.async_show_form(
            step_id="connection", data_schema=await self._async_connection_schema()
        )

    async def _async_connection_schema(self) -> vol.Schema:
        if self._receivers is None:
            self._receivers = await self._async_get_receivers()
        config = self._config
        current = self.config_entry.options.get(
            CONF_RECEIVER, self.config_entry.data.get(CONF_RECEIVER, MANUAL_RECEIVER)
        )
        options = _receiver_options(self._receivers)
        if current not in options:
            current = MANUAL_RECEIVER
        return vol.Schema(
            {
                vol.Required(CONF_AUTO_DISCOVERY, default=config.auto_discovery): bool,
                vol.Required(CONF_RECEIVER, default=current): vol.In(options),
                vol.Optional(CONF_HOST, default=config.host or ""): str,
                vol.Optional(CONF_PORT, default=str(config.port or DEFAULT_PORT)): str,
                vol.Optional(CONF_MODEL, default=config.model): str,
            }
        )

    async def _async_get_receivers(self) -> DiscoveryResult:
        """Reuse the receivers found at setup if the entry is loaded."""
        controller = self.hass.data.get(DOMAIN, {}).get(self.config_entry.entry_id)
        if controller is not None and controller.receivers.devices:
            return controller.receivers
        return await async_discover_receivers(self.hass)

    async def async_step_actions(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Choose what happens on play and pause."""
        if user_input is not None:
            return self._async_save(user_input)

        config = self._config
        controller = self.hass.data.get(DOMAIN, {}).get(self.config_entry.entry_id)
        zones = (
            controller.supervisor.zones
            if controller is not None
            else build_zone_list()
        )
        inputs = build_input_list()
        if config.set_input_value not in inputs:
            inputs.append(config.set_input_value)

        options_schema = vol.Schema(
            {
                vol.Required(
                    CONF_ZONE,
                    default=config.zone if config.zone in zones else DEFAULT_ZONE,
                ): vol.In(list(zones)),
                vol.Required(CONF_POWER_ON, default=config.power_on): bool,
                vol.Required(CONF_MAX_VOLUME, default=config.max_volume): vol.All(
                    vol.Coerce(int), vol.Clamp(min=0, max=SUPPORTED_MAX_VOLUME)
                ),
                vol.Required(CONF_SET_VOLUME, default=config.set_volume): bool,
                vol.Required(
                    CONF_SET_VOLUME_VALUE, default=config.set_volume_value
                ): vol.All(vol.Coerce(int), vol.Clamp(min=0, max=SUPPORTED_MAX_VOLUME)),
                vol.Required(CONF_SET_INPUT, default=config.set_input): bool,
                vol.Required(
                    CONF_SET_INPUT_VALUE, default=config.set_input_value or DEFAULT_INPUT
                ): vol.In(inputs),
                vol.Required(CONF_STANDBY, default=config.standby): bool,
                vol.Required(CONF_STANDBY_DELAY, default=config.standby_delay): vol.All(
                    vol.Coerce(int), vol.Clamp(min=0)
                ),
            }
        )

        return self.async_show_form(step_id="actions", data_schema=options_schema)

    @callback
    def _async_save(self, changes: dict[str, Any]) -> ConfigFlowResult:
        return self.async_create_entry(
            title="", data={**self.config_entry.options, **changes}
        )
