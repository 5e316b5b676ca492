"""
Onkyo Control Integration - Main Setup Module
==============================================

Follows a media player and keeps an Onkyo receiver in step with it:
- Powers the receiver on when playback starts
- Forces volume and input on power on
- Mirrors volume changes while playing
- Puts the receiver in standby after a pause or stop
"""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.typing import ConfigType

from .const import DOMAIN
from .controller import OnkyoController

_LOGGER = logging.getLogger(__name__)

CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """
    Set up the Onkyo Control component.

    YAML configuration is not supported - only config flow.
    """
    hass.data.setdefault(DOMAIN, {})
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """
    Set up Onkyo Control from a config entry.

    Setup never fails because the receiver is off or unreachable, the
    supervisor keeps trying to connect as playback updates arrive.
    """
    _LOGGER.debug("Setting up Onkyo Control for entry %s", entry.entry_id)

    controller = OnkyoController(hass, entry)
    await controller.async_start()

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = controller
    entry.async_on_unload(entry.add_update_listener(async_update_options))

    return True


async def async_update_options(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """
    Handle options update.

    The receiver is only reconnected when the bound device changed.
    """
    _LOGGER.debug("Updating options for Onkyo Control")
    controller: OnkyoController = hass.data[DOMAIN][entry.entry_id]
    await controller.async_update_options(entry)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    _LOGGER.debug("Unloading Onkyo Control for entry %s", entry.entry_id)

    controller: OnkyoController | None = hass.data[DOMAIN].pop(entry.entry_id, None)
    if controller is not None:
        await controller.async_stop()

    return True
