"""Onkyo Control runtime for one config entry."""

from __future__ import annotations

from collections.abc import Callable
import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .connection import ConnectionSupervisor, ReceiverLink
from .discovery import (
    async_discover_receivers,
    async_notify_no_receiver,
    select_connection,
)
from .models import ControlConfig, DiscoveryResult, ReceiverConnection
from .reconciler import StateReconciler

_LOGGER = logging.getLogger(__name__)


class OnkyoController:
    """Ties discovery, settings, the supervisor and the reconciler together."""

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        link_factory: Callable[[ReceiverConnection], ReceiverLink] | None = None,
    ) -> None:
        """Initialize the controller."""
        self.hass = hass
        self.entry = entry
        self.config = ControlConfig.from_entry(entry)
        self.receivers = DiscoveryResult()
        self.supervisor = ConnectionSupervisor(hass, link_factory or ReceiverLink)
        self.reconciler = StateReconciler(hass, self.supervisor, lambda: self.config)

    async def async_start(self) -> None:
        """Find the receiver, connect and follow the source player."""
        self.receivers = await async_discover_receivers(self.hass)
        if self.receivers.malformed:
            _LOGGER.debug("Discovery answer could not be read, treating as empty")
        await self._async_bind()
        self.reconciler.async_track_source(self.config.source_entity)
        _LOGGER.info("Onkyo Control started for %s", self.config.source_entity)

    async def async_update_options(self, entry: ConfigEntry) -> None:
        """Apply changed settings without restarting."""
        self.entry = entry
        self.config = ControlConfig.from_entry(entry)
        await self._async_bind()
        self.reconciler.async_track_source(self.config.source_entity)

    async def _async_bind(self) -> None:
        """Bind the selected receiver, or tell the user none was found."""
        connection = select_connection(self.receivers, self.config)
        if connection is None:
            async_notify_no_receiver(self.hass)
            connection = ReceiverConnection()
        if await self.supervisor.async_bind(connection) and connection.is_valid:
            # The receiver changed, reconcile with the current playback state
            self.reconciler.async_request_state()

    async def async_stop(self) -> None:
        """Stop following the player and close the receiver session."""
        self.reconciler.async_shutdown()
        await self.supervisor.async_shutdown()
        _LOGGER.info("Onkyo Control stopped for %s", self.config.source_entity)
