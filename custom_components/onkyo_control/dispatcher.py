"""Command encoding and sending for Onkyo Control."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from eiscp import commands
from eiscp.core import command_to_iscp

from homeassistant.core import HomeAssistant

from .const import (
    ACTION_SELECTOR,
    ACTION_VOLUME,
    COMMAND_DELAY,
    INPUT_ALIASES,
    LIBRARY_ACTIONS,
    SUPPORTED_MAX_VOLUME,
    WIRE_VOLUME_FACTOR,
)
from .exceptions import InvalidCommand
from .models import ReceiverCommand

if TYPE_CHECKING:
    from .connection import ReceiverLink

_LOGGER = logging.getLogger(__name__)

WIRE_MAX_VOLUME = SUPPORTED_MAX_VOLUME * WIRE_VOLUME_FACTOR


def encode_command(command: ReceiverCommand) -> str:
    """Return the wire string for a command.

    Onkyo receivers take volume on a 0-200 scale, everything else in this
    integration uses 0-100, so volume is the one value converted here.
    """
    value = command.value
    if command.action == ACTION_VOLUME:
        value = max(0, min(int(value), SUPPORTED_MAX_VOLUME)) * WIRE_VOLUME_FACTOR
    return f"{command.zone}.{command.action}={value}"


def _zone_prefix(zone: str, action: str) -> str:
    """Return the three letter ISCP command for an action in a zone."""
    mappings = commands.COMMAND_MAPPINGS[zone]
    prefix = mappings.get(action) or mappings.get(LIBRARY_ACTIONS.get(action, ""))
    if prefix is None:
        raise InvalidCommand(f'"{action}" is not a valid command in zone "{zone}"')
    return prefix


def _input_code(zone: str, prefix: str, name: str) -> str:
    """Return the ISCP code of an input, zones share the main zone codes."""
    name = INPUT_ALIASES.get(name, name)
    code = commands.VALUE_MAPPINGS[zone].get(prefix, {}).get(name)
    if code is None:
        code = commands.VALUE_MAPPINGS["main"]["SLI"].get(name)
    if not isinstance(code, str):
        raise InvalidCommand(f'"{name}" is not a valid input in zone "{zone}"')
    # Some codes are quoted in the eiscp tables
    return code.strip("“”")


def to_iscp(wire: str) -> str:
    """Translate a wire string into the ISCP message eiscp sends.

    Volume is sent as a raw hex level, eiscp itself stops at 199. Inputs are
    looked up in the zone's own table first, then in the main zone's.
    Raises InvalidCommand if the receiver has no such command.
    """
    target, _, value = wire.partition("=")
    zone, _, action = target.strip().lower().partition(".")
    value = value.strip().lower()
    if not action or not value or zone not in commands.COMMAND_MAPPINGS:
        raise InvalidCommand(f"Not a receiver command: {wire}")

    if action == ACTION_VOLUME:
        if not value.isdigit() or int(value) > WIRE_MAX_VOLUME:
            raise InvalidCommand(f'"{value}" is not a valid volume')
        return f"{_zone_prefix(zone, action)}{int(value):02X}"

    if action == ACTION_SELECTOR:
        prefix = _zone_prefix(zone, action)
        return f"{prefix}{_input_code(zone, prefix, value)}"

    try:
        return command_to_iscp(wire)
    except ValueError as err:
        raise InvalidCommand(str(err)) from err


class CommandDispatcher:
    """Sends commands over an open receiver session."""

    def __init__(self, hass: HomeAssistant) -> None:
        """Initialize the dispatcher."""
        self.hass = hass
        self._last_command_time = 0.0

    async def async_send(self, link: ReceiverLink, command: ReceiverCommand) -> str:
        """Encode a command and hand it to the link.

        Nothing is read back from the receiver, the command counts as sent
        once the link accepted it. Raises LinkError from the link and
        InvalidCommand if the receiver has no such command.
        """
        wire = encode_command(command)
        await self._rate_limit()
        _LOGGER.debug("Sending command %s to %s", wire, link.connection.host)
        try:
            await self.hass.async_add_executor_job(link.send, wire)
        finally:
            self._last_command_time = self.hass.loop.time()
        return wire

    async def _rate_limit(self) -> None:
        """Ensure minimum delay between commands."""
        elapsed = self.hass.loop.time() - self._last_command_time
        if elapsed < COMMAND_DELAY:
            await asyncio.sleep(COMMAND_DELAY - elapsed)
