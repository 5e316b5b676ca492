"""Onkyo Control connection supervisor."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from functools import partial
import logging

from eiscp import eISCP

from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.event import async_call_later

from .const import BACKOFF_SCHEDULE, DEFAULT_ZONE, POWER_QUERY, TIMEOUT_MESSAGE
from .dispatcher import CommandDispatcher, to_iscp
from .exceptions import InvalidCommand, LinkError, NoValidConnection, OnkyoControlError
from .helpers import build_zone_list
from .models import PendingRetry, ReceiverCommand, ReceiverConnection

_LOGGER = logging.getLogger(__name__)


class ReceiverLink:
    """Session to one receiver over eISCP.

    All methods block and must run in the executor. Any failure drops the
    socket, the next call on the same link reconnects.
    """

    def __init__(self, connection: ReceiverConnection) -> None:
        """Initialize the link."""
        if not connection.is_valid:
            raise NoValidConnection(f"Incomplete receiver address: {connection}")
        self.connection = connection
        self._receiver = eISCP(connection.host, connection.port)
        self._closed = False

    def open(self) -> None:
        """Open the session and check the receiver answers."""
        try:
            result = self._receiver.command(POWER_QUERY)
        except ValueError as err:
            if str(err) == TIMEOUT_MESSAGE:
                raise self._dropped(f"No answer from {self.connection.host}") from err
            raise self._dropped(str(err)) from err
        except (AssertionError, OSError) as err:
            # eiscp asserts on the empty read of a closed peer
            raise self._dropped(
                f"Cannot connect to {self.connection.host}: {err!r}"
            ) from err
        if not result:
            raise self._dropped(f"Empty answer from {self.connection.host}")
        self._closed = False

    def send(self, wire: str) -> None:
        """Send an encoded command without waiting for the reply."""
        message = to_iscp(wire)
        if self._closed:
            raise LinkError(f"Session to {self.connection.host} is closed")
        try:
            self._receiver.send(message)
        except (AssertionError, OSError) as err:
            raise self._dropped(f"Error sending {wire}: {err!r}") from err

    def close(self) -> None:
        """Close the session."""
        self._closed = True
        self._receiver.disconnect()

    def _dropped(self, message: str) -> LinkError:
        self._receiver.disconnect()
        return LinkError(message)


class ConnectionSupervisor:
    """Keeps a session to the receiver and delivers commands over it.

    Commands sent while no session is open wait on BACKOFF_SCHEDULE and are
    dropped when the last tier passes without a session. Once shut down the
    supervisor neither sends nor reconnects.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        link_factory: Callable[[ReceiverConnection], ReceiverLink] = ReceiverLink,
    ) -> None:
        """Initialize the connection supervisor."""
        self.hass = hass
        self.connection = ReceiverConnection()
        self.zones: tuple[str, ...] = (DEFAULT_ZONE,)
        self._link_factory = link_factory
        self._link: ReceiverLink | None = None
        self._dispatcher = CommandDispatcher(hass)
        self._lock = asyncio.Lock()
        self._is_connected = False
        self._is_closed = False
        self._open_task: asyncio.Task | None = None
        self._send_tasks: set[asyncio.Task] = set()
        self._pending: deque[PendingRetry] = deque()

    @property
    def connected(self) -> bool:
        """Return True if the session is open."""
        return self._is_connected

    @property
    def closed(self) -> bool:
        """Return True once the supervisor was shut down."""
        return self._is_closed

    @property
    def pending(self) -> int:
        """Return the number of commands waiting for a session."""
        return len(self._pending)

    @callback
    def async_dispatch(self, command: ReceiverCommand) -> None:
        """Deliver a command, waiting for the session if needed."""
        if self._is_closed or not self.connection.is_valid:
            _LOGGER.debug("No valid receiver connection, dropping %s", command)
            return
        self._async_attempt(PendingRetry(command))

    @callback
    def _async_attempt(self, retry: PendingRetry, _now=None) -> None:
        """Send a pending command or wait for the next backoff tier."""
        retry.cancel = None
        if self._is_closed:
            if retry in self._pending:
                self._pending.remove(retry)
            return
        if retry not in self._pending:
            self._pending.append(retry)

        if self._is_connected:
            self._async_flush()
            return

        if retry.attempt >= len(BACKOFF_SCHEDULE):
            self._pending.remove(retry)
            _LOGGER.error(
                "Error sending command %s.%s=%s. Not connected to %s",
                retry.command.zone,
                retry.command.action,
                retry.command.value,
                self.connection.host,
            )
            # One more try so the next command finds an open session
            self.async_open()
            return

        delay = BACKOFF_SCHEDULE[retry.attempt]
        retry.attempt += 1
        _LOGGER.debug(
            "Not connected, retrying %s in %s seconds (attempt %d)",
            retry.command,
            delay,
            retry.attempt,
        )
        self.async_open()
        retry.cancel = async_call_later(
            self.hass, delay, partial(self._async_attempt, retry)
        )

    @callback
    def _async_flush(self) -> None:
        """Forward every pending command in arrival order."""
        while self._pending:
            retry = self._pending.popleft()
            if retry.cancel is not None:
                retry.cancel()
                retry.cancel = None
            task = self.hass.async_create_task(self._async_send(retry))
            self._send_tasks.add(task)
            task.add_done_callback(self._send_tasks.discard)

    async def _async_send(self, retry: PendingRetry) -> None:
        """Send one command with locking and rate limiting."""
        async with self._lock:
            if self._is_closed:
                return
            link = self._link
            if link is None or not self._is_connected:
                self._async_attempt(retry)
                return
            try:
                await self._dispatcher.async_send(link, retry.command)
            except InvalidCommand as err:
                _LOGGER.error("Dropping command %s: %s", retry.command, err)
            except LinkError as err:
                self.async_on_link_error(err)
                self._async_attempt(retry)

    @callback
    def async_on_link_error(self, err: Exception) -> None:
        """Handle an error reported by the receiver link."""
        _LOGGER.error(
            "An error occurred trying to communicate with the receiver: %s", err
        )
        self._is_connected = False
        self._link = None

    @callback
    def async_open(self) -> None:
        """Start opening the session if it is not open or opening."""
        if (
            self._is_closed
            or self._is_connected
            or self._open_task is not None
            or not self.connection.is_valid
        ):
            return
        self._open_task = self.hass.async_create_task(
            self._async_open(self.connection)
        )

    async def _async_open(self, connection: ReceiverConnection) -> None:
        """Open the session to the receiver."""
        try:
            link = await self._async_open_link(connection)
        finally:
            self._open_task = None
        if link is None:
            return

        if self._is_closed or connection != self.connection:
            _LOGGER.debug("Receiver changed, discarding session to %s", connection.host)
            await self._async_close_link(link)
            self.async_open()
            return

        _LOGGER.info("Connected to Onkyo receiver at %s", connection.host)
        self._link = link
        self._is_connected = True
        self._async_flush()

    async def _async_open_link(
        self, connection: ReceiverConnection
    ) -> ReceiverLink | None:
        """Return an open link to the receiver, None if it does not answer."""
        _LOGGER.debug("Connecting to Onkyo receiver at %s", connection.host)
        link = self._link
        try:
            if link is None or link.connection != connection:
                link = self._link_factory(connection)
            await self.hass.async_add_executor_job(link.open)
        except OnkyoControlError as err:
            _LOGGER.debug("Connection to %s failed: %s", connection.host, err)
            if link is not None and self._link is link:
                self._link = None
            return None
        return link

    async def _async_close_link(self, link: ReceiverLink) -> None:
        _LOGGER.debug("Closing connection to Onkyo receiver at %s", link.connection.host)
        try:
            await self.hass.async_add_executor_job(link.close)
        except LinkError as err:
            _LOGGER.debug("Error during disconnect: %s", err)

    async def async_bind(self, connection: ReceiverConnection) -> bool:
        """Bind a receiver, reconnecting only if it changed."""
        if connection == self.connection:
            _LOGGER.debug("Receiver unchanged, keeping session to %s", connection.host)
            return False

        _LOGGER.debug("Receiver changed from %s to %s", self.connection, connection)
        # An open still running for the old receiver discards its own link
        self.connection = connection
        self.zones = build_zone_list()
        await self.async_close()
        self.async_open()
        return True

    async def async_close(self) -> None:
        """Close the connection to the receiver."""
        link, self._link = self._link, None
        self._is_connected = False
        if link is not None:
            await self._async_close_link(link)

    async def async_shutdown(self) -> None:
        """Drop pending commands, stop sending and close the session."""
        self._is_closed = True
        while self._pending:
            retry = self._pending.popleft()
            if retry.cancel is not None:
                retry.cancel()
        for task in self._send_tasks:
            task.cancel()
        await self.async_close()
