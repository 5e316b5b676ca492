"""Tests for the connection supervisor."""

import asyncio
from datetime import timedelta
import logging
import threading
from unittest.mock import patch

from eiscp import eISCP
import pytest
from pytest_homeassistant_custom_component.common import async_fire_time_changed

from homeassistant.util import dt as dt_util

from custom_components.onkyo_control.connection import ConnectionSupervisor, ReceiverLink
from custom_components.onkyo_control.const import BACKOFF_SCHEDULE, TIMEOUT_MESSAGE
from custom_components.onkyo_control.dispatcher import encode_command
from custom_components.onkyo_control.exceptions import (
    InvalidCommand,
    LinkError,
    NoValidConnection,
)
from custom_components.onkyo_control.models import ReceiverCommand, ReceiverConnection

from .conftest import CONNECTION

POWER_ON = ReceiverCommand("main", "power", "on")
VOLUME = ReceiverCommand("main", "volume", 40)
SELECTOR = ReceiverCommand("main", "selector", "line1")


def test_backoff_schedule() -> None:
    """Test commands wait 0, 0.5 and 5 seconds before giving up."""
    assert BACKOFF_SCHEDULE == (0.0, 0.5, 5.0)


async def test_dispatch_over_open_session(hass, receiver, supervisor) -> None:
    """Test commands are sent once, in order, when connected."""
    supervisor.async_dispatch(POWER_ON)
    supervisor.async_dispatch(VOLUME)
    supervisor.async_dispatch(SELECTOR)
    await hass.async_block_till_done()

    assert receiver.sent == ["main.power=on", "main.volume=80", "main.selector=line1"]
    assert supervisor.pending == 0


async def test_dispatch_without_connection_is_dropped(hass, receiver) -> None:
    """Test nothing is attempted without a receiver address."""
    supervisor = ConnectionSupervisor(hass, receiver.link)

    supervisor.async_dispatch(POWER_ON)
    await hass.async_block_till_done()

    assert receiver.opened == 0
    assert receiver.sent == []
    assert supervisor.pending == 0


async def test_retries_then_gives_up(hass, receiver, caplog) -> None:
    """Test a command waits on every backoff tier and is then dropped."""
    receiver.online = False
    supervisor = ConnectionSupervisor(hass, receiver.link)
    await supervisor.async_bind(CONNECTION)
    await hass.async_block_till_done()
    assert not supervisor.connected
    now = dt_util.utcnow()

    supervisor.async_dispatch(POWER_ON)
    await hass.async_block_till_done()
    assert supervisor.pending == 1

    async_fire_time_changed(hass, now + timedelta(seconds=0.1))
    await hass.async_block_till_done()
    assert supervisor.pending == 1

    async_fire_time_changed(hass, now + timedelta(seconds=0.7))
    await hass.async_block_till_done()
    assert supervisor.pending == 1

    with caplog.at_level(logging.ERROR):
        async_fire_time_changed(hass, now + timedelta(seconds=6))
        await hass.async_block_till_done()
    assert supervisor.pending == 0
    assert "Not connected" in caplog.text

    opened = receiver.opened
    async_fire_time_changed(hass, now + timedelta(seconds=60))
    await hass.async_block_till_done()
    assert receiver.opened == opened
    assert receiver.sent == []


async def test_pending_commands_sent_in_order_after_connect(hass, receiver) -> None:
    """Test commands queued while offline keep their order."""
    receiver.online = False
    supervisor = ConnectionSupervisor(hass, receiver.link)
    await supervisor.async_bind(CONNECTION)
    await hass.async_block_till_done()
    now = dt_util.utcnow()

    supervisor.async_dispatch(POWER_ON)
    supervisor.async_dispatch(VOLUME)
    supervisor.async_dispatch(SELECTOR)
    await hass.async_block_till_done()
    assert supervisor.pending == 3

    receiver.online = True
    async_fire_time_changed(hass, now + timedelta(seconds=1))
    await hass.async_block_till_done()

    assert supervisor.connected
    assert receiver.sent == ["main.power=on", "main.volume=80", "main.selector=line1"]
    assert supervisor.pending == 0


async def test_link_error_retries_are_bounded(hass, receiver, supervisor, caplog) -> None:
    """Test a command that keeps failing is dropped after the last tier."""
    receiver.fail_send = True

    supervisor.async_dispatch(POWER_ON)
    await hass.async_block_till_done()

    assert "An error occurred trying to communicate with the receiver" in caplog.text
    assert "Not connected" in caplog.text
    assert receiver.sent == []
    assert supervisor.pending == 0

    receiver.fail_send = False
    supervisor.async_dispatch(VOLUME)
    await hass.async_block_till_done()

    assert supervisor.connected
    assert receiver.sent == ["main.volume=80"]


async def test_bind_same_receiver_keeps_session(hass, receiver, supervisor) -> None:
    """Test rebinding an equal receiver does not reconnect."""
    opened = receiver.opened

    assert not await supervisor.async_bind(
        ReceiverConnection("192.168.1.100", 60128, "TX-NR656")
    )
    await hass.async_block_till_done()

    assert receiver.opened == opened
    assert receiver.closed == 0
    assert supervisor.connected


async def test_bind_new_receiver_reconnects(hass, receiver, supervisor) -> None:
    """Test a new receiver closes the old session and opens another."""
    new = ReceiverConnection("192.168.1.101", 60128, "TX-NR7100")

    assert await supervisor.async_bind(new)
    await hass.async_block_till_done()

    assert receiver.closed == 1
    assert receiver.links[-1].connection == new
    assert supervisor.connected
    assert supervisor.connection == new
    assert "main" in supervisor.zones


async def test_shutdown_closes_session(hass, receiver, supervisor) -> None:
    """Test shutdown closes the session."""
    await supervisor.async_shutdown()

    assert receiver.closed == 1
    assert not supervisor.connected


async def test_link_error_builds_a_fresh_link(hass, receiver, supervisor) -> None:
    """Test a failed send drops the link so the next open reconnects."""
    first = receiver.links[-1]
    receiver.fail_send = True

    supervisor.async_dispatch(POWER_ON)
    await hass.async_block_till_done()

    receiver.fail_send = False
    supervisor.async_dispatch(VOLUME)
    await hass.async_block_till_done()

    assert supervisor.connected
    assert receiver.links[-1] is not first
    assert receiver.links[-1].sent == ["main.volume=80"]
    assert first.sent == []


async def test_open_for_previous_receiver_is_discarded(hass, receiver) -> None:
    """Test an open that finishes after a rebind does not serve the new receiver."""
    new = ReceiverConnection("192.168.1.101", 60128, "TX-NR7100")
    receiver.online = False
    supervisor = ConnectionSupervisor(hass, receiver.link)
    await supervisor.async_bind(CONNECTION)
    await hass.async_block_till_done()

    receiver.online = True
    receiver.open_gate = threading.Event()
    supervisor.async_open()
    await asyncio.sleep(0)
    await supervisor.async_bind(new)

    receiver.open_gate.set()
    await hass.async_block_till_done()

    old_link = next(link for link in receiver.links if link.connection == CONNECTION)
    assert supervisor.connected
    assert receiver.links[-1].connection == new
    assert receiver.closed >= 1

    supervisor.async_dispatch(POWER_ON)
    await hass.async_block_till_done()

    assert receiver.links[-1].sent == ["main.power=on"]
    assert old_link.sent == []


async def test_invalid_command_is_dropped(hass, receiver, supervisor, caplog) -> None:
    """Test a command the receiver does not know is dropped without a reconnect."""
    opened = receiver.opened

    supervisor.async_dispatch(ReceiverCommand("main", "selector", "not-an-input"))
    supervisor.async_dispatch(POWER_ON)
    await hass.async_block_till_done()

    assert "Dropping command" in caplog.text
    assert receiver.sent == ["main.power=on"]
    assert receiver.opened == opened
    assert supervisor.connected


async def test_shutdown_stops_queued_sends(hass, receiver, supervisor) -> None:
    """Test commands still queued at shutdown are neither sent nor retried."""
    supervisor.async_dispatch(POWER_ON)
    supervisor.async_dispatch(VOLUME)
    supervisor.async_dispatch(SELECTOR)
    await supervisor.async_shutdown()
    await hass.async_block_till_done()

    opened = receiver.opened
    supervisor.async_dispatch(POWER_ON)
    supervisor.async_open()
    async_fire_time_changed(hass, dt_util.utcnow() + timedelta(seconds=10))
    await hass.async_block_till_done()

    assert supervisor.closed
    assert not supervisor.connected
    assert supervisor.pending == 0
    assert receiver.sent == []
    assert receiver.opened == opened
    assert receiver.closed == 1


def test_receiver_link_needs_valid_connection() -> None:
    """Test a link cannot be built for an incomplete address."""
    with pytest.raises(NoValidConnection):
        ReceiverLink(ReceiverConnection(None, None))


def test_receiver_link_open_queries_power() -> None:
    """Test opening asks the receiver for its power state."""
    link = ReceiverLink(CONNECTION)

    with patch.object(eISCP, "raw", return_value="PWR01") as mock_raw:
        link.open()

    mock_raw.assert_called_once_with("PWRQSTN")


def test_receiver_link_open_timeout() -> None:
    """Test a receiver that does not answer fails to open."""
    link = ReceiverLink(CONNECTION)

    with (
        patch.object(eISCP, "raw", side_effect=ValueError(TIMEOUT_MESSAGE)),
        patch.object(eISCP, "disconnect") as mock_disconnect,
        pytest.raises(LinkError, match="No answer"),
    ):
        link.open()

    mock_disconnect.assert_called_once()


def test_receiver_link_open_after_peer_closed() -> None:
    """Test a session closed by the receiver drops the socket."""
    link = ReceiverLink(CONNECTION)

    with (
        patch.object(eISCP, "raw", side_effect=AssertionError()),
        patch.object(eISCP, "disconnect") as mock_disconnect,
        pytest.raises(LinkError),
    ):
        link.open()

    mock_disconnect.assert_called_once()


@pytest.mark.parametrize(
    ("command", "message"),
    [
        (ReceiverCommand("main", "power", "on"), "PWR01"),
        (ReceiverCommand("main", "power", "standby"), "PWR00"),
        (ReceiverCommand("main", "volume", 0), "MVL00"),
        (ReceiverCommand("main", "volume", 100), "MVLC8"),
        (ReceiverCommand("main", "selector", "line1"), "SLI41"),
        (ReceiverCommand("zone2", "power", "on"), "ZPW01"),
        (ReceiverCommand("zone2", "volume", 100), "ZVLC8"),
        (ReceiverCommand("zone2", "selector", "line1"), "SLZ41"),
    ],
)
def test_receiver_link_sends_iscp(command, message) -> None:
    """Test commands reach eiscp as ISCP messages it can send."""
    link = ReceiverLink(CONNECTION)

    with patch.object(eISCP, "send") as mock_send:
        link.send(encode_command(command))

    mock_send.assert_called_once_with(message)


def test_receiver_link_send_error_drops_socket() -> None:
    """Test a failed send drops the socket."""
    link = ReceiverLink(CONNECTION)

    with (
        patch.object(eISCP, "send", side_effect=OSError("Broken pipe")),
        patch.object(eISCP, "disconnect") as mock_disconnect,
        pytest.raises(LinkError),
    ):
        link.send("main.power=on")

    mock_disconnect.assert_called_once()


def test_receiver_link_refuses_unknown_command() -> None:
    """Test a command eiscp cannot express never reaches the socket."""
    link = ReceiverLink(CONNECTION)

    with patch.object(eISCP, "send") as mock_send, pytest.raises(InvalidCommand):
        link.send("main.selector=not-an-input")

    mock_send.assert_not_called()


def test_receiver_link_closed() -> None:
    """Test a closed link does not reconnect to send."""
    link = ReceiverLink(CONNECTION)

    with patch.object(eISCP, "send") as mock_send:
        link.close()
        with pytest.raises(LinkError):
            link.send("main.power=on")

    mock_send.assert_not_called()
