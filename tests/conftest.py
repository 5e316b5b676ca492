"""Fixtures for Onkyo Control tests."""

from __future__ import annotations

import threading

import pytest

from custom_components.onkyo_control.connection import ConnectionSupervisor
from custom_components.onkyo_control.dispatcher import to_iscp
from custom_components.onkyo_control.exceptions import LinkError
from custom_components.onkyo_control.models import ControlConfig, ReceiverConnection
from custom_components.onkyo_control.reconciler import StateReconciler

CONNECTION = ReceiverConnection("192.168.1.100", 60128, "TX-NR656")
SOURCE_ENTITY = "media_player.kitchen"


class FakeReceiver:
    """Receiver behind every link handed out by link()."""

    def __init__(self) -> None:
        """Initialize the fake receiver."""
        self.online = True
        self.fail_send = False
        self.open_gate: threading.Event | None = None
        self.sent: list[str] = []
        self.opened = 0
        self.closed = 0
        self.links: list[FakeLink] = []

    def link(self, connection: ReceiverConnection) -> FakeLink:
        """Return a new link to this receiver."""
        link = FakeLink(self, connection)
        self.links.append(link)
        return link


class FakeLink:
    """Receiver link that records what it is asked to do.

    Commands are translated like the real link does, so a command eiscp
    cannot express fails here too.
    """

    def __init__(self, receiver: FakeReceiver, connection: ReceiverConnection) -> None:
        """Initialize the fake link."""
        self._receiver = receiver
        self.connection = connection
        self.sent: list[str] = []

    def open(self) -> None:
        if self._receiver.open_gate is not None:
            self._receiver.open_gate.wait(5)
        self._receiver.opened += 1
        if not self._receiver.online:
            raise LinkError("Receiver offline")

    def send(self, wire: str) -> None:
        to_iscp(wire)
        if self._receiver.fail_send:
            raise LinkError("Broken pipe")
        self._receiver.sent.append(wire)
        self.sent.append(wire)

    def close(self) -> None:
        self._receiver.closed += 1


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations):
    """Enable loading custom_components in every test."""
    yield


@pytest.fixture
def receiver() -> FakeReceiver:
    """Return a fake receiver that answers."""
    return FakeReceiver()


@pytest.fixture
async def supervisor(hass, receiver) -> ConnectionSupervisor:
    """Return a supervisor with an open session to the fake receiver."""
    supervisor = ConnectionSupervisor(hass, receiver.link)
    await supervisor.async_bind(CONNECTION)
    await hass.async_block_till_done()
    assert supervisor.connected
    return supervisor


class ConfigHolder:
    """Mutable holder so a test can change settings between updates."""

    def __init__(self, **kwargs) -> None:
        self.config = ControlConfig(**kwargs)

    def set(self, **kwargs) -> None:
        self.config = ControlConfig(**kwargs)

    def __call__(self) -> ControlConfig:
        return self.config


@pytest.fixture
def settings() -> ConfigHolder:
    """Return default behaviour settings."""
    return ConfigHolder()


@pytest.fixture
def reconciler(hass, supervisor, settings) -> StateReconciler:
    """Return a reconciler driving the fake receiver."""
    return StateReconciler(hass, supervisor, settings)
