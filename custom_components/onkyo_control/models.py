"""Data models for the Onkyo Control integration."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_HOST, CONF_PORT

from .const import (
    CONF_AUTO_DISCOVERY,
    CONF_MAX_VOLUME,
    CONF_MODEL,
    CONF_POWER_ON,
    CONF_SET_INPUT,
    CONF_SET_INPUT_VALUE,
    CONF_SET_VOLUME,
    CONF_SET_VOLUME_VALUE,
    CONF_SOURCE_ENTITY,
    CONF_STANDBY,
    CONF_STANDBY_DELAY,
    CONF_ZONE,
    DEFAULT_INPUT,
    DEFAULT_MAX_VOLUME,
    DEFAULT_PORT,
    DEFAULT_STANDBY_DELAY,
    DEFAULT_ZONE,
    SUPPORTED_MAX_VOLUME,
)


class PlaybackStatus(str, Enum):
    """Playback status reported by the source player."""

    PLAYING = "play"
    PAUSED = "pause"
    STOPPED = "stop"
    UNKNOWN = "unknown"


class PowerState(str, Enum):
    """Receiver power state as last set by this integration."""

    ON = "on"
    OFF = "off"


@dataclass(frozen=True)
class PlaybackNotification:
    """One playback update from the source player."""

    status: PlaybackStatus
    volume: int


@dataclass(frozen=True)
class ReceiverConnection:
    """Address of the receiver commands are sent to."""

    host: str | None = None
    port: int | None = None
    model: str = ""

    @property
    def is_valid(self) -> bool:
        """Return True if commands may be sent to this address."""
        return (
            isinstance(self.host, str)
            and bool(self.host)
            and isinstance(self.port, int)
            and not isinstance(self.port, bool)
        )


@dataclass(frozen=True)
class ReceiverInfo:
    """Onkyo receiver found by discovery."""

    host: str
    port: int
    model: str
    identifier: str

    @property
    def connection(self) -> ReceiverConnection:
        """Return the connection for this receiver."""
        return ReceiverConnection(self.host, self.port, self.model)

    @property
    def option_value(self) -> str:
        """Return the value used to select this receiver in a form."""
        return f"{self.host}_{self.model}_{self.identifier}_{self.port}"

    @property
    def label(self) -> str:
        """Return the label shown for this receiver in a form."""
        return f"{self.model} : {self.identifier}"

    @classmethod
    def from_option_value(cls, value: str) -> ReceiverInfo:
        """Split a form value back into host, model, identifier and port."""
        parts = value.split("_")
        if len(parts) < 4:
            raise ValueError(f"Not a receiver option: {value}")
        return cls(
            host=parts[0],
            port=parse_port(parts[-1]),
            model=parts[1],
            identifier="_".join(parts[2:-1]),
        )


@dataclass(frozen=True)
class DiscoveryResult:
    """Receivers returned by discovery.

    An empty result and a malformed one are told apart so the caller can log
    them differently, both end in the same fallback.
    """

    devices: tuple[ReceiverInfo, ...] = ()
    malformed: bool = False

    @property
    def first(self) -> ReceiverInfo | None:
        """Return the first discovered receiver."""
        return self.devices[0] if self.devices else None


@dataclass(frozen=True)
class ReceiverCommand:
    """Logical command for one receiver zone."""

    zone: str
    action: str
    value: Any


@dataclass(eq=False)
class PendingRetry:
    """Command waiting for the receiver session to open."""

    command: ReceiverCommand
    attempt: int = 0
    cancel: Callable[[], None] | None = field(default=None, repr=False)


def parse_port(value: Any, default: int | None = DEFAULT_PORT) -> int | None:
    """Return a port number, or the default if blank or not numeric."""
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def clamp_non_negative(value: Any, default: int) -> int:
    """Return value as an int floored at zero."""
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ControlConfig:
    """Read-only view of the behaviour settings."""

    auto_discovery: bool = True
    host: str | None = None
    port: int | None = None
    model: str = ""
    source_entity: str | None = None
    zone: str = DEFAULT_ZONE
    power_on: bool = True
    max_volume: int = DEFAULT_MAX_VOLUME
    set_volume: bool = False
    set_volume_value: int = DEFAULT_MAX_VOLUME
    set_input: bool = False
    set_input_value: str = DEFAULT_INPUT
    standby: bool = True
    standby_delay: int = DEFAULT_STANDBY_DELAY

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> ControlConfig:
        """Build the settings from stored values, clamping negative numbers."""
        max_volume = min(
            clamp_non_negative(
                config.get(CONF_MAX_VOLUME, DEFAULT_MAX_VOLUME), DEFAULT_MAX_VOLUME
            ),
            SUPPORTED_MAX_VOLUME,
        )
        host = config.get(CONF_HOST) or None
        return cls(
            auto_discovery=bool(config.get(CONF_AUTO_DISCOVERY, True)),
            host=host,
            port=parse_port(config.get(CONF_PORT), DEFAULT_PORT if host else None),
            model=config.get(CONF_MODEL) or "",
            source_entity=config.get(CONF_SOURCE_ENTITY),
            zone=config.get(CONF_ZONE) or DEFAULT_ZONE,
            power_on=bool(config.get(CONF_POWER_ON, True)),
            max_volume=max_volume,
            set_volume=bool(config.get(CONF_SET_VOLUME, False)),
            set_volume_value=clamp_non_negative(
                config.get(CONF_SET_VOLUME_VALUE, max_volume), max_volume
            ),
            set_input=bool(config.get(CONF_SET_INPUT, False)),
            set_input_value=config.get(CONF_SET_INPUT_VALUE) or DEFAULT_INPUT,
            standby=bool(config.get(CONF_STANDBY, True)),
            standby_delay=clamp_non_negative(
                config.get(CONF_STANDBY_DELAY, DEFAULT_STANDBY_DELAY),
                DEFAULT_STANDBY_DELAY,
            ),
        )

    @classmethod
    def from_entry(cls, entry: ConfigEntry) -> ControlConfig:
        """Build the settings from a config entry, options win over data."""
        return cls.from_mapping({**entry.data, **entry.options})

    @property
    def manual_connection(self) -> ReceiverConnection:
        """Return the manually configured receiver address."""
        return ReceiverConnection(self.host, self.port, self.model)

    @property
    def initial_volume(self) -> int:
        """Return the volume forced on the receiver when it is powered on."""
        return min(self.set_volume_value, self.max_volume)

    def clamp_volume(self, volume: int) -> int:
        """Return volume limited to the configured maximum."""
        return max(0, min(volume, self.max_volume))
