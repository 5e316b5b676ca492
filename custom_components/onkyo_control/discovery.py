"""Receiver discovery for Onkyo Control."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import Any

from eiscp import eISCP

from homeassistant.components import persistent_notification
from homeassistant.core import HomeAssistant, callback

from .const import (
    DEFAULT_NAME,
    DISCOVERY_TIMEOUT,
    NOTIFICATION_ID_NO_RECEIVER,
    NOTIFICATION_NO_RECEIVER,
)
from .models import (
    ControlConfig,
    DiscoveryResult,
    ReceiverConnection,
    ReceiverInfo,
    parse_port,
)

_LOGGER = logging.getLogger(__name__)


def parse_discovery(receivers: Iterable[Any] | None) -> DiscoveryResult:
    """Convert the receivers eiscp found into a discovery result."""
    if receivers is None:
        return DiscoveryResult()

    devices: dict[str, ReceiverInfo] = {}
    try:
        for receiver in receivers:
            info = receiver.info
            port = parse_port(receiver.port, None)
            if port is None or not receiver.host:
                raise ValueError(f"Incomplete receiver address: {receiver.host}")
            identifier = str(info["identifier"])
            devices.setdefault(
                identifier,
                ReceiverInfo(
                    host=receiver.host,
                    port=port,
                    model=str(info["model_name"]),
                    identifier=identifier,
                ),
            )
    except (AttributeError, KeyError, TypeError, ValueError) as err:
        _LOGGER.warning("Unexpected discovery answer: %s", err)
        return DiscoveryResult(malformed=True)

    return DiscoveryResult(tuple(devices.values()))


def discover_receivers() -> DiscoveryResult:
    """Find receivers on the local network (blocking)."""
    try:
        receivers = eISCP.discover(timeout=DISCOVERY_TIMEOUT)
    except OSError as err:
        _LOGGER.error("Error discovering receivers: %s", err)
        return DiscoveryResult()
    return parse_discovery(receivers)


async def async_discover_receivers(hass: HomeAssistant) -> DiscoveryResult:
    """Find receivers on the local network."""
    result = await hass.async_add_executor_job(discover_receivers)
    _LOGGER.debug(
        "Found these receivers on the local network: %s",
        [device.option_value for device in result.devices],
    )
    return result


def select_connection(
    result: DiscoveryResult, config: ControlConfig
) -> ReceiverConnection | None:
    """Pick the receiver to bind from discovery and settings."""
    if (first := result.first) is not None:
        if config.auto_discovery:
            return first.connection
        return ReceiverConnection(
            host=config.host or first.host,
            port=config.port if config.port is not None else first.port,
            model=config.model or first.model,
        )

    manual = config.manual_connection
    if not config.auto_discovery and manual.is_valid:
        return manual
    return None


@callback
def async_notify_no_receiver(hass: HomeAssistant) -> None:
    """Tell the user no receiver could be found."""
    persistent_notification.async_create(
        hass,
        NOTIFICATION_NO_RECEIVER,
        title=DEFAULT_NAME,
        notification_id=NOTIFICATION_ID_NO_RECEIVER,
    )
