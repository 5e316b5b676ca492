"""Exceptions for the Onkyo Control integration."""

from homeassistant.exceptions import HomeAssistantError


class OnkyoControlError(HomeAssistantError):
    """Base error for Onkyo Control."""


class NoValidConnection(OnkyoControlError):
    """Error to indicate the receiver address is missing or incomplete."""


class LinkError(OnkyoControlError):
    """Error to indicate the receiver link failed."""


class InvalidCommand(OnkyoControlError):
    """Error to indicate the receiver has no such command."""
