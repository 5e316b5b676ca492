"""Debounced standby for Onkyo Control."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from functools import partial
import logging

from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.event import async_call_later

_LOGGER = logging.getLogger(__name__)


class StandbyTimer:
    """One-shot standby checks.

    Every arm schedules its own check. Only the newest arm runs the check, so
    a timer from an earlier pause cannot shorten the delay of a later one. The
    check itself re-reads the current state when it fires.
    """

    def __init__(self, hass: HomeAssistant, check: Callable[[], None]) -> None:
        """Initialize the standby timer."""
        self.hass = hass
        self._check = check
        self._generation = 0
        self._unsubs: dict[int, CALLBACK_TYPE] = {}

    @property
    def armed(self) -> bool:
        """Return True if a check is scheduled."""
        return bool(self._unsubs)

    @callback
    def async_arm(self, delay: float) -> None:
        """Schedule a standby check after delay seconds."""
        self._generation += 1
        generation = self._generation
        _LOGGER.debug("Standby check %d armed for %s seconds", generation, delay)
        self._unsubs[generation] = async_call_later(
            self.hass, delay, partial(self._async_fire, generation)
        )

    @callback
    def _async_fire(self, generation: int, _now: datetime) -> None:
        """Run the check if no newer arm exists."""
        self._unsubs.pop(generation, None)
        if generation != self._generation:
            _LOGGER.debug("Standby check %d superseded, skipping", generation)
            return
        _LOGGER.debug("Standby check %d fired", generation)
        self._check()

    @callback
    def async_cancel(self) -> None:
        """Cancel every scheduled check."""
        for unsub in self._unsubs.values():
            unsub()
        self._unsubs.clear()
