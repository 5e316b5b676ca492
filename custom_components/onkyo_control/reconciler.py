"""Keeps the receiver in step with the source player."""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Any

from homeassistant.components.media_player import (
    ATTR_MEDIA_VOLUME_LEVEL,
    DOMAIN as MEDIA_PLAYER_DOMAIN,
    SERVICE_VOLUME_SET,
    MediaPlayerState,
)
from homeassistant.const import ATTR_ENTITY_ID
from homeassistant.core import (
    CALLBACK_TYPE,
    Event,
    EventStateChangedData,
    HomeAssistant,
    State,
    callback,
)
from homeassistant.helpers.event import async_track_state_change_event

from .connection import ConnectionSupervisor
from .const import (
    ACTION_POWER,
    ACTION_SELECTOR,
    ACTION_VOLUME,
    DEFAULT_ZONE,
    POWER_ON,
    POWER_STANDBY,
)
from .models import (
    ControlConfig,
    PlaybackNotification,
    PlaybackStatus,
    PowerState,
    ReceiverCommand,
)
from .standby import StandbyTimer

_LOGGER = logging.getLogger(__name__)

PLAYER_STATUS = {
    MediaPlayerState.PLAYING: PlaybackStatus.PLAYING,
    MediaPlayerState.PAUSED: PlaybackStatus.PAUSED,
    MediaPlayerState.IDLE: PlaybackStatus.STOPPED,
    MediaPlayerState.ON: PlaybackStatus.STOPPED,
    MediaPlayerState.OFF: PlaybackStatus.STOPPED,
    MediaPlayerState.STANDBY: PlaybackStatus.STOPPED,
}


class StateReconciler:
    """Decides which receiver commands follow a playback update.

    All state lives on the event loop and is only touched from callbacks, so
    updates and standby checks never interleave.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        supervisor: ConnectionSupervisor,
        get_config: Callable[[], ControlConfig],
    ) -> None:
        """Initialize the reconciler."""
        self.hass = hass
        self.supervisor = supervisor
        self._get_config = get_config
        self.standby_timer = StandbyTimer(hass, self._async_standby_check)
        self.status = PlaybackStatus.UNKNOWN
        self.power = PowerState.OFF
        self.volume: int | None = None
        self._last: PlaybackNotification | None = None
        self._source_entity: str | None = None
        self._unsub_source: CALLBACK_TYPE | None = None

    @callback
    def async_handle_notification(self, notification: PlaybackNotification) -> None:
        """Reconcile the receiver with a playback update."""
        if not self.supervisor.connection.is_valid:
            _LOGGER.debug("No valid receiver connection, ignoring %s", notification)
            return

        if notification == self._last:
            return
        self._last = notification

        config = self._get_config()
        _LOGGER.debug(
            "New state: %s connection: %s", notification, self.supervisor.connection
        )

        if notification.status != self.status:
            _LOGGER.debug("Status has changed to %s", notification.status.value)
            self.status = notification.status
            self._async_status_changed(config)
        elif self.power is PowerState.ON:
            # Never reached on a status change, so the power on volume stays
            volume = config.clamp_volume(notification.volume)
            if volume != self.volume:
                _LOGGER.debug("Receiver is on, changing volume to %s", volume)
                self.volume = volume
                self._async_send(config, ACTION_VOLUME, volume)

    @callback
    def _async_status_changed(self, config: ControlConfig) -> None:
        """Act on a playback status transition."""
        if self.status is PlaybackStatus.PLAYING:
            if self.power is PowerState.OFF:
                self._async_power_on(config)
        elif self.status in (PlaybackStatus.PAUSED, PlaybackStatus.STOPPED):
            if config.standby and self.power is PowerState.ON:
                _LOGGER.debug(
                    "Receiver goes to standby in %s seconds unless playback resumes",
                    config.standby_delay,
                )
                self.standby_timer.async_arm(config.standby_delay)

    @callback
    def _async_power_on(self, config: ControlConfig) -> None:
        """Run the power on sequence."""
        if config.power_on:
            _LOGGER.debug("Turning on receiver")
            self._async_send(config, ACTION_POWER, POWER_ON)

        if config.set_volume:
            self.volume = config.initial_volume
            _LOGGER.debug("Setting initial volume to %s", self.volume)
            self._async_broadcast_volume(self.volume)
            self._async_send(config, ACTION_VOLUME, self.volume)

        if config.set_input:
            _LOGGER.debug("Setting input to %s", config.set_input_value)
            self._async_send(config, ACTION_SELECTOR, config.set_input_value)

        self.power = PowerState.ON

    @callback
    def _async_standby_check(self) -> None:
        """Put the receiver in standby if playback did not resume."""
        if self.status is PlaybackStatus.PLAYING or self.power is not PowerState.ON:
            _LOGGER.debug("Playback resumed or receiver already off, no standby")
            return
        if not self.supervisor.connection.is_valid:
            return
        _LOGGER.debug("Turning off receiver")
        self.power = PowerState.OFF
        self._async_send(self._get_config(), ACTION_POWER, POWER_STANDBY)

    @callback
    def _async_send(self, config: ControlConfig, action: str, value: Any) -> None:
        """Dispatch a command to the configured zone."""
        zone = config.zone
        if zone not in self.supervisor.zones:
            _LOGGER.warning(
                "Zone %s not supported by %s, using %s",
                zone,
                self.supervisor.connection.model or "receiver",
                DEFAULT_ZONE,
            )
            zone = DEFAULT_ZONE
        self.supervisor.async_dispatch(ReceiverCommand(zone, action, value))

    @callback
    def _async_broadcast_volume(self, volume: int) -> None:
        """Tell the source player which volume the receiver was set to."""
        if self._source_entity is None:
            return
        self.hass.async_create_task(
            self.hass.services.async_call(
                MEDIA_PLAYER_DOMAIN,
                SERVICE_VOLUME_SET,
                {
                    ATTR_ENTITY_ID: self._source_entity,
                    ATTR_MEDIA_VOLUME_LEVEL: volume / 100,
                },
            )
        )

    @callback
    def async_track_source(self, entity_id: str | None) -> None:
        """Follow the playback state of a media player."""
        if entity_id == self._source_entity and self._unsub_source is not None:
            return
        self._async_untrack_source()
        self._source_entity = entity_id
        if entity_id is None:
            return

        _LOGGER.debug("Following playback state of %s", entity_id)
        self._unsub_source = async_track_state_change_event(
            self.hass, [entity_id], self._async_source_changed
        )
        self.async_request_state()

    @callback
    def async_request_state(self) -> None:
        """Reconcile with the current state of the source player."""
        if self._source_entity is None:
            return
        if (state := self.hass.states.get(self._source_entity)) is not None:
            self.async_handle_notification(self._notification_from_state(state))

    @callback
    def _async_source_changed(self, event: Event[EventStateChangedData]) -> None:
        """Handle a state change of the source player."""
        if (state := event.data["new_state"]) is None:
            return
        self.async_handle_notification(self._notification_from_state(state))

    def _notification_from_state(self, state: State) -> PlaybackNotification:
        """Convert a media player state to a playback update."""
        status = PLAYER_STATUS.get(state.state, PlaybackStatus.UNKNOWN)
        level = state.attributes.get(ATTR_MEDIA_VOLUME_LEVEL)
        if level is not None:
            volume = round(float(level) * 100)
        elif self._last is not None:
            volume = self._last.volume
        else:
            volume = 0
        return PlaybackNotification(status, volume)

    @callback
    def _async_untrack_source(self) -> None:
        if self._unsub_source is not None:
            self._unsub_source()
            self._unsub_source = None

    @callback
    def async_shutdown(self) -> None:
        """Stop following the source player and cancel standby checks."""
        self._async_untrack_source()
        self.standby_timer.async_cancel()
