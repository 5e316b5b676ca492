"""Constants for the Onkyo Control integration."""

from typing import Final

# Domain
DOMAIN: Final = "onkyo_control"

# Configuration
CONF_AUTO_DISCOVERY: Final = "auto_discovery"
CONF_RECEIVER: Final = "receiver"
CONF_MODEL: Final = "model"
CONF_SOURCE_ENTITY: Final = "source_entity"
CONF_ZONE: Final = "zone"
CONF_POWER_ON: Final = "power_on"
CONF_MAX_VOLUME: Final = "max_volume"
CONF_SET_VOLUME: Final = "set_volume"
CONF_SET_VOLUME_VALUE: Final = "set_volume_value"
CONF_SET_INPUT: Final = "set_input"
CONF_SET_INPUT_VALUE: Final = "set_input_value"
CONF_STANDBY: Final = "standby"
CONF_STANDBY_DELAY: Final = "standby_delay"

# Defaults
DEFAULT_NAME: Final = "Onkyo Control"
DEFAULT_PORT: Final = 60128
DEFAULT_ZONE: Final = "main"
DEFAULT_MAX_VOLUME: Final = 100
DEFAULT_INPUT: Final = "line1"
DEFAULT_STANDBY_DELAY: Final = 0
MANUAL_RECEIVER: Final = "manual"

# Receiver volume is 0-200 on the wire, 0-100 everywhere else
SUPPORTED_MAX_VOLUME: Final = 100
WIRE_VOLUME_FACTOR: Final = 2

# Zones never offered to the user
EXCLUDED_ZONES: Final = ("dock",)

# Commands
ACTION_POWER: Final = "power"
ACTION_VOLUME: Final = "volume"
ACTION_SELECTOR: Final = "selector"
POWER_ON: Final = "on"
POWER_STANDBY: Final = "standby"

# Names eiscp uses where the wire command differs
LIBRARY_ACTIONS: Final = {ACTION_SELECTOR: "input-selector"}
INPUT_ALIASES: Final = {"line1": "line"}
POWER_QUERY: Final = "system-power query"

# Connection settings
DISCOVERY_TIMEOUT: Final = 5  # seconds
COMMAND_DELAY: Final = 0.15  # seconds between commands
# Wait before each re-check of the session, the last tier gives up
BACKOFF_SCHEDULE: Final = (0.0, 0.5, 5.0)
TIMEOUT_MESSAGE: Final = "Timeout waiting for response."

# Notifications
NOTIFICATION_ID_NO_RECEIVER: Final = "onkyo_control_no_receiver"
NOTIFICATION_NO_RECEIVER: Final = "No Onkyo receivers found. Please manually configure."

# Error messages
ERROR_INVALID_HOST: Final = "invalid_host"
