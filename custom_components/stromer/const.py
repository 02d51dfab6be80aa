"""Constants for the Stromer integration."""

from typing import Final

DOMAIN = "stromer"

CONF_CLIENT_ID: Final[str] = "client_id"
CONF_CLIENT_SECRET: Final[str] = "client_secret"
CONF_ACTIVE_POLL_INTERVAL: Final[str] = "active_poll_interval"
CONF_POLL_INTERVAL: Final[str] = "poll_interval"
CONF_USER_TOTAL_BASELINE: Final[str] = "user_total_baseline"
CONF_ODOMETER_BASELINE: Final[str] = "odometer_baseline"

# seconds
DEFAULT_ACTIVE_POLL_INTERVAL = 30
# minutes
DEFAULT_POLL_INTERVAL = 10

STORE_VERSION = 1
STORE_KEY_FMT = "stromer.{entry_id}"
STORE_SAVE_DELAY = 10
