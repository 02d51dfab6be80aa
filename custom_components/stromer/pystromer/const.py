"""Constants for Stromer."""

from datetime import timedelta

HTTPX_TIMEOUT = 30
TRIP_RESET_TIMEOUT = 30

TOKEN_REFRESH_WINDOW_MIN = 300
DEFAULT_TOKEN_LIFETIME = 3600
DEFAULT_TOKEN_TYPE = "Bearer"

API_BASE_URL = "https://api3.stromer-portal.ch"

OAUTH_SCOPE = (
    "bikeposition bikestatus bikeconfiguration bikelock biketheft "
    "bikedata bikepin bikeblink userprofile"
)
CSRF_COOKIE = "csrftoken"
ERROR_BODY_MAX_LENGTH = 200

DEFAULT_ACTIVE_POLL_INTERVAL = timedelta(seconds=30)
DEFAULT_IDLE_POLL_INTERVAL = timedelta(minutes=10)
POLL_MAX_RETRIES = 5
POLL_MAX_BACKOFF = 60

STORE_KEY_EMAIL = "email"
STORE_KEY_PASSWORD = "password"
STORE_KEY_CLIENT_ID = "client_id"
STORE_KEY_CLIENT_SECRET = "client_secret"
STORE_KEY_TOKENS = "tokens"
STORE_KEY_BASELINES = "baselines_{bike_id}"
