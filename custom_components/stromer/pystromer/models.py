"""Data models for credentials, tokens, bikes and poll snapshots."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any, Self

from .const import (
    DEFAULT_TOKEN_LIFETIME,
    DEFAULT_TOKEN_TYPE,
    STORE_KEY_CLIENT_ID,
    STORE_KEY_CLIENT_SECRET,
    STORE_KEY_EMAIL,
    STORE_KEY_PASSWORD,
)
from .store import SettingsStore
from .utils import (
    JsonDict,
    get_field_name_bool,
    get_field_name_float,
    get_field_name_int,
    get_field_name_str,
)


class AuthState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    INVALID = "invalid"


class ActivityMode(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"


class LightMode(StrEnum):
    ON = "on"
    OFF = "off"
    BRIGHT = "bright"


class StatisticsPeriod(StrEnum):
    YEAR = "year"
    MONTH = "month"
    DAY = "day"

    def path(self, moment: datetime) -> str:
        """Statistics path segment for the period containing moment."""
        match self:
            case StatisticsPeriod.YEAR:
                return f"statistics/{moment.year}/1/"
            case StatisticsPeriod.MONTH:
                return f"statistics/{moment.year}/{moment.month}/1/"
            case StatisticsPeriod.DAY:
                return f"statistics/{moment.year}/{moment.month}/{moment.day}/1/"


@dataclass(frozen=True)
class ApiVariant:
    """Endpoint layout of one generation of the Stromer API."""

    name: str
    login_path: str
    authorize_path: str
    token_path: str
    resource_path: str
    redirect_param: str
    login_redirect_uri: str
    token_redirect_uri: str


API_V3 = ApiVariant(
    name="v3",
    login_path="/users/login/",
    authorize_path="/o/authorize/",
    token_path="/o/token/",
    resource_path="/rapi/mobile/v2/",
    redirect_param="redirect_uri",
    login_redirect_uri="stromerauth://auth",
    token_redirect_uri="stromerauth://auth",
)

API_V4 = ApiVariant(
    name="v4",
    login_path="/mobile/v4/login/",
    authorize_path="/mobile/v4/o/authorize/",
    token_path="/mobile/v4/o/token/",
    resource_path="/rapi/mobile/v4.1/",
    redirect_param="redirect_url",
    login_redirect_uri="stromerauth://auth",
    token_redirect_uri="stromer://auth",
)


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str = field(repr=False)
    client_id: str
    client_secret: str | None = field(default=None, repr=False)

    @property
    def variant(self) -> ApiVariant:
        """A client secret selects the legacy API."""
        return API_V3 if self.client_secret else API_V4

    @classmethod
    def from_store(cls, store: SettingsStore) -> Self | None:
        email = store.get(STORE_KEY_EMAIL)
        password = store.get(STORE_KEY_PASSWORD)
        client_id = store.get(STORE_KEY_CLIENT_ID)
        if not (email and password and client_id):
            return None
        return cls(
            email=email,
            password=password,
            client_id=client_id,
            client_secret=store.get(STORE_KEY_CLIENT_SECRET) or None,
        )


@dataclass(frozen=True)
class TokenSet:
    access_token: str = field(repr=False)
    refresh_token: str | None = field(repr=False)
    token_type: str
    expires_at: datetime

    @classmethod
    def from_token_response(
        cls,
        payload: Mapping[str, Any],
        now: datetime | None = None,
        previous_refresh_token: str | None = None,
    ) -> Self:
        """Build a token set from a token endpoint response.

        A missing or non-positive expires_in falls back to the default lifetime.

        Raises:
            TypeError: If the response is not a JSON object
            KeyError: If the response carries no access token
            ValueError: If expires_in is not numeric
        """
        if not isinstance(payload, Mapping):
            raise TypeError(f"Unexpected token response: {type(payload).__name__}")
        if not (access_token := payload.get("access_token")):
            raise KeyError("access_token")
        now = now or datetime.now(tz=timezone.utc)
        expires_in = int(payload.get("expires_in") or 0)
        if expires_in <= 0:
            expires_in = DEFAULT_TOKEN_LIFETIME
        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            token_type=payload.get("token_type") or DEFAULT_TOKEN_TYPE,
            expires_at=now + timedelta(seconds=expires_in),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or DEFAULT_TOKEN_TYPE,
            expires_at=expires_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat(),
        }

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.access_token}"

    def expires_within(self, seconds: float, now: datetime | None = None) -> bool:
        now = now or datetime.now(tz=timezone.utc)
        return (self.expires_at - now).total_seconds() < seconds


@dataclass(frozen=True)
class StromerBike:
    bike_id: str
    name: str
    biketype: str | None
    color: str | None
    bikenumber: str | None

    @classmethod
    def from_dict(cls, data: JsonDict) -> Self:
        if not isinstance(data, dict):
            raise TypeError

        bike_id = get_field_name_str("bikeid", data) or get_field_name_str("id", data)
        if bike_id is None:
            raise KeyError("bikeid")
        biketype = get_field_name_str("biketype", data)

        return cls(
            bike_id=bike_id,
            name=get_field_name_str("nickname", data)
            or get_field_name_str("name", data)
            or f"Stromer {biketype or 'Bike'}",
            biketype=biketype,
            color=get_field_name_str("color", data),
            bikenumber=get_field_name_str("bikenumber", data),
        )


@dataclass(frozen=True)
class StromerBikeState:
    battery_soc: float
    battery_health: float
    motor_temp: float
    battery_temp: float
    theft_flag: bool
    light_on: bool
    locked: bool
    speed: float
    trip_distance: float
    average_speed_trip: float
    total_distance: float
    average_speed_total: float
    average_energy_consumption: float
    power_on_cycles: int
    total_energy_consumption: float

    @classmethod
    def from_dict(cls, data: JsonDict) -> Self:
        if not isinstance(data, dict):
            raise TypeError

        return cls(
            battery_soc=get_field_name_float("battery_SOC", data, 0),
            battery_health=get_field_name_float("battery_health", data, 100),
            motor_temp=get_field_name_float("motor_temp", data, 0),
            battery_temp=get_field_name_float("battery_temp", data, 0),
            theft_flag=get_field_name_bool("theft_flag", data, False),
            light_on=bool(data.get("light_on")) or data.get("light") == "on",
            locked=(
                data.get("lock") == "locked"
                or data.get("lock_status") == "locked"
                or data.get("bike_lock") is True
            ),
            speed=get_field_name_float("bike_speed", data)
            or get_field_name_float("speed", data, 0),
            trip_distance=get_field_name_float("trip_distance", data, 0),
            average_speed_trip=get_field_name_float("average_speed_trip", data, 0),
            total_distance=get_field_name_float("total_distance", data, 0),
            average_speed_total=get_field_name_float("average_speed_total", data, 0),
            average_energy_consumption=get_field_name_float(
                "average_energy_consumption", data, 0
            ),
            power_on_cycles=get_field_name_int("power_on_cycles", data, 0),
            total_energy_consumption=get_field_name_float(
                "total_energy_consumption", data, 0
            ),
        )


@dataclass(frozen=True)
class StromerBikePosition:
    latitude: float | None
    longitude: float | None

    @classmethod
    def from_dict(cls, data: JsonDict) -> Self:
        if not isinstance(data, dict):
            raise TypeError

        return cls(
            latitude=get_field_name_float("latitude", data),
            longitude=get_field_name_float("longitude", data),
        )

    @property
    def location(self) -> str | None:
        if self.latitude is None or self.longitude is None:
            return None
        return f"{self.latitude}, {self.longitude}"


@dataclass(frozen=True)
class StromerBikeSignals:
    """Edges between two consecutive bike states."""

    theft_activated: bool = False
    bike_unlocked: bool = False
    battery_decreased: bool = False
    battery_health_decreased: bool = False

    @classmethod
    def between(
        cls, previous: StromerBikeState | None, current: StromerBikeState
    ) -> Self:
        if previous is None:
            return cls(theft_activated=current.theft_flag)
        return cls(
            theft_activated=current.theft_flag and not previous.theft_flag,
            bike_unlocked=previous.locked and not current.locked,
            battery_decreased=current.battery_soc < previous.battery_soc,
            battery_health_decreased=current.battery_health < previous.battery_health,
        )
