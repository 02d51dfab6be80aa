"""Asynchronous Python client for the Stromer API."""

import asyncio
import logging
from datetime import datetime
from typing import Any
from urllib.parse import urljoin

import httpx

from .auth import StromerAuth
from .const import API_BASE_URL, HTTPX_TIMEOUT, TRIP_RESET_TIMEOUT
from .exception import (
    AuthErrorKind,
    StromerApiException,
    StromerAuthException,
    StromerTimeoutException,
)
from .models import (
    ApiVariant,
    AuthState,
    Credentials,
    LightMode,
    StatisticsPeriod,
    StromerBike,
    TokenSet,
)
from .store import SettingsStore
from .tokens import RefreshCoordinator, TokenCache
from .utils import unwrap_data

_LOGGER = logging.getLogger(__name__)


class StromerApi:
    """Authenticated access to the Stromer API for one account.

    Every operation makes sure a session exists, refreshes the token ahead of
    expiry, runs the request once and, on a 401, refreshes and retries exactly
    once. The token set is written back to the store after every attempt.
    """

    def __init__(
        self,
        credentials: Credentials | None = None,
        store: SettingsStore | None = None,
        client_session: httpx.AsyncClient | None = None,
        base_url: str = API_BASE_URL,
        unique_id: str | None = None,
    ) -> None:
        """Initialize the Stromer API."""
        self.client_session = client_session or httpx.AsyncClient()
        self.store = store
        self.base_url = base_url
        self._credentials = credentials
        self.auth = StromerAuth(self.client_session, base_url, unique_id)
        self.tokens = TokenCache(store, unique_id=unique_id)
        self.refresher = RefreshCoordinator(
            self.tokens,
            self._async_refresh_token,
            on_success=lambda: self._set_state(AuthState.AUTHENTICATED),
            on_failure=lambda: self._set_state(AuthState.INVALID),
            unique_id=unique_id,
        )
        self.state = AuthState.UNAUTHENTICATED
        self.latest_call_code: int | None = None
        self._auth_lock = asyncio.Lock()
        self.logger = _LOGGER.getChild(unique_id) if unique_id else _LOGGER

    @property
    def credentials(self) -> Credentials:
        if self._credentials is not None:
            return self._credentials
        if self.store is not None and (credentials := Credentials.from_store(self.store)):
            return credentials
        raise StromerAuthException(
            "Email, password and client id are required",
            AuthErrorKind.INVALID_CREDENTIALS,
        )

    @property
    def variant(self) -> ApiVariant:
        return self.credentials.variant

    def get_status_code(self) -> int | None:
        return self.latest_call_code

    def is_token_valid(self) -> bool:
        token_set = self.tokens.token_set
        return (
            self.state == AuthState.AUTHENTICATED
            and token_set is not None
            and not token_set.expires_within(0)
        )

    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED and self.tokens.token_set is not None

    def _set_state(self, state: AuthState) -> None:
        if state != self.state:
            self.logger.debug("Auth state %s -> %s", self.state, state)
        self.state = state

    async def async_init(self) -> None:
        """Restore a persisted session, if any."""
        if self.tokens.load() is not None:
            self._set_state(AuthState.AUTHENTICATED)
        else:
            self.logger.debug("No stored tokens found, authentication required")

    async def async_authenticate(self, credentials: Credentials | None = None) -> TokenSet:
        """Log in with the configured (or given) credentials."""

        if credentials is not None:
            self._credentials = credentials

        async with self._auth_lock:
            return await self._async_login()

    async def _async_login(self) -> TokenSet:
        self._set_state(AuthState.AUTHENTICATING)
        try:
            token_set = await self.auth.async_authenticate(self.credentials)
        except StromerAuthException:
            self._set_state(AuthState.UNAUTHENTICATED)
            raise
        self.tokens.set(token_set)
        self._set_state(AuthState.AUTHENTICATED)
        self.logger.debug("Authentication successful, tokens saved")
        return token_set

    async def async_logout(self) -> None:
        self.logger.debug("Logout")
        self.tokens.clear()
        self._set_state(AuthState.UNAUTHENTICATED)

    async def _async_refresh_token(self, refresh_token: str | None) -> TokenSet:
        return await self.auth.async_refresh_token(self.credentials, refresh_token)

    async def _async_ensure_authenticated(self) -> None:
        if self.is_authenticated():
            return
        async with self._auth_lock:
            # another caller may have logged in while we waited
            if self.is_authenticated():
                return
            await self._async_login()

    async def _async_ensure_fresh(self) -> None:
        if self.tokens.needs_refresh():
            await self.refresher.async_refresh(stale_token=self.tokens.access_token)

    def resource_url(self, path: str) -> str:
        return urljoin(self.base_url, f"{self.variant.resource_path}{path}")

    async def _async_request(
        self,
        method: str,
        endpoint: str,
        json: dict | None,
        token_set: TokenSet,
        timeout: float | None,
    ) -> httpx.Response:
        headers = {"Authorization": token_set.authorization}
        try:
            if timeout is None:
                return await self.client_session.request(
                    method, endpoint, headers=headers, json=json, timeout=HTTPX_TIMEOUT
                )
            async with asyncio.timeout(timeout):
                return await self.client_session.request(
                    method, endpoint, headers=headers, json=json, timeout=timeout
                )
        except (TimeoutError, httpx.TimeoutException) as exc:
            if timeout is None:
                raise StromerApiException(endpoint) from exc
            self.logger.error("Request to %s timed out after %s seconds", endpoint, timeout)
            raise StromerTimeoutException(endpoint, timeout) from exc
        except httpx.HTTPError as exc:
            self.logger.debug("Transport error calling %s: %s", endpoint, exc)
            raise StromerApiException(endpoint) from exc

    async def _async_call(
        self,
        path: str,
        method: str = "GET",
        json: dict | None = None,
        timeout: float | None = None,
    ) -> Any:
        endpoint = self.resource_url(path)
        try:
            await self._async_ensure_authenticated()
            await self._async_ensure_fresh()
            token_set = self.tokens.token_set
            response = await self._async_request(method, endpoint, json, token_set, timeout)

            if response.status_code == httpx.codes.UNAUTHORIZED:
                self.logger.debug("Token rejected by %s, refreshing", endpoint)
                token_set = await self.refresher.async_refresh(
                    stale_token=token_set.access_token
                )
                response = await self._async_request(
                    method, endpoint, json, token_set, timeout
                )
                if response.status_code == httpx.codes.UNAUTHORIZED:
                    self.logger.warning(
                        "Token rejected again by %s, session invalidated", endpoint
                    )
                    self.tokens.clear()
                    self._set_state(AuthState.INVALID)

            self.latest_call_code = response.status_code

            if response.is_error:
                raise StromerApiException(endpoint, response.status_code)

            return response.json() if response.content else None
        finally:
            self.tokens.persist()

    async def async_get_bikes(self) -> list[StromerBike]:
        """Get all bikes of the account."""
        response = await self._async_call("bike/")
        if isinstance(response, dict) and isinstance(data := response.get("data"), list):
            return [StromerBike.from_dict(bike) for bike in data]
        self.logger.error("Unexpected bike list response format: %s", response)
        return []

    async def async_get_bike_state(self, bike_id: str) -> dict:
        return unwrap_data(await self._async_call(f"bike/{bike_id}/state/"))

    async def async_get_bike_position(self, bike_id: str) -> dict:
        return unwrap_data(await self._async_call(f"bike/{bike_id}/position/"))

    async def async_get_bike_details(self, bike_id: str) -> dict:
        return unwrap_data(await self._async_call(f"bike/{bike_id}/"))

    async def async_get_statistics(
        self,
        bike_id: str,
        period: StatisticsPeriod,
        now: datetime | None = None,
    ) -> dict:
        """Get riding statistics for the year, month or day containing now."""
        now = now or datetime.now().astimezone()
        return unwrap_data(await self._async_call(f"bike/{bike_id}/{period.path(now)}"))

    async def async_set_light(self, bike_id: str, mode: LightMode) -> Any:
        return await self._async_call(
            f"bike/{bike_id}/light/", method="POST", json={"mode": str(mode)}
        )

    async def async_set_lock(self, bike_id: str, lock: bool) -> Any:
        return await self._async_call(
            f"bike/{bike_id}/settings/", method="POST", json={"lock": lock}
        )

    async def async_reset_trip_data(self, bike_id: str) -> None:
        """Reset the trip counter, giving up after TRIP_RESET_TIMEOUT seconds."""
        await self._async_call(
            f"bike/id/{bike_id}/trip_data/",
            method="DELETE",
            timeout=TRIP_RESET_TIMEOUT,
        )
        self.logger.debug("Trip data reset for bike %s", bike_id)
