"""Token cache and single-flight refresh coordination."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from .const import STORE_KEY_TOKENS, TOKEN_REFRESH_WINDOW_MIN
from .exception import RefreshErrorKind, StromerRefreshException
from .models import TokenSet
from .store import SettingsStore

_LOGGER = logging.getLogger(__name__)


class TokenCache:
    """Holds the current token set and mirrors it to the settings store."""

    def __init__(
        self,
        store: SettingsStore | None = None,
        store_key: str = STORE_KEY_TOKENS,
        unique_id: str | None = None,
    ) -> None:
        self.store = store
        self.store_key = store_key
        self._token_set: TokenSet | None = None
        self.logger = _LOGGER.getChild(unique_id) if unique_id else _LOGGER

    @property
    def token_set(self) -> TokenSet | None:
        return self._token_set

    @property
    def access_token(self) -> str | None:
        return self._token_set.access_token if self._token_set else None

    @property
    def expires_at(self) -> datetime | None:
        return self._token_set.expires_at if self._token_set else None

    def load(self) -> TokenSet | None:
        """Restore a persisted token set, if any."""
        if self.store is None or not (data := self.store.get(self.store_key)):
            return None
        try:
            self._token_set = TokenSet.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            self.logger.warning("Ignoring invalid persisted token set: %s", exc)
            return None
        self.logger.debug("Restored token set valid until %s", self._token_set.expires_at)
        return self._token_set

    def set(self, token_set: TokenSet) -> None:
        self._token_set = token_set
        self.persist()

    def clear(self) -> None:
        self._token_set = None
        self.persist()

    def persist(self) -> None:
        if self.store is not None:
            self.store.set(
                self.store_key, self._token_set.to_dict() if self._token_set else None
            )

    def needs_refresh(self, now: datetime | None = None) -> bool:
        """Return True if the token expires within the refresh window."""
        if self._token_set is None:
            return False
        if self._token_set.expires_within(TOKEN_REFRESH_WINDOW_MIN, now):
            self.logger.debug(
                "Token expires at %s, time to refresh", self._token_set.expires_at
            )
            return True
        return False


class RefreshCoordinator:
    """Single-flight guard around the refresh token grant.

    Refresh tokens may be single use, so concurrent callers all await the
    one pending exchange instead of issuing their own.
    """

    def __init__(
        self,
        cache: TokenCache,
        refresh: Callable[[str | None], Awaitable[TokenSet]],
        on_success: Callable[[], None] | None = None,
        on_failure: Callable[[], None] | None = None,
        unique_id: str | None = None,
    ) -> None:
        self.cache = cache
        self._refresh = refresh
        self._on_success = on_success
        self._on_failure = on_failure
        self._pending: asyncio.Task[TokenSet] | None = None
        self.refresh_count = 0
        self.logger = _LOGGER.getChild(unique_id) if unique_id else _LOGGER

    @property
    def pending(self) -> bool:
        return self._pending is not None

    async def async_refresh(self, stale_token: str | None = None) -> TokenSet:
        """Refresh the token set, joining a refresh already in flight.

        When stale_token is given and the cache already holds a different
        access token, that token set is returned without a new exchange.
        """

        if self._pending is None:
            current = self.cache.token_set
            if (
                stale_token is not None
                and current is not None
                and current.access_token != stale_token
            ):
                self.logger.debug("Token already refreshed by another caller")
                return current
            self._pending = asyncio.ensure_future(self._async_do_refresh())
        else:
            self.logger.debug("Token refresh already in progress, waiting")

        return await asyncio.shield(self._pending)

    async def _async_do_refresh(self) -> TokenSet:
        try:
            current = self.cache.token_set
            if current is None or not current.refresh_token:
                raise StromerRefreshException(
                    "No refresh token available", RefreshErrorKind.NO_REFRESH_TOKEN
                )
            self.refresh_count += 1
            token_set = await self._refresh(current.refresh_token)
        except StromerRefreshException as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            self._fail(exc)
            raise StromerRefreshException(
                f"Token refresh failed: {exc}", RefreshErrorKind.REFRESH_FAILED
            ) from exc
        finally:
            self._pending = None

        self.cache.set(token_set)
        if self._on_success:
            self._on_success()
        self.logger.debug("Token refresh successful")
        return token_set

    def _fail(self, exc: Exception) -> None:
        self.logger.warning("Token refresh failed: %s", exc)
        self.cache.clear()
        if self._on_failure:
            self._on_failure()
