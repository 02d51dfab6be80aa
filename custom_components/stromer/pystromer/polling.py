"""Adaptive per-bike polling with activity based intervals and backoff."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import backoff
import httpx

from .const import (
    DEFAULT_ACTIVE_POLL_INTERVAL,
    DEFAULT_IDLE_POLL_INTERVAL,
    POLL_MAX_BACKOFF,
    POLL_MAX_RETRIES,
)
from .exception import (
    AuthErrorKind,
    StromerApiException,
    StromerAuthException,
    StromerException,
)
from .models import ActivityMode
from .utils import get_field_name_float

_LOGGER = logging.getLogger(__name__)

AUTH_FAILED_REASON = (
    "Authentication failed. Please check the account settings and update credentials."
)

PollFunction = Callable[[], Awaitable[ActivityMode]]
AvailableCallback = Callable[[], None]
UnavailableCallback = Callable[[str, bool], None]


def classify_activity(status: Mapping[str, Any] | None) -> ActivityMode:
    """Active when the theft alarm is set, the bike is unlocked or moving."""
    if not status:
        return ActivityMode.IDLE

    if status.get("theft_flag"):
        return ActivityMode.ACTIVE

    if (
        status.get("lock") == "unlocked"
        or status.get("lock_status") == "unlocked"
        or status.get("bike_lock") is False
    ):
        return ActivityMode.ACTIVE

    if _reported_speed(status) > 0:
        return ActivityMode.ACTIVE

    return ActivityMode.IDLE


def _reported_speed(status: Mapping[str, Any]) -> float:
    try:
        return (
            get_field_name_float("bike_speed", status)
            or get_field_name_float("speed", status)
            or 0.0
        )
    except ValueError:
        _LOGGER.debug("Ignoring non-numeric speed in bike status")
        return 0.0


def backoff_delay(retry_count: int) -> float:
    """Seconds to wait after retry_count consecutive failures (1, 2, 4 ... 60)."""
    wait_gen = backoff.expo(max_value=POLL_MAX_BACKOFF)
    next(wait_gen)
    for _ in range(max(retry_count, 1) - 1):
        next(wait_gen)
    return next(wait_gen)


def is_auth_failure(exc: BaseException) -> bool:
    """Failures that need new credentials rather than another attempt."""
    if isinstance(exc, StromerAuthException):
        return exc.kind == AuthErrorKind.INVALID_CREDENTIALS
    if isinstance(exc, StromerApiException):
        return exc.status == httpx.codes.UNAUTHORIZED
    return False


@dataclass
class PollState:
    bike_id: str
    poll: PollFunction
    on_available: AvailableCallback | None = None
    on_unavailable: UnavailableCallback | None = None
    mode: ActivityMode = ActivityMode.IDLE
    retry_count: int = 0
    max_retries: int = POLL_MAX_RETRIES
    delay: float | None = None
    available: bool = True
    unavailable_reason: str | None = None
    stopped: bool = True
    timer: asyncio.TimerHandle | None = None
    task: asyncio.Task | None = None


class PollingEngine:
    """Schedules one polling cycle at a time for every registered bike."""

    def __init__(
        self,
        active_interval: timedelta = DEFAULT_ACTIVE_POLL_INTERVAL,
        idle_interval: timedelta = DEFAULT_IDLE_POLL_INTERVAL,
        max_retries: int = POLL_MAX_RETRIES,
        unique_id: str | None = None,
    ) -> None:
        self.active_interval = active_interval
        self.idle_interval = idle_interval
        self.max_retries = max_retries
        self.states: dict[str, PollState] = {}
        self.logger = _LOGGER.getChild(unique_id) if unique_id else _LOGGER

    def interval(self, mode: ActivityMode) -> timedelta:
        return self.active_interval if mode == ActivityMode.ACTIVE else self.idle_interval

    def add_bike(
        self,
        bike_id: str,
        poll: PollFunction,
        on_available: AvailableCallback | None = None,
        on_unavailable: UnavailableCallback | None = None,
    ) -> PollState:
        if bike_id in self.states:
            self.stop(bike_id)
        state = self.states[bike_id] = PollState(
            bike_id=bike_id,
            poll=poll,
            on_available=on_available,
            on_unavailable=on_unavailable,
            max_retries=self.max_retries,
        )
        return state

    def remove_bike(self, bike_id: str) -> None:
        self.stop(bike_id)
        self.states.pop(bike_id, None)

    def start(self, bike_id: str, delay: float | None = None) -> None:
        """(Re)start polling, replacing any pending timer."""
        state = self.states[bike_id]
        state.stopped = False
        if delay is None:
            delay = self.interval(state.mode).total_seconds()
        self._schedule(state, delay)

    def stop(self, bike_id: str) -> None:
        """Cancel the pending timer and any cycle in flight."""
        if (state := self.states.get(bike_id)) is None:
            return
        state.stopped = True
        self._cancel_timer(state)
        if state.task is not None and not state.task.done():
            if state.task is not asyncio.current_task():
                state.task.cancel()
        state.task = None
        self.logger.debug("Stopped polling bike %s", bike_id)

    def stop_all(self) -> None:
        for bike_id in list(self.states):
            self.stop(bike_id)

    def set_intervals(self, active_interval: timedelta, idle_interval: timedelta) -> None:
        """Apply new intervals and restart every running schedule."""
        self.active_interval = active_interval
        self.idle_interval = idle_interval
        for bike_id, state in self.states.items():
            if not state.stopped:
                self.start(bike_id)

    async def async_start(self, bike_id: str) -> None:
        """Start polling with an immediate first cycle."""
        self.states[bike_id].stopped = False
        await self.async_poll_now(bike_id)

    async def async_poll_now(self, bike_id: str) -> None:
        """Run a cycle immediately; the cycle schedules the next one."""
        state = self.states[bike_id]
        if state.stopped:
            self.logger.debug("Polling bike %s is stopped, skipping poll", bike_id)
            return
        self._cancel_timer(state)
        await self._async_run_cycle(state)

    def _cancel_timer(self, state: PollState) -> None:
        if state.timer is not None:
            state.timer.cancel()
            state.timer = None

    def _schedule(self, state: PollState, delay: float) -> None:
        self._cancel_timer(state)
        if state.stopped:
            return
        state.delay = delay
        self.logger.debug("Next poll for bike %s in %.0f seconds", state.bike_id, delay)
        state.timer = asyncio.get_running_loop().call_later(
            delay, self._fire, state.bike_id
        )

    def _fire(self, bike_id: str) -> None:
        state = self.states.get(bike_id)
        if state is None or state.stopped:
            return
        state.timer = None
        state.task = asyncio.get_running_loop().create_task(
            self._async_run_cycle(state), name=f"stromer_poll_{bike_id}"
        )

    async def _async_run_cycle(self, state: PollState) -> None:
        if state.stopped:
            return
        try:
            mode = await state.poll()
        except asyncio.CancelledError:
            raise
        except StromerException as exc:
            self._handle_failure(state, exc)
        except Exception as exc:
            self.logger.exception("Unexpected error polling bike %s", state.bike_id)
            self._handle_failure(state, exc)
        else:
            self._handle_success(state, mode)
        finally:
            if state.task is asyncio.current_task():
                state.task = None

    def _handle_success(self, state: PollState, mode: ActivityMode) -> None:
        if state.stopped:
            return
        state.retry_count = 0
        if mode != state.mode:
            self.logger.debug("Bike %s activity changed to %s", state.bike_id, mode)
            state.mode = mode
        if not state.available:
            state.available = True
            state.unavailable_reason = None
            if state.on_available:
                state.on_available()
        self._schedule(state, self.interval(mode).total_seconds())

    def _handle_failure(self, state: PollState, exc: BaseException) -> None:
        if state.stopped:
            return

        if is_auth_failure(exc):
            self.logger.error(
                "Authentication failed for bike %s, polling stopped: %s",
                state.bike_id,
                exc,
            )
            self._mark_unavailable(state, AUTH_FAILED_REASON, True)
            state.stopped = True
            self._cancel_timer(state)
            return

        state.retry_count += 1
        if state.retry_count >= state.max_retries:
            self._mark_unavailable(state, f"Failed to connect to bike: {exc}", False)

        delay = backoff_delay(state.retry_count)
        self.logger.warning(
            "Polling bike %s failed (retry %d/%d), backing off %s seconds: %s",
            state.bike_id,
            state.retry_count,
            state.max_retries,
            delay,
            exc,
        )
        self._schedule(state, delay)

    def _mark_unavailable(self, state: PollState, reason: str, auth_failed: bool) -> None:
        state.available = False
        state.unavailable_reason = reason
        if state.on_unavailable:
            state.on_unavailable(reason, auth_failed)
