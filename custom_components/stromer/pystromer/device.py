"""Polling cycle for a single bike."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from .baseline import (
    BaselineSet,
    BaselineWindow,
    DistanceView,
    compute_distances,
    rollover_baselines,
)
from .const import STORE_KEY_BASELINES
from .models import (
    ActivityMode,
    LightMode,
    StromerBikePosition,
    StromerBikeSignals,
    StromerBikeState,
)
from .polling import AvailableCallback, PollingEngine, UnavailableCallback, classify_activity
from .store import SettingsStore
from .stromer import StromerApi

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StromerBikeSnapshot:
    bike_id: str
    timestamp: datetime
    status: dict[str, Any] | None = None
    state: StromerBikeState | None = None
    position: StromerBikePosition | None = None
    details: dict[str, Any] | None = None
    distances: DistanceView | None = None
    signals: StromerBikeSignals = field(default_factory=StromerBikeSignals)
    mode: ActivityMode = ActivityMode.IDLE
    rolled_windows: tuple[BaselineWindow, ...] = ()

    @property
    def location(self) -> str | None:
        return self.position.location if self.position else None


class StromerBikeController:
    """Fetches, normalizes and accounts one bike's data on each cycle."""

    def __init__(
        self,
        api: StromerApi,
        bike_id: str,
        store: SettingsStore | None = None,
        on_update: Callable[[StromerBikeSnapshot], None] | None = None,
    ) -> None:
        self.api = api
        self.bike_id = bike_id
        self.store = store
        self.on_update = on_update
        self.engine: PollingEngine | None = None
        self.snapshot: StromerBikeSnapshot | None = None
        self.last_state: StromerBikeState | None = None
        self.logger = _LOGGER.getChild(bike_id)
        self._baselines = BaselineSet()

    @property
    def store_key(self) -> str:
        return STORE_KEY_BASELINES.format(bike_id=self.bike_id)

    def load_baselines(self) -> BaselineSet:
        if self.store is not None and (data := self.store.get(self.store_key)):
            try:
                self._baselines = BaselineSet.from_dict(data)
            except (TypeError, ValueError) as exc:
                self.logger.warning("Ignoring invalid stored baselines: %s", exc)
        return self._baselines

    def save_baselines(self, baselines: BaselineSet) -> None:
        self._baselines = baselines
        if self.store is not None:
            self.store.set(self.store_key, baselines.to_dict())

    def set_reference_baselines(
        self, user_total_baseline: float, odometer_baseline: float
    ) -> None:
        """Set the user configured total and odometer reference points."""
        baselines = self.load_baselines()
        if (
            baselines.user_total_baseline != user_total_baseline
            or baselines.odometer_baseline != odometer_baseline
        ):
            self.save_baselines(
                replace(
                    baselines,
                    user_total_baseline=user_total_baseline,
                    odometer_baseline=odometer_baseline,
                )
            )

    def attach(
        self,
        engine: PollingEngine,
        on_available: AvailableCallback | None = None,
        on_unavailable: UnavailableCallback | None = None,
    ) -> None:
        self.engine = engine
        engine.add_bike(self.bike_id, self.async_poll, on_available, on_unavailable)

    async def async_poll(self) -> ActivityMode:
        return (await self.async_update()).mode

    async def async_update(self, now: datetime | None = None) -> StromerBikeSnapshot:
        """Fetch state, position and details in parallel and build a snapshot.

        A failed individual fetch is dropped; the cycle fails only when
        neither state nor position could be fetched.
        """

        now = now or datetime.now().astimezone()
        results = await asyncio.gather(
            self.api.async_get_bike_state(self.bike_id),
            self.api.async_get_bike_position(self.bike_id),
            self.api.async_get_bike_details(self.bike_id),
            return_exceptions=True,
        )

        status, position, details = (
            self._drop_failure(name, result)
            for name, result in zip(("status", "position", "details"), results)
        )

        if status is None and position is None:
            if isinstance(results[0], Exception):
                raise results[0]
            if isinstance(results[1], Exception):
                raise results[1]

        state = StromerBikeState.from_dict(status) if isinstance(status, dict) else None

        distances = None
        rolled: list[BaselineWindow] = []
        if state is not None:
            baselines, rolled = rollover_baselines(
                self.load_baselines(), state.total_distance, now
            )
            if rolled:
                self.save_baselines(baselines)
            distances = compute_distances(baselines, state.total_distance)

        previous = self.last_state
        snapshot = StromerBikeSnapshot(
            bike_id=self.bike_id,
            timestamp=now,
            status=status,
            state=state,
            position=(
                StromerBikePosition.from_dict(position)
                if isinstance(position, dict)
                else None
            ),
            details=details,
            distances=distances,
            signals=(
                StromerBikeSignals.between(previous, state)
                if state is not None
                else StromerBikeSignals()
            ),
            mode=classify_activity(status),
            rolled_windows=tuple(rolled),
        )

        self.snapshot = snapshot
        if state is not None:
            self.last_state = state
        if self.on_update:
            self.on_update(snapshot)
        return snapshot

    def _drop_failure(self, name: str, result: Any) -> Any:
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            self.logger.error("Failed to get bike %s: %s", name, result)
            return None
        return result

    async def _async_refresh(self) -> None:
        if self.engine is not None:
            await self.engine.async_poll_now(self.bike_id)
        else:
            await self.async_update()

    async def async_set_light(self, mode: LightMode) -> None:
        await self.api.async_set_light(self.bike_id, mode)
        await self._async_refresh()

    async def async_set_lock(self, lock: bool) -> None:
        await self.api.async_set_lock(self.bike_id, lock)
        await self._async_refresh()

    async def async_reset_trip_data(self) -> None:
        await self.api.async_reset_trip_data(self.bike_id)
        await self._async_refresh()
