"""Rolling year/month/week/day distance baselines."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import Any, Self

_LOGGER = logging.getLogger(__name__)


class BaselineWindow(StrEnum):
    YEAR = "year"
    MONTH = "month"
    WEEK = "week"
    DAY = "day"

    def period_key(self, moment: datetime) -> tuple[int, ...]:
        """Calendar period containing moment; weeks follow ISO 8601."""
        match self:
            case BaselineWindow.YEAR:
                return (moment.year,)
            case BaselineWindow.MONTH:
                return (moment.year, moment.month)
            case BaselineWindow.WEEK:
                iso = moment.isocalendar()
                return (iso.year, iso.week)
            case BaselineWindow.DAY:
                return (moment.year, moment.month, moment.day)


@dataclass(frozen=True)
class BaselineAnchor:
    value: float = 0
    anchor: datetime | None = None


@dataclass(frozen=True)
class BaselineSet:
    """Per-bike rolling baselines plus the two user configured reference points."""

    year: BaselineAnchor = field(default_factory=BaselineAnchor)
    month: BaselineAnchor = field(default_factory=BaselineAnchor)
    week: BaselineAnchor = field(default_factory=BaselineAnchor)
    day: BaselineAnchor = field(default_factory=BaselineAnchor)
    user_total_baseline: float = 0
    odometer_baseline: float = 0

    def window(self, window: BaselineWindow) -> BaselineAnchor:
        return getattr(self, window.value)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Self:
        data = data or {}

        def anchor(window: BaselineWindow) -> BaselineAnchor:
            date = data.get(f"{window}_date")
            return BaselineAnchor(
                value=float(data.get(f"{window}_baseline") or 0),
                anchor=datetime.fromisoformat(date) if date else None,
            )

        return cls(
            year=anchor(BaselineWindow.YEAR),
            month=anchor(BaselineWindow.MONTH),
            week=anchor(BaselineWindow.WEEK),
            day=anchor(BaselineWindow.DAY),
            user_total_baseline=float(data.get("user_total_baseline") or 0),
            odometer_baseline=float(data.get("odometer_baseline") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "user_total_baseline": self.user_total_baseline,
            "odometer_baseline": self.odometer_baseline,
        }
        for window in BaselineWindow:
            current = self.window(window)
            data[f"{window}_baseline"] = current.value
            data[f"{window}_date"] = (
                current.anchor.isoformat() if current.anchor else None
            )
        return data


@dataclass(frozen=True)
class DistanceView:
    total: float
    year: float
    month: float
    week: float
    day: float
    user_total: float


def _localize(anchor: datetime, now: datetime) -> datetime:
    if anchor.tzinfo is None:
        return anchor.replace(tzinfo=now.tzinfo)
    if now.tzinfo is None:
        return anchor.astimezone().replace(tzinfo=None)
    return anchor.astimezone(now.tzinfo)


def needs_rollover(
    window: BaselineWindow, anchor: datetime | None, now: datetime
) -> bool:
    if anchor is None:
        return True
    return window.period_key(_localize(anchor, now)) != window.period_key(now)


def rollover_baselines(
    baselines: BaselineSet, current_total: float, now: datetime | None = None
) -> tuple[BaselineSet, list[BaselineWindow]]:
    """Reset every window whose anchor lies in an earlier period.

    Returns the updated baseline set together with the windows that rolled
    over. Windows are independent: a reset only touches its own baseline and
    anchor.
    """

    now = now or datetime.now().astimezone()
    changes: dict[str, BaselineAnchor] = {}
    rolled: list[BaselineWindow] = []

    for window in BaselineWindow:
        current = baselines.window(window)
        if needs_rollover(window, current.anchor, now):
            _LOGGER.debug(
                "New %s detected, resetting baseline from %s to %s",
                window,
                current.value,
                current_total,
            )
            changes[window.value] = BaselineAnchor(value=current_total, anchor=now)
            rolled.append(window)

    return replace(baselines, **changes), rolled


def user_total_distance(
    user_total_baseline: float, odometer_baseline: float, current_total: float
) -> float:
    """Distance on the user's own scale, offset by the odometer reference."""
    return user_total_baseline + (current_total - odometer_baseline)


def compute_distances(baselines: BaselineSet, current_total: float) -> DistanceView:
    return DistanceView(
        total=current_total,
        year=current_total - baselines.year.value,
        month=current_total - baselines.month.value,
        week=current_total - baselines.week.value,
        day=current_total - baselines.day.value,
        user_total=user_total_distance(
            baselines.user_total_baseline,
            baselines.odometer_baseline,
            current_total,
        ),
    )
