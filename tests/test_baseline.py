from datetime import datetime, timedelta, timezone

from pystromer.baseline import (
    BaselineAnchor,
    BaselineSet,
    BaselineWindow,
    compute_distances,
    needs_rollover,
    rollover_baselines,
    user_total_distance,
)

CET = timezone(timedelta(hours=1))


def _anchored(moment: datetime, value: float = 100) -> BaselineSet:
    anchor = BaselineAnchor(value=value, anchor=moment)
    return BaselineSet(year=anchor, month=anchor, week=anchor, day=anchor)


def test_fresh_baselines_all_roll():
    now = datetime(2026, 10, 18, 8, 0, tzinfo=CET)

    baselines, rolled = rollover_baselines(BaselineSet(), 1500, now)

    assert rolled == list(BaselineWindow)
    for window in BaselineWindow:
        assert baselines.window(window) == BaselineAnchor(value=1500, anchor=now)


def test_no_rollover_within_same_day():
    morning = datetime(2026, 10, 18, 8, 0, tzinfo=CET)
    evening = datetime(2026, 10, 18, 21, 0, tzinfo=CET)
    baselines = _anchored(morning)

    updated, rolled = rollover_baselines(baselines, 1520, evening)

    assert rolled == []
    assert updated == baselines


def test_year_rollover_leaves_other_windows_alone():
    now = datetime(2026, 10, 18, 8, 0, tzinfo=CET)
    current = BaselineAnchor(value=1400, anchor=now)
    baselines = BaselineSet(
        year=BaselineAnchor(value=900, anchor=datetime(2025, 12, 31, tzinfo=CET)),
        month=current,
        week=current,
        day=current,
        user_total_baseline=100,
        odometer_baseline=50,
    )

    updated, rolled = rollover_baselines(baselines, 1500, now)

    assert rolled == [BaselineWindow.YEAR]
    assert updated.year == BaselineAnchor(value=1500, anchor=now)
    assert updated.month == current
    assert updated.week == current
    assert updated.day == current
    assert updated.user_total_baseline == 100
    assert updated.odometer_baseline == 50


def test_month_boundary_inside_iso_week():
    # Wednesday 30 September and Thursday 1 October share ISO week 40
    baselines = _anchored(datetime(2026, 9, 30, 20, 0, tzinfo=CET))

    _, rolled = rollover_baselines(
        baselines, 1500, datetime(2026, 10, 1, 7, 0, tzinfo=CET)
    )

    assert rolled == [BaselineWindow.MONTH, BaselineWindow.DAY]


def test_iso_week_spans_new_year():
    # 31 December 2026 and 1 January 2027 both fall in ISO week 53 of 2026
    baselines = _anchored(datetime(2026, 12, 31, 18, 0, tzinfo=CET))

    _, rolled = rollover_baselines(
        baselines, 1500, datetime(2027, 1, 1, 9, 0, tzinfo=CET)
    )

    assert rolled == [BaselineWindow.YEAR, BaselineWindow.MONTH, BaselineWindow.DAY]


def test_new_iso_week_on_monday():
    sunday = datetime(2026, 10, 18, 22, 0, tzinfo=CET)
    monday = datetime(2026, 10, 19, 6, 0, tzinfo=CET)

    assert needs_rollover(BaselineWindow.WEEK, sunday, monday)
    assert not needs_rollover(BaselineWindow.MONTH, sunday, monday)


def test_anchor_compared_in_local_time():
    # 23:30 UTC on 17 October is already 18 October in CET
    anchor = datetime(2026, 10, 17, 23, 30, tzinfo=timezone.utc)
    now = datetime(2026, 10, 18, 10, 0, tzinfo=CET)

    assert not needs_rollover(BaselineWindow.DAY, anchor, now)


def test_naive_anchor():
    anchor = datetime(2026, 10, 17, 12, 0)
    now = datetime(2026, 10, 18, 10, 0, tzinfo=CET)

    assert needs_rollover(BaselineWindow.DAY, anchor, now)
    assert not needs_rollover(BaselineWindow.WEEK, anchor, now)


def test_user_total_distance():
    assert user_total_distance(100, 50, 70) == 120
    assert user_total_distance(0, 0, 1500) == 1500


def test_compute_distances():
    baselines = BaselineSet(
        year=BaselineAnchor(1000),
        month=BaselineAnchor(1400),
        week=BaselineAnchor(1450),
        day=BaselineAnchor(1490),
        user_total_baseline=2000,
        odometer_baseline=1200,
    )

    distances = compute_distances(baselines, 1500)

    assert distances.total == 1500
    assert distances.year == 500
    assert distances.month == 100
    assert distances.week == 50
    assert distances.day == 10
    assert distances.user_total == 2300


def test_baseline_set_restore():
    now = datetime(2026, 10, 18, 8, 0, tzinfo=CET)
    baselines, _ = rollover_baselines(
        BaselineSet(user_total_baseline=10, odometer_baseline=5), 1500, now
    )

    data = baselines.to_dict()

    assert data["year_baseline"] == 1500
    assert data["week_date"] == now.isoformat()
    assert BaselineSet.from_dict(data) == baselines
    assert BaselineSet.from_dict(None) == BaselineSet()
