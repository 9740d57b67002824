"""
Heatmap Builder for the uptime cache.

Derives the trailing-window day grid shown on the dashboard from the daily
aggregate counters. This is a local sampling statistic, independent of the
upstream SLA figures.
"""

import math
from collections.abc import Mapping, Sequence
from datetime import date, datetime, timedelta
from typing import Optional

from .aggregator import utc_day
from .enums import DayStatus, MonitorStatus
from .models import DailyAggregate, HeatmapDay, HeatmapRow, MonitorSnapshot


DEFAULT_WINDOW_DAYS = 30
DEFAULT_DOWN_THRESHOLD = 0.5


def window_days(today: date, days: int = DEFAULT_WINDOW_DAYS) -> list[date]:
    """The ``days`` calendar days ending with ``today``, oldest first."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def window_start(now: datetime, days: int = DEFAULT_WINDOW_DAYS) -> date:
    return utc_day(now) - timedelta(days=days - 1)


def percent(rate: float) -> int:
    """Whole percent, halves rounded up."""
    return int(math.floor(rate * 100 + 0.5))


def classify_day(
    checks_total: int,
    checks_failed: int,
    down_threshold: float = DEFAULT_DOWN_THRESHOLD,
) -> DayStatus:
    """
    Classify a tracked day from its counters.

    No checks at all means nothing is known about the day.
    """
    if checks_total <= 0:
        return DayStatus.UNKNOWN
    fail_rate = checks_failed / checks_total
    if fail_rate >= down_threshold:
        return DayStatus.DOWN
    if fail_rate > 0:
        return DayStatus.PARTIAL
    return DayStatus.UP


def build_day(
    day: date,
    aggregate: Optional[DailyAggregate],
    down_threshold: float = DEFAULT_DOWN_THRESHOLD,
) -> HeatmapDay:
    if aggregate is None:
        return HeatmapDay(day=day, status=DayStatus.UNKNOWN)

    return HeatmapDay(
        day=day,
        status=classify_day(aggregate.checks_total, aggregate.checks_failed, down_threshold),
        downtime_minutes=aggregate.downtime_minutes,
        checks_total=aggregate.checks_total,
        checks_failed=aggregate.checks_failed,
        fail_rate_percent=percent(aggregate.fail_rate),
    )


def heatmap_sort_key(row: HeatmapRow) -> tuple[int, str]:
    """Currently-down monitors first, then by name ignoring case."""
    return (0 if row.current_status == MonitorStatus.DOWN else 1, row.name.casefold())


def build_heatmap(
    monitors: Sequence[MonitorSnapshot],
    aggregates: Mapping[str, Sequence[DailyAggregate]],
    now: datetime,
    days: int = DEFAULT_WINDOW_DAYS,
    down_threshold: float = DEFAULT_DOWN_THRESHOLD,
) -> list[HeatmapRow]:
    """
    Build one row per monitor with exactly ``days`` entries, oldest first.

    Args:
        monitors: Current monitor list (defines rows and live status)
        aggregates: Daily aggregates keyed by monitor id
        now: Reference time; its UTC date is the last column
        days: Window length
        down_threshold: Fail rate at or above which a day is "down"

    Returns:
        Rows ordered with currently-down monitors first, then by name
    """
    dates = window_days(utc_day(now), days)
    rows = []
    for monitor in monitors:
        by_day = {a.day: a for a in aggregates.get(monitor.id, ())}
        rows.append(
            HeatmapRow(
                id=monitor.id,
                name=monitor.name,
                url=monitor.url,
                current_status=monitor.status,
                days=[build_day(d, by_day.get(d), down_threshold) for d in dates],
            )
        )
    rows.sort(key=heatmap_sort_key)
    return rows
