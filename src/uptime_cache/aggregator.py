"""
Daily Aggregator for the uptime cache.

Turns the monitor statuses seen by each completed refresh cycle into
increments of the per-monitor-per-day counters. One refresh cycle yields
one observation per monitor, so the sampling cadence follows the refresh
interval rather than the upstream check frequency.
"""

from collections.abc import Iterable
from datetime import date, datetime, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .enums import LogLevel, MonitorStatus
from .models import MonitorSnapshot, Observation
from .store import Store


def utc_day(now: datetime) -> date:
    """Calendar date of ``now`` in UTC (naive datetimes are taken as UTC)."""
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(timezone.utc).date()


def is_failed_check(status: str) -> bool:
    return status == MonitorStatus.DOWN.value


class DailyAggregator:
    """Merges refresh observations into the store's daily counters."""

    def __init__(self, store: Store, logger: Optional[AuditLogger] = None) -> None:
        self._store = store
        self._logger = logger

    def record_observation(self, monitor_id: str, status: str, now: datetime) -> None:
        """Add one sample for ``monitor_id`` on the UTC day of ``now``."""
        self._store.merge_daily_aggregate(
            monitor_id,
            utc_day(now),
            status,
            is_failed_check(status),
            now=now,
        )

    def record_observations(self, monitors: Iterable[MonitorSnapshot], now: datetime) -> int:
        """
        Add one sample per monitor in a single transaction.

        Returns:
            Number of observations recorded
        """
        day = utc_day(now)
        observations = [
            Observation(
                monitor_id=m.id,
                day=day,
                status=m.status.value,
                is_failed=is_failed_check(m.status.value),
            )
            for m in monitors
        ]
        recorded = self._store.merge_daily_aggregates(observations, now=now)
        if self._logger:
            failed = sum(1 for o in observations if o.is_failed)
            self._logger.log(
                LogLevel.DEBUG,
                "DailyAggregator",
                f"Recorded {recorded} observations for {day.isoformat()}",
                {"day": day.isoformat(), "observations": recorded, "failed": failed},
            )
        return recorded

    def initialize_if_absent(self, monitor_id: str, status: str, now: datetime) -> bool:
        """
        Give ``monitor_id`` a zero-counter row for today if it has none.

        Returns:
            True if a row was created
        """
        return self._store.initialize_daily_aggregate(monitor_id, utc_day(now), status, now=now)

    def initialize_today(self, monitors: Iterable[MonitorSnapshot], now: datetime) -> int:
        """
        Ensure every known monitor has a row for today.

        Returns:
            Number of rows created
        """
        pairs = [(m.id, m.status.value) for m in monitors]
        created = self._store.initialize_daily_aggregates(pairs, utc_day(now), now=now)
        if self._logger and created:
            self._logger.log(
                LogLevel.INFO,
                "DailyAggregator",
                f"Initialized today's row for {created} monitors",
                {"created": created, "known": len(pairs)},
            )
        return created
