"""
Refresh Orchestrator for the uptime cache.

This module provides the orchestration layer that runs one refresh cycle
end to end. It integrates:
- Upstream paging of monitors and incidents
- Write-through of the monitor snapshot before the in-memory swap
- Daily aggregate sampling, one observation per monitor per cycle
- The single-flight guard and live paging progress

A cycle is started by the scheduler, by an operator, or opportunistically
by every dashboard read; concurrent starts collapse into one cycle.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from .aggregator import DailyAggregator
from .audit_logger import AuditLogger
from .config import SystemConfig
from .enums import Collection, LogLevel, ResourceKind
from .exceptions import StoreError, UpstreamError, UptimeCacheError
from .models import IncidentSnapshot, MonitorSnapshot
from .pager import UpstreamPager
from .state import MonitorCache, RefreshState
from .store import Store


@dataclass
class RefreshOutcome:
    """Summary of one refresh attempt."""

    started: bool
    monitors_fetched: int = 0
    incidents_fetched: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.started and not self.errors

    def to_dict(self) -> dict:
        return {
            "started": self.started,
            "monitorsFetched": self.monitors_fetched,
            "incidentsFetched": self.incidents_fetched,
            "errors": list(self.errors),
            "durationMs": self.duration_ms,
        }


class RefreshOrchestrator:
    """
    Runs refresh cycles against the upstream and publishes their results.

    Readers never wait on a cycle: they see the last swapped CacheSnapshot
    until the next one is complete.
    """

    def __init__(
        self,
        config: SystemConfig,
        pager: UpstreamPager,
        store: Store,
        aggregator: Optional[DailyAggregator] = None,
        state: Optional[RefreshState] = None,
        cache: Optional[MonitorCache] = None,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the refresh orchestrator.

        Args:
            config: System configuration
            pager: Pager over the upstream API
            store: Durable store the cycle writes through to
            aggregator: Daily aggregator (built over ``store`` if omitted)
            state: Shared refresh state (created if omitted)
            cache: Shared in-memory cache (created if omitted)
            logger: Optional audit logger for logging
            clock: Returns the current time; UTC wall clock by default
        """
        self._config = config
        self._pager = pager
        self._store = store
        self._aggregator = aggregator or DailyAggregator(store, logger)
        self._state = state or RefreshState()
        self._cache = cache or MonitorCache()
        self._logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._background: set[asyncio.Task] = set()
        # set while a trigger() task holds the guard but has not started running
        self._claim_pending = False

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def cache(self) -> MonitorCache:
        return self._cache

    @property
    def store(self) -> Store:
        return self._store

    def load_from_store(self) -> bool:
        """
        Hydrate the in-memory cache from the store.

        Returns:
            True if the store held monitors
        """
        if not self._store.has_data():
            return False

        monitors = [MonitorSnapshot.from_upstream(m) for m in self._store.get_all(Collection.MONITORS)]
        incidents = [IncidentSnapshot.from_upstream(i) for i in self._store.get_all(Collection.INCIDENTS)]
        self._cache.load(monitors, incidents, self._store.get_last_updated())
        self._log_info(
            "RefreshOrchestrator",
            f"Loaded {len(monitors)} monitors and {len(incidents)} incidents from store",
            {"monitors": len(monitors), "incidents": len(incidents)},
        )
        return True

    def initialize_today(self, now: Optional[datetime] = None) -> int:
        """Give every cached monitor a row for today if it has none."""
        monitors = self._cache.snapshot.monitors
        if not monitors:
            return 0
        return self._aggregator.initialize_today(monitors, now or self._clock())

    def trigger(self) -> bool:
        """
        Start a cycle in the background unless one is already running.

        The guard is claimed before the task is created, so of several
        triggers in the same loop tick only the first reports True.
        Must be called from within a running event loop.
        """
        if not self._state.try_begin():
            return False
        self._claim_pending = True
        task = asyncio.create_task(self._run_claimed())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(self._release_unstarted)
        return True

    def _release_unstarted(self, task: asyncio.Task) -> None:
        if self._claim_pending:
            self._claim_pending = False
            self._state.finish()

    async def wait_idle(self) -> None:
        """Wait for every background cycle started by trigger()."""
        while self._background:
            await asyncio.gather(*list(self._background))

    async def refresh(self) -> RefreshOutcome:
        """
        Run one refresh cycle if none is running.

        This is the main entry point for refreshing. It:
        1. Pages monitors to exhaustion
        2. Writes them through to the store, then swaps the cache
        3. Records one daily observation per monitor
        4. Replaces the incident collection (best effort)

        Failures in steps 1 and 2 abort the cycle and leave cache and
        store as they were.

        Returns:
            RefreshOutcome; ``started`` is False when a cycle was in flight
        """
        if not self._state.try_begin():
            self._log_info("RefreshOrchestrator", "Refresh already in progress", {})
            return RefreshOutcome(started=False)
        return await self._run_claimed()

    async def _run_claimed(self) -> RefreshOutcome:
        # caller holds the single-flight guard; it is released here
        self._claim_pending = False
        start_time = time.perf_counter()
        outcome = RefreshOutcome(started=True)
        timeout = self._config.refresh.cycle_timeout_seconds

        try:
            if timeout > 0:
                await asyncio.wait_for(self._run_cycle(outcome), timeout)
            else:
                await self._run_cycle(outcome)
        except asyncio.TimeoutError:
            error = UpstreamError(
                code="timeout",
                message=f"Refresh cycle exceeded {timeout}s",
            )
            outcome.errors.append(error.message)
            self._log_failure("Refresh cycle timed out", error)
        except UptimeCacheError as e:
            outcome.errors.append(e.message)
            self._log_failure("Refresh cycle aborted", e)
        finally:
            self._state.finish()
            outcome.duration_ms = (time.perf_counter() - start_time) * 1000

        self._log_info(
            "RefreshOrchestrator",
            f"Refresh finished: {outcome.monitors_fetched} monitors, "
            f"{outcome.incidents_fetched} incidents",
            {
                "monitors": outcome.monitors_fetched,
                "incidents": outcome.incidents_fetched,
                "errors": len(outcome.errors),
                "duration_ms": outcome.duration_ms,
            },
        )
        return outcome

    async def _run_cycle(self, outcome: RefreshOutcome) -> None:
        refresh_config = self._config.refresh

        raw_monitors: list[dict] = []
        async for batch in self._pager.fetch_all_pages(
            ResourceKind.MONITORS,
            per_page=refresh_config.monitor_page_size,
            delay_seconds=refresh_config.page_delay_seconds,
        ):
            raw_monitors.extend(batch.items)
            self._state.advance(len(batch.items), batch.has_next, refresh_config.monitor_page_size)

        now = self._clock()
        monitors = [MonitorSnapshot.from_upstream(item) for item in raw_monitors]

        # Disk first: a failed write must leave the previous cache visible.
        self._store.save_monitors(raw_monitors, now=now)
        self._cache.replace_monitors(monitors, now.isoformat())
        outcome.monitors_fetched = len(monitors)

        try:
            self._aggregator.record_observations(monitors, now)
        except StoreError as e:
            outcome.errors.append(e.message)
            self._log_failure("Failed to record daily observations", e)

        await self._refresh_incidents(outcome, now)

    async def _refresh_incidents(self, outcome: RefreshOutcome, now: datetime) -> None:
        refresh_config = self._config.refresh
        try:
            raw_incidents = await self._pager.collect(
                ResourceKind.INCIDENTS,
                per_page=refresh_config.incident_page_size,
                max_pages=refresh_config.incident_max_pages,
                delay_seconds=refresh_config.page_delay_seconds,
            )
            incidents = [IncidentSnapshot.from_upstream(i) for i in raw_incidents]
            self._store.replace_all(Collection.INCIDENTS, raw_incidents, now=now)
        except UptimeCacheError as e:
            outcome.errors.append(e.message)
            self._log_failure("Failed to refresh incidents", e)
            return

        self._cache.replace_incidents(incidents)
        outcome.incidents_fetched = len(raw_incidents)

    def _log_failure(self, message: str, error: UptimeCacheError) -> None:
        if not self._logger:
            return
        if isinstance(error, UpstreamError):
            self._logger.log_error(
                "RefreshOrchestrator",
                message,
                error=error,
                request_url=error.url,
                response_status_code=error.status_code or None,
            )
        else:
            self._logger.log_error("RefreshOrchestrator", message, error=error)

    def _log_info(self, component: str, message: str, data: dict) -> None:
        """Log an info message if logger is available."""
        if self._logger:
            self._logger.log(LogLevel.INFO, component, message, data)

    @property
    def config(self) -> SystemConfig:
        """Get the system configuration."""
        return self._config
