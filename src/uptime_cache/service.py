"""
Dashboard service for the uptime cache.

The facade dashboard front-ends talk to. Reads are served from the
in-memory snapshot and never wait on the upstream; every dashboard read
also kicks off a background refresh if none is running. Passthrough calls
(heartbeats, SLA, response times, URL proxy) go straight to the upstream.
"""

import asyncio
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from .aggregator import DailyAggregator
from .audit_logger import AuditLogger
from .config import SystemConfig
from .dashboard import build_dashboard_summary, build_incident_detail, build_status
from .enums import LogLevel
from .exceptions import UpstreamError
from .heatmap import build_heatmap, window_start
from .orchestrator import RefreshOrchestrator, RefreshOutcome
from .pager import UpstreamPager
from .retry_manager import RetryManager
from .scheduler import Scheduler
from .store import Store
from .uptime_client import UptimeClient, default_period


REFRESH_TASK = "refresh"


class DashboardService:
    """
    Wires client, pager, store, aggregator and orchestrator together.

    Use as an async context manager, or call start()/stop() explicitly.
    """

    def __init__(
        self,
        config: SystemConfig,
        store: Optional[Store] = None,
        client: Optional[UptimeClient] = None,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the dashboard service.

        Args:
            config: System configuration
            store: Durable store (opened at the configured path if omitted)
            client: Upstream client (built from config if omitted)
            logger: Optional audit logger for logging
            clock: Returns the current time; UTC wall clock by default
            sleep: Awaitable used for inter-request delays
        """
        self._config = config
        self._logger = logger
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._store = store or Store(config.persistence.database_path)
        self._client = client or UptimeClient(
            api_url=config.upstream.api_url,
            api_token=config.upstream.api_token,
            timeout=config.upstream.timeout_seconds,
            proxy_timeout=config.upstream.proxy_timeout_seconds,
        )
        self._pager = UpstreamPager(
            self._client,
            retry_manager=RetryManager(config.retry, sleep=sleep),
            logger=logger,
            sleep=sleep,
        )
        self._aggregator = DailyAggregator(self._store, logger)
        self._orchestrator = RefreshOrchestrator(
            config,
            self._pager,
            self._store,
            aggregator=self._aggregator,
            logger=logger,
            clock=self._clock,
        )
        self._scheduler = Scheduler(logger=logger)
        self._scheduler_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    async def __aenter__(self) -> "DashboardService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    @property
    def orchestrator(self) -> RefreshOrchestrator:
        return self._orchestrator

    @property
    def store(self) -> Store:
        return self._store

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    async def start(self, initial_refresh: bool = True, schedule: bool = True) -> Optional[RefreshOutcome]:
        """
        Bring the service up.

        Loads the last snapshot from the store, seeds today's aggregate rows,
        runs a first refresh and starts the interval scheduler.

        Returns:
            The first refresh's outcome, or None when it was skipped
        """
        self._orchestrator.load_from_store()
        self._orchestrator.initialize_today()

        outcome = None
        if initial_refresh:
            outcome = await self._orchestrator.refresh()

        if schedule:
            self._scheduler.schedule(
                REFRESH_TASK,
                self._config.refresh.interval_seconds,
                self._scheduled_refresh,
            )
            self._stop_event = asyncio.Event()
            self._scheduler_task = asyncio.create_task(self._scheduler.run(self._stop_event))
            self._log_info(
                "DashboardService",
                "Refresh scheduler started",
                {"interval_seconds": self._config.refresh.interval_seconds},
            )
        return outcome

    async def stop(self) -> None:
        """Stop the scheduler, wait for background cycles and release resources."""
        if self._stop_event is not None:
            self._stop_event.set()
        self._scheduler.stop()
        if self._scheduler_task is not None:
            await self._scheduler_task
            self._scheduler_task = None
        self._scheduler.unschedule(REFRESH_TASK)
        await self._orchestrator.wait_idle()
        await self._client.close()
        self._store.close()

    async def _scheduled_refresh(self) -> None:
        await self._orchestrator.refresh()

    # ------------------------------------------------------------------
    # Cached reads
    # ------------------------------------------------------------------

    def get_dashboard(self, trigger_refresh: bool = True) -> dict[str, Any]:
        """
        Current dashboard summary.

        Starts a background refresh unless one is running or
        ``trigger_refresh`` is False; the answer never waits for it.
        """
        if trigger_refresh:
            self._orchestrator.trigger()
        state = self._orchestrator.state
        return build_dashboard_summary(
            self._orchestrator.cache.snapshot,
            self._config.categories,
            state.is_loading,
            state.progress,
            now=self._clock(),
        )

    def get_status(self) -> dict[str, Any]:
        state = self._orchestrator.state
        return build_status(self._orchestrator.cache.snapshot, state.is_loading, state.progress)

    def get_heatmap(self) -> list[dict[str, Any]]:
        """Per-monitor day grid for the configured window."""
        now = self._clock()
        days = self._config.heatmap.window_days
        aggregates = self._store.get_daily_aggregates(window_start(now, days))
        rows = build_heatmap(
            self._orchestrator.cache.snapshot.monitors,
            aggregates,
            now,
            days=days,
            down_threshold=self._config.heatmap.down_threshold,
        )
        return [row.to_dict() for row in rows]

    def force_refresh(self) -> dict[str, Any]:
        if self._orchestrator.trigger():
            return {"success": True, "message": "Refresh started"}
        return {"success": False, "message": "Already loading"}

    async def refresh_now(self) -> RefreshOutcome:
        """Run one refresh cycle and wait for it."""
        return await self._orchestrator.refresh()

    def get_incident_detail(self, incident_id: str) -> Optional[dict[str, Any]]:
        return build_incident_detail(self._orchestrator.cache.snapshot, incident_id)

    def get_config(self) -> dict[str, Any]:
        """Client-facing settings; the API token is never included."""
        return {"betterStackTeamId": self._config.upstream.team_id}

    # ------------------------------------------------------------------
    # Upstream passthroughs
    # ------------------------------------------------------------------

    async def get_heartbeats(self) -> list[dict[str, Any]]:
        return await self._client.get_heartbeats()

    async def get_sla(
        self,
        monitor_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> dict[str, Any]:
        return await self._client.get_sla(monitor_id, date_from, date_to)

    async def get_response_times(
        self,
        monitor_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> Any:
        return await self._client.get_response_times(monitor_id, date_from, date_to)

    async def proxy(self, url: str, auth_value: Optional[str] = None) -> dict[str, Any]:
        return await self._client.proxy_get(url, auth_value)

    async def get_sla_report(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        SLA for every cached monitor, least available first.

        Monitors are queried one by one with a short pause in between;
        monitors whose SLA cannot be fetched are left out of the report.
        """
        date_from, date_to = default_period(date_from, date_to, timedelta(days=30), now=self._clock())
        report = []
        for monitor in self._orchestrator.cache.snapshot.monitors:
            try:
                sla = await self._client.get_sla(monitor.id, date_from, date_to)
            except UpstreamError as e:
                self._log_debug(
                    "DashboardService",
                    f"Skipping SLA for monitor {monitor.id}: {e.message}",
                    {"monitor_id": monitor.id, "error_code": e.code},
                )
            else:
                report.append({
                    **sla,
                    "monitorId": monitor.id,
                    "monitorName": monitor.name,
                    "monitorUrl": monitor.url,
                    "status": monitor.status.value,
                })
            await self._sleep(self._config.refresh.sla_delay_seconds)

        report.sort(key=_availability_key)
        return {
            "data": report,
            "count": len(report),
            "period": {"from": date_from, "to": date_to},
        }

    def _log_info(self, component: str, message: str, data: dict) -> None:
        """Log an info message if logger is available."""
        if self._logger:
            self._logger.log(LogLevel.INFO, component, message, data)

    def _log_debug(self, component: str, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.DEBUG, component, message, data)


def _availability_key(entry: dict) -> float:
    availability = entry.get("availability")
    if isinstance(availability, (int, float)):
        return float(availability)
    return math.inf
