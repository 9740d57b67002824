"""
Process-wide refresh state for the uptime cache.

RefreshState is the single-flight guard plus the live paging progress;
MonitorCache holds the last completed snapshot that dashboard readers see.
Both are explicit objects owned by the service rather than module globals.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

from .models import IncidentSnapshot, MonitorSnapshot, RefreshProgress


class RefreshState:
    """
    Idle/Loading state machine guarding the refresh cycle.

    try_begin() is an atomic check-and-set, so any number of concurrent
    triggers produce at most one cycle.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._loading = False
        self._current = 0
        self._total = 0

    def try_begin(self) -> bool:
        """
        Enter Loading if Idle.

        Returns:
            True if the caller owns the cycle, False if one is already running
        """
        with self._lock:
            if self._loading:
                return False
            self._loading = True
            self._current = 0
            self._total = 0
            return True

    def finish(self) -> None:
        """Return to Idle; the total collapses to what was actually fetched."""
        with self._lock:
            self._total = self._current
            self._loading = False

    def advance(self, fetched: int, has_more: bool, page_size: int) -> None:
        """
        Count ``fetched`` more items.

        While pages remain the total is an estimate of one further page.
        """
        with self._lock:
            self._current += fetched
            self._total = self._current + (page_size if has_more else 0)

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return self._loading

    @property
    def progress(self) -> RefreshProgress:
        with self._lock:
            return RefreshProgress(current=self._current, total=self._total)


@dataclass(frozen=True)
class CacheSnapshot:
    """Immutable view of the last completed refresh."""

    monitors: tuple[MonitorSnapshot, ...] = ()
    incidents: tuple[IncidentSnapshot, ...] = ()
    last_updated: Optional[str] = None
    _by_id: dict = field(default_factory=dict, compare=False, repr=False)

    def monitor(self, monitor_id: str) -> Optional[MonitorSnapshot]:
        return self._by_id.get(monitor_id)


class MonitorCache:
    """Holds the current CacheSnapshot; writers replace it wholesale."""

    def __init__(self) -> None:
        self._snapshot = CacheSnapshot()

    @property
    def snapshot(self) -> CacheSnapshot:
        return self._snapshot

    def replace_monitors(self, monitors: list[MonitorSnapshot], last_updated: str) -> None:
        current = self._snapshot
        self._snapshot = CacheSnapshot(
            monitors=tuple(monitors),
            incidents=current.incidents,
            last_updated=last_updated,
            _by_id={m.id: m for m in monitors},
        )

    def replace_incidents(self, incidents: list[IncidentSnapshot]) -> None:
        current = self._snapshot
        self._snapshot = CacheSnapshot(
            monitors=current.monitors,
            incidents=tuple(incidents),
            last_updated=current.last_updated,
            _by_id=current._by_id,
        )

    def load(
        self,
        monitors: list[MonitorSnapshot],
        incidents: list[IncidentSnapshot],
        last_updated: Optional[str],
    ) -> None:
        self._snapshot = CacheSnapshot(
            monitors=tuple(monitors),
            incidents=tuple(incidents),
            last_updated=last_updated,
            _by_id={m.id: m for m in monitors},
        )
