"""
Data models for the uptime cache.

This module defines the snapshots mirrored from the upstream API, the
versioned envelope they are persisted in, the daily aggregate counters,
and the heatmap/progress shapes handed to dashboard readers.
"""

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from .enums import DayStatus, MonitorStatus
from .exceptions import StoreError, UpstreamError


def _upstream_id(item: Any, kind: str) -> str:
    """Id of an upstream JSON:API item; a non-object or id-less item is a parse error."""
    if not isinstance(item, dict) or item.get("id") is None:
        raise UpstreamError(
            code="parse_error",
            message=f"Malformed {kind} item from upstream: missing id",
            details={"kind": kind},
        )
    return str(item["id"])


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class MonitorSnapshot:
    """A monitor as last seen upstream."""

    id: str
    status: MonitorStatus
    url: str
    name: str
    raw: dict = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_upstream(cls, item: dict) -> "MonitorSnapshot":
        monitor_id = _upstream_id(item, "monitor")
        attributes = _as_dict(item.get("attributes"))
        url = attributes.get("url") or ""
        return cls(
            id=monitor_id,
            status=MonitorStatus.parse(attributes.get("status")),
            url=url,
            name=attributes.get("pronounceable_name") or url,
            raw=item,
        )


@dataclass(frozen=True)
class IncidentSnapshot:
    """An incident as last seen upstream."""

    id: str
    monitor_id: Optional[str]
    raw: dict = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_upstream(cls, item: dict) -> "IncidentSnapshot":
        incident_id = _upstream_id(item, "incident")
        relationships = _as_dict(item.get("relationships"))
        monitor_ref = _as_dict(_as_dict(relationships.get("monitor")).get("data"))
        monitor_id = monitor_ref.get("id")
        return cls(
            id=incident_id,
            monitor_id=str(monitor_id) if monitor_id is not None else None,
            raw=item,
        )


@dataclass(frozen=True)
class StatusChangeSnapshot:
    """A monitor status transition as reported upstream."""

    id: str
    raw: dict = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_upstream(cls, item: dict) -> "StatusChangeSnapshot":
        return cls(id=_upstream_id(item, "status change"), raw=item)


@dataclass(frozen=True)
class SerializedSnapshot:
    """
    Versioned JSON envelope for a persisted snapshot.

    Rows written before the envelope existed are bare upstream objects;
    they decode as version 0.
    """

    CURRENT_VERSION = 1
    SUPPORTED_VERSIONS = (0, 1)

    kind: str
    data: dict
    version: int = CURRENT_VERSION

    def encode(self) -> str:
        return json.dumps(
            {"version": self.version, "kind": self.kind, "data": self.data},
            sort_keys=True,
            separators=(",", ":"),
        )

    @classmethod
    def decode(cls, payload: str, kind: str) -> "SerializedSnapshot":
        try:
            obj = json.loads(payload)
        except json.JSONDecodeError as e:
            raise StoreError(
                code="parse_error",
                message=f"Failed to parse stored snapshot: {e}",
                details={"kind": kind},
            ) from e

        if not isinstance(obj, dict) or "version" not in obj or "data" not in obj:
            return cls(kind=kind, data=obj, version=0)

        version = obj["version"]
        if version not in cls.SUPPORTED_VERSIONS:
            raise StoreError(
                code="unsupported_version",
                message=f"Unsupported snapshot version: {version}",
                details={"kind": kind, "version": version},
            )
        return cls(kind=obj.get("kind", kind), data=obj["data"], version=version)


@dataclass(frozen=True)
class Observation:
    """One point-in-time status sample for a monitor-day."""

    monitor_id: str
    day: date
    status: str
    is_failed: bool


@dataclass
class DailyAggregate:
    """Accumulated check counters for one monitor on one UTC day."""

    monitor_id: str
    day: date
    status: str
    downtime_minutes: int = 0
    checks_total: int = 0
    checks_failed: int = 0
    updated_at: str = ""

    @property
    def fail_rate(self) -> float:
        if self.checks_total <= 0:
            return 0.0
        return self.checks_failed / self.checks_total


@dataclass
class HeatmapDay:
    """One cell of the heatmap."""

    day: date
    status: DayStatus
    downtime_minutes: int = 0
    checks_total: int = 0
    checks_failed: int = 0
    fail_rate_percent: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "status": self.status.value,
            "downtimeMinutes": self.downtime_minutes,
            "checksTotal": self.checks_total,
            "checksFailed": self.checks_failed,
            "failRatePercent": self.fail_rate_percent,
        }


@dataclass
class HeatmapRow:
    """All heatmap days for one monitor."""

    id: str
    name: str
    url: str
    current_status: MonitorStatus
    days: list[HeatmapDay] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "currentStatus": self.current_status.value,
            "days": [d.to_dict() for d in self.days],
        }


@dataclass
class RefreshProgress:
    """Live progress of the monitor paging step."""

    current: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"current": self.current, "total": self.total}


@dataclass
class Page:
    """One upstream page."""

    items: list[dict]
    next_cursor: Optional[str] = None

    @property
    def has_next(self) -> bool:
        return bool(self.next_cursor)


@dataclass
class PageBatch:
    """A page of items yielded by the pager."""

    page: int
    items: list[dict]
    has_next: bool
