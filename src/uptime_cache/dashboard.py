"""
Dashboard read models for the uptime cache.

Pure functions that shape a CacheSnapshot into the dictionaries served to
dashboard readers: the summary with its production/staging/other split,
the lightweight status report, and the incident detail view.
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Optional

from .config import CategoryConfig
from .enums import MonitorStatus
from .models import MonitorSnapshot, RefreshProgress
from .state import CacheSnapshot
from .uptime_client import decode_json_field


PRODUCTION = "production"
STAGING = "staging"
OTHER = "other"


def matches_any(url: str, patterns: Sequence[str]) -> bool:
    lowered = url.lower()
    return any(pattern in lowered for pattern in patterns)


def categorize_monitor(monitor: MonitorSnapshot, categories: CategoryConfig) -> str:
    """Production patterns win over staging ones; no match means other."""
    if matches_any(monitor.url, categories.production_patterns):
        return PRODUCTION
    if matches_any(monitor.url, categories.staging_patterns):
        return STAGING
    return OTHER


def categorize_monitors(
    monitors: Sequence[MonitorSnapshot],
    categories: CategoryConfig,
) -> dict[str, list[MonitorSnapshot]]:
    grouped: dict[str, list[MonitorSnapshot]] = {PRODUCTION: [], STAGING: [], OTHER: []}
    for monitor in monitors:
        grouped[categorize_monitor(monitor, categories)].append(monitor)
    return grouped


def _count(monitors: Sequence[MonitorSnapshot], status: MonitorStatus) -> int:
    return sum(1 for m in monitors if m.status == status)


def _group_stats(monitors: Sequence[MonitorSnapshot]) -> dict[str, int]:
    return {
        "total": len(monitors),
        "up": _count(monitors, MonitorStatus.UP),
        "down": _count(monitors, MonitorStatus.DOWN),
    }


def build_stats(
    monitors: Sequence[MonitorSnapshot],
    grouped: dict[str, list[MonitorSnapshot]],
) -> dict[str, Any]:
    return {
        "total": len(monitors),
        "up": _count(monitors, MonitorStatus.UP),
        "down": _count(monitors, MonitorStatus.DOWN),
        "paused": _count(monitors, MonitorStatus.PAUSED),
        "validating": _count(monitors, MonitorStatus.VALIDATING),
        PRODUCTION: _group_stats(grouped[PRODUCTION]),
        STAGING: _group_stats(grouped[STAGING]),
    }


def _last_updated(snapshot: CacheSnapshot, now: Optional[datetime]) -> str:
    if snapshot.last_updated:
        return snapshot.last_updated
    return (now or datetime.now(timezone.utc)).isoformat()


def build_dashboard_summary(
    snapshot: CacheSnapshot,
    categories: CategoryConfig,
    is_loading: bool,
    progress: RefreshProgress,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Full dashboard payload.

    Monitors and incidents are the upstream objects exactly as cached.
    """
    monitors = list(snapshot.monitors)
    grouped = categorize_monitors(monitors, categories)
    return {
        "stats": build_stats(monitors, grouped),
        "monitors": [m.raw for m in monitors],
        "categorized": {name: [m.raw for m in group] for name, group in grouped.items()},
        "incidents": [i.raw for i in snapshot.incidents],
        "isLoading": is_loading,
        "loadingProgress": progress.to_dict(),
        "lastUpdated": _last_updated(snapshot, now),
    }


def build_status(
    snapshot: CacheSnapshot,
    is_loading: bool,
    progress: RefreshProgress,
) -> dict[str, Any]:
    return {
        "monitorsCount": len(snapshot.monitors),
        "isLoading": is_loading,
        "loadingProgress": progress.to_dict(),
        "lastUpdated": snapshot.last_updated,
    }


def build_incident_detail(snapshot: CacheSnapshot, incident_id: str) -> Optional[dict[str, Any]]:
    """
    One cached incident joined with its monitor.

    Returns:
        The detail view, or None when the incident is not cached
    """
    incident = next((i for i in snapshot.incidents if i.id == incident_id), None)
    if incident is None:
        return None

    attributes = incident.raw.get("attributes") or {}
    monitor = snapshot.monitor(incident.monitor_id) if incident.monitor_id else None
    response_options = attributes.get("response_options")

    return {
        "id": incident.id,
        "name": attributes.get("name"),
        "status": attributes.get("status"),
        "cause": attributes.get("cause"),
        "url": attributes.get("url"),
        "httpMethod": attributes.get("http_method"),
        "startedAt": attributes.get("started_at"),
        "resolvedAt": attributes.get("resolved_at"),
        "acknowledgedAt": attributes.get("acknowledged_at"),
        "acknowledgedBy": attributes.get("acknowledged_by"),
        "resolvedBy": attributes.get("resolved_by"),
        "responseContent": attributes.get("response_content"),
        "responseOptions": decode_json_field(response_options) if response_options else None,
        "responseUrl": attributes.get("response_url"),
        "screenshotUrl": attributes.get("screenshot_url"),
        "metadata": attributes.get("metadata"),
        "regions": attributes.get("regions"),
        "monitor": {
            "id": monitor.id if monitor else None,
            "name": monitor.raw.get("attributes", {}).get("pronounceable_name") if monitor else None,
            "url": monitor.url if monitor else None,
        },
    }
