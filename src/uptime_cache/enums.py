"""
Enumeration types for the uptime cache.

These enums provide type-safe constants for monitor states, heatmap
classifications, upstream resources and logging levels.
"""

from enum import Enum


class MonitorStatus(Enum):
    """Live status of an upstream monitor."""

    UP = "up"
    DOWN = "down"
    PAUSED = "paused"
    VALIDATING = "validating"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "MonitorStatus":
        """Map an upstream status string onto the enum, defaulting to UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


class DayStatus(Enum):
    """Derived status of a single heatmap day."""

    UP = "up"
    PARTIAL = "partial"
    DOWN = "down"
    UNKNOWN = "unknown"


class Collection(Enum):
    """Snapshot collections held by the durable store."""

    MONITORS = "monitors"
    INCIDENTS = "incidents"
    STATUS_CHANGES = "status_changes"


class ResourceKind(Enum):
    """Paginated upstream resources."""

    MONITORS = "monitors"
    INCIDENTS = "incidents"
    HEARTBEATS = "heartbeats"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
