"""
Uptime Cache - Read-through cache and daily heatmap for an uptime monitoring API.

This package mirrors monitors and incidents from the upstream uptime API into
a local SQLite store, serves dashboard reads from memory, and builds a 30-day
per-monitor heatmap from its own periodic status sampling.
"""

__version__ = "0.1.0"
__author__ = "Uptime Cache Team"

from uptime_cache.exceptions import (
    UptimeCacheError,
    UpstreamError,
    StoreError,
    ConfigurationError,
)
from uptime_cache.enums import (
    Collection,
    DayStatus,
    LogLevel,
    MonitorStatus,
    ResourceKind,
)
from uptime_cache.config import (
    UpstreamConfig,
    RefreshConfig,
    HeatmapConfig,
    CategoryConfig,
    RetryConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
    load_config_from_env,
    validate_config,
)
from uptime_cache.models import (
    MonitorSnapshot,
    IncidentSnapshot,
    StatusChangeSnapshot,
    SerializedSnapshot,
    Observation,
    DailyAggregate,
    HeatmapDay,
    HeatmapRow,
    RefreshProgress,
    Page,
    PageBatch,
)
from uptime_cache.audit_logger import (
    AuditLogger,
    LogEntry,
)
from uptime_cache.store import Store
from uptime_cache.uptime_client import UptimeClient
from uptime_cache.retry_manager import (
    RetryManager,
    RetryResult,
)
from uptime_cache.pager import UpstreamPager
from uptime_cache.aggregator import DailyAggregator
from uptime_cache.heatmap import (
    build_heatmap,
    classify_day,
)
from uptime_cache.state import (
    CacheSnapshot,
    MonitorCache,
    RefreshState,
)
from uptime_cache.orchestrator import (
    RefreshOrchestrator,
    RefreshOutcome,
)
from uptime_cache.dashboard import (
    build_dashboard_summary,
    categorize_monitors,
)
from uptime_cache.scheduler import (
    Scheduler,
    ScheduledTask,
)
from uptime_cache.service import DashboardService
from uptime_cache.self_test import (
    SelfTest,
    SelfTestResult,
    run_self_test,
)

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "UptimeCacheError",
    "UpstreamError",
    "StoreError",
    "ConfigurationError",
    # Enums
    "Collection",
    "DayStatus",
    "LogLevel",
    "MonitorStatus",
    "ResourceKind",
    # Config
    "UpstreamConfig",
    "RefreshConfig",
    "HeatmapConfig",
    "CategoryConfig",
    "RetryConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    "load_config_from_env",
    "validate_config",
    # Models
    "MonitorSnapshot",
    "IncidentSnapshot",
    "StatusChangeSnapshot",
    "SerializedSnapshot",
    "Observation",
    "DailyAggregate",
    "HeatmapDay",
    "HeatmapRow",
    "RefreshProgress",
    "Page",
    "PageBatch",
    # Logging
    "AuditLogger",
    "LogEntry",
    # Store
    "Store",
    # Upstream
    "UptimeClient",
    "RetryManager",
    "RetryResult",
    "UpstreamPager",
    # Aggregation and heatmap
    "DailyAggregator",
    "build_heatmap",
    "classify_day",
    # Refresh
    "CacheSnapshot",
    "MonitorCache",
    "RefreshState",
    "RefreshOrchestrator",
    "RefreshOutcome",
    # Dashboard
    "build_dashboard_summary",
    "categorize_monitors",
    "DashboardService",
    # Scheduler
    "Scheduler",
    "ScheduledTask",
    # Self-test
    "SelfTest",
    "SelfTestResult",
    "run_self_test",
]
