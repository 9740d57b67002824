"""
Configuration dataclasses for the uptime cache.

This module defines all configuration structures used throughout the system,
including upstream API access, refresh cadence, heatmap shape, monitor
categorization, retry behavior, persistence, and logging configuration.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError


DEFAULT_API_URL = "https://uptime.betterstack.com/api/v2"
DEFAULT_DB_PATH = Path.home() / ".uptime_cache" / "uptime_cache.db"


@dataclass
class UpstreamConfig:
    """Upstream API access."""

    api_token: str
    api_url: str = DEFAULT_API_URL
    team_id: str = ""
    timeout_seconds: float = 30.0
    proxy_timeout_seconds: float = 30.0


@dataclass
class RefreshConfig:
    """Refresh cycle cadence and pagination limits."""

    interval_seconds: float = 300.0
    monitor_page_size: int = 50
    incident_page_size: int = 50
    incident_max_pages: int = 5
    page_delay_seconds: float = 0.1
    sla_delay_seconds: float = 0.05
    cycle_timeout_seconds: float = 600.0  # 0 disables


@dataclass
class HeatmapConfig:
    """Heatmap window and classification threshold."""

    window_days: int = 30
    down_threshold: float = 0.5


@dataclass
class CategoryConfig:
    """URL substrings used to split monitors into production/staging/other."""

    production_patterns: list[str] = field(default_factory=list)
    staging_patterns: list[str] = field(default_factory=list)


@dataclass
class RetryConfig:
    """Retry behavior for upstream page fetches."""

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


@dataclass
class PersistenceConfig:
    """Durable store location."""

    database_path: Path = DEFAULT_DB_PATH


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    upstream: UpstreamConfig
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    heatmap: HeatmapConfig = field(default_factory=HeatmapConfig)
    categories: CategoryConfig = field(default_factory=CategoryConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def parse_patterns(raw: Optional[str]) -> list[str]:
    """Split a comma-separated pattern list, lowercasing and dropping blanks."""
    if not raw:
        return []
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def load_config_from_env(
    env: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Build a SystemConfig from environment variables.

    When ``env`` is omitted the process environment is used, after loading
    a ``.env`` file (``dotenv_path`` or the nearest one found).

    Raises:
        ConfigurationError: If the API token is missing or values are invalid
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    db_path = env.get("UPTIME_CACHE_DB")

    config = SystemConfig(
        upstream=UpstreamConfig(
            api_token=(env.get("BETTERSTACK_API_TOKEN") or "").strip(),
            api_url=(env.get("BETTERSTACK_API_URL") or DEFAULT_API_URL).rstrip("/"),
            team_id=(env.get("BETTERSTACK_TEAM_ID") or "").strip(),
        ),
        categories=CategoryConfig(
            production_patterns=parse_patterns(env.get("PRODUCTION_URL_PATTERNS")),
            staging_patterns=parse_patterns(env.get("STAGING_URL_PATTERNS")),
        ),
        persistence=PersistenceConfig(
            database_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
        ),
        logging=LoggingConfig(
            level=(env.get("UPTIME_CACHE_LOG_LEVEL") or "info").lower(),
            output_format=(env.get("UPTIME_CACHE_LOG_FORMAT") or "text").lower(),
        ),
    )
    validate_config(config)
    return config


def validate_config(config: SystemConfig) -> None:
    """
    Check a configuration for values the refresh pipeline cannot run with.

    Raises:
        ConfigurationError: On the first problem found
    """
    if not config.upstream.api_token:
        raise ConfigurationError(
            code="missing_token",
            message="BETTERSTACK_API_TOKEN is not set",
        )
    if not config.upstream.api_url.startswith(("https://", "http://")):
        raise ConfigurationError(
            code="invalid_api_url",
            message=f"Invalid upstream API URL: {config.upstream.api_url}",
        )
    refresh = config.refresh
    if refresh.interval_seconds <= 0:
        raise ConfigurationError(
            code="invalid_interval",
            message="Refresh interval must be positive",
            details={"interval_seconds": refresh.interval_seconds},
        )
    if refresh.monitor_page_size <= 0 or refresh.incident_page_size <= 0:
        raise ConfigurationError(
            code="invalid_page_size",
            message="Page sizes must be positive",
        )
    if refresh.incident_max_pages <= 0:
        raise ConfigurationError(
            code="invalid_page_cap",
            message="Incident page cap must be positive",
        )
    if config.heatmap.window_days <= 0:
        raise ConfigurationError(
            code="invalid_window",
            message="Heatmap window must be at least one day",
        )
    if not 0.0 < config.heatmap.down_threshold <= 1.0:
        raise ConfigurationError(
            code="invalid_threshold",
            message="Down threshold must be in (0, 1]",
            details={"down_threshold": config.heatmap.down_threshold},
        )
    if config.logging.output_format not in ("json", "text", "both"):
        raise ConfigurationError(
            code="invalid_log_format",
            message=f"Invalid log output format: {config.logging.output_format}",
        )
