"""
Command-line interface for the uptime cache.

Subcommands of the uptime-cache script:
- run: Keep the cache refreshed until interrupted
- refresh: Run one refresh cycle
- status, dashboard, heatmap, incident: Read the cached dashboard views
- heartbeats, sla, response-times, proxy: Upstream passthroughs
- self-test: Verify configuration, store and upstream access
- config: Configuration management
"""

import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from . import __version__
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_API_URL,
    DEFAULT_DB_PATH,
    CategoryConfig,
    HeatmapConfig,
    LoggingConfig,
    PersistenceConfig,
    RefreshConfig,
    RetryConfig,
    SystemConfig,
    UpstreamConfig,
    load_config_from_env,
    parse_patterns,
    validate_config,
)
from .exceptions import ConfigurationError, UptimeCacheError
from .self_test import run_self_test
from .service import DashboardService


DEFAULT_CONFIG_PATH = Path.home() / ".uptime_cache" / "config.json"


def create_default_config(
    api_token: str = "",
    database_path: Optional[Path] = None,
) -> SystemConfig:
    """Configuration written by ``config init``: every default, plus an optional token and store path."""
    return SystemConfig(
        upstream=UpstreamConfig(api_token=api_token),
        persistence=PersistenceConfig(database_path=database_path or DEFAULT_DB_PATH),
    )


def _section(cls, data: Any, **overrides: Any):
    """Instantiate a config dataclass from the keys of ``data`` it knows about."""
    known = {f.name for f in fields(cls)}
    values = {key: value for key, value in (data or {}).items() if key in known}
    values.update(overrides)
    return cls(**values)


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Read a JSON configuration file written by ``config init``.

    Missing sections and keys keep their defaults and unknown keys are
    ignored. An empty ``api_token`` falls back to BETTERSTACK_API_TOKEN.
    Returns None when the file is absent or malformed.
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        upstream_data = data.get("upstream") or {}
        categories_data = data.get("categories") or {}
        database_path = (data.get("persistence") or {}).get("database_path")

        return SystemConfig(
            upstream=_section(
                UpstreamConfig,
                upstream_data,
                api_token=upstream_data.get("api_token") or os.environ.get("BETTERSTACK_API_TOKEN", ""),
                api_url=(upstream_data.get("api_url") or DEFAULT_API_URL).rstrip("/"),
            ),
            refresh=_section(RefreshConfig, data.get("refresh")),
            heatmap=_section(HeatmapConfig, data.get("heatmap")),
            # a list, or the comma-separated form used in the environment
            categories=CategoryConfig(
                production_patterns=_patterns(categories_data.get("production_patterns")),
                staging_patterns=_patterns(categories_data.get("staging_patterns")),
            ),
            retry=_section(RetryConfig, data.get("retry")),
            persistence=PersistenceConfig(
                database_path=Path(database_path) if database_path else DEFAULT_DB_PATH,
            ),
            logging=_section(LoggingConfig, data.get("logging")),
        )

    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, AttributeError, TypeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None


def _patterns(value: Any) -> list[str]:
    if isinstance(value, str):
        return parse_patterns(value)
    return [str(p).strip().lower() for p in value or [] if str(p).strip()]


def config_to_dict(config: SystemConfig) -> dict:
    data = asdict(config)
    data["persistence"]["database_path"] = str(config.persistence.database_path)
    return data


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """Write ``config`` as indented JSON, creating parent directories. False on failure."""
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(
            json.dumps(config_to_dict(config), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False
    return True


def resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """
    Configuration for a command: the --config file if given, else the environment.

    Returns:
        A validated SystemConfig, or None after printing the problem
    """
    try:
        if getattr(args, "config", None):
            config = load_config_from_file(Path(args.config))
            if config is None:
                print(f"Error: Could not load config from {args.config}", file=sys.stderr)
                return None
            validate_config(config)
        else:
            config = load_config_from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return None

    if getattr(args, "db", None):
        config.persistence = PersistenceConfig(database_path=Path(args.db))
    return config


def create_logger(config: SystemConfig, verbose: bool = False) -> AuditLogger:
    level = "debug" if verbose else config.logging.level
    return AuditLogger.from_level_name(level, output_format=config.logging.output_format)


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def run_service(config: SystemConfig, logger: AuditLogger) -> int:
    """Start the service and keep refreshing until cancelled."""
    service = DashboardService(config, logger=logger)
    await service.start()
    try:
        await asyncio.Event().wait()
    finally:
        await service.stop()
    return 0


async def with_service(
    config: SystemConfig,
    logger: AuditLogger,
    action: Callable[[DashboardService], Awaitable[Any]],
    refresh: bool = False,
) -> Any:
    """Run ``action`` against a service hydrated from the store, without the scheduler."""
    service = DashboardService(config, logger=logger)
    try:
        await service.start(initial_refresh=refresh, schedule=False)
        return await action(service)
    finally:
        await service.stop()


def _run(args: argparse.Namespace, action: Callable[[DashboardService], Awaitable[Any]]) -> int:
    config = resolve_config(args)
    if config is None:
        return 1
    logger = create_logger(config, getattr(args, "verbose", False))
    try:
        result = asyncio.run(with_service(config, logger, action, refresh=getattr(args, "refresh", False)))
    except UptimeCacheError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    if result is None:
        return 1
    print_json(result)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    logger = create_logger(config, args.verbose)
    try:
        return asyncio.run(run_service(config, logger))
    except KeyboardInterrupt:
        return 0
    except UptimeCacheError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_refresh(args: argparse.Namespace) -> int:
    """Handle the 'refresh' command."""
    async def action(service: DashboardService) -> dict:
        outcome = await service.refresh_now()
        return outcome.to_dict()

    return _run(args, action)


def cmd_status(args: argparse.Namespace) -> int:
    """Handle the 'status' command."""
    async def action(service: DashboardService) -> dict:
        return service.get_status()

    return _run(args, action)


def cmd_dashboard(args: argparse.Namespace) -> int:
    """Handle the 'dashboard' command."""
    async def action(service: DashboardService) -> dict:
        return service.get_dashboard(trigger_refresh=False)

    return _run(args, action)


def cmd_heatmap(args: argparse.Namespace) -> int:
    """Handle the 'heatmap' command."""
    async def action(service: DashboardService) -> list:
        return service.get_heatmap()

    return _run(args, action)


def cmd_incident(args: argparse.Namespace) -> int:
    """Handle the 'incident' command."""
    async def action(service: DashboardService) -> Optional[dict]:
        detail = service.get_incident_detail(args.incident_id)
        if detail is None:
            print(f"Incident not found: {args.incident_id}", file=sys.stderr)
        return detail

    return _run(args, action)


def cmd_heartbeats(args: argparse.Namespace) -> int:
    """Handle the 'heartbeats' command."""
    async def action(service: DashboardService) -> list:
        return await service.get_heartbeats()

    return _run(args, action)


def cmd_sla(args: argparse.Namespace) -> int:
    """Handle the 'sla' command."""
    async def action(service: DashboardService) -> dict:
        if args.monitor_id:
            return await service.get_sla(args.monitor_id, args.date_from, args.date_to)
        return await service.get_sla_report(args.date_from, args.date_to)

    return _run(args, action)


def cmd_response_times(args: argparse.Namespace) -> int:
    """Handle the 'response-times' command."""
    async def action(service: DashboardService) -> Any:
        return await service.get_response_times(args.monitor_id, args.date_from, args.date_to)

    return _run(args, action)


def cmd_proxy(args: argparse.Namespace) -> int:
    """Handle the 'proxy' command."""
    async def action(service: DashboardService) -> dict:
        return await service.proxy(args.url, args.auth)

    return _run(args, action)


def cmd_self_test(args: argparse.Namespace) -> int:
    """Handle the 'self-test' command."""
    if args.config:
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return 1
    else:
        try:
            config = load_config_from_env()
        except ConfigurationError as e:
            print(f"Configuration error: {e.message}", file=sys.stderr)
            return 1

    result = asyncio.run(run_self_test(config=config, print_output=True))
    return 0 if result.success else 1


def _config_show(config_path: Path, args: argparse.Namespace) -> int:
    config = load_config_from_file(config_path)
    if config is None:
        print(f"No configuration found at: {config_path}")
        print("Run 'uptime-cache config init' to write one.")
        return 1

    categories = config.categories
    rows = [
        ("API URL", config.upstream.api_url),
        ("API token", "set" if config.upstream.api_token else "not set"),
        ("Refresh interval", f"{config.refresh.interval_seconds:g}s"),
        ("Heatmap window", f"{config.heatmap.window_days} days"),
        ("Production patterns", ", ".join(categories.production_patterns) or "-"),
        ("Staging patterns", ", ".join(categories.staging_patterns) or "-"),
        ("Database", config.persistence.database_path),
        ("Log level", config.logging.level),
    ]
    print(f"Configuration from: {config_path}")
    for label, value in rows:
        print(f"  {label}: {value}")
    return 0


def _config_init(config_path: Path, args: argparse.Namespace) -> int:
    if config_path.exists() and not args.force:
        print(f"{config_path} already exists; pass --force to replace it.")
        return 1
    if not save_config_to_file(create_default_config(), config_path):
        return 1
    print(f"Wrote default configuration to {config_path}")
    return 0


def _config_validate(config_path: Path, args: argparse.Namespace) -> int:
    config = load_config_from_file(config_path)
    if config is None:
        print(f"Error: Could not load config from {config_path}", file=sys.stderr)
        return 1
    try:
        validate_config(config)
    except ConfigurationError as e:
        print(f"Configuration at {config_path} is invalid: {e.message}", file=sys.stderr)
        return 1
    print(f"Configuration at {config_path} is valid.")
    return 0


CONFIG_ACTIONS = {
    "show": _config_show,
    "init": _config_init,
    "validate": _config_validate,
}


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH
    return CONFIG_ACTIONS[args.action](config_path, args)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file (default: environment / .env)",
    )
    parser.add_argument(
        "--db",
        help="Path to the SQLite store (overrides configuration)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )


def _add_period(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="date_from", help="Start date (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", help="End date (YYYY-MM-DD)")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="uptime-cache",
        description="Read-through cache and daily heatmap for an uptime monitoring API",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Keep the cache refreshed until interrupted")
    _add_common(run_parser)
    run_parser.set_defaults(func=cmd_run)

    refresh_parser = subparsers.add_parser("refresh", help="Run one refresh cycle")
    _add_common(refresh_parser)
    refresh_parser.set_defaults(func=cmd_refresh)

    for name, help_text, func in (
        ("status", "Show refresh status", cmd_status),
        ("dashboard", "Print the dashboard summary as JSON", cmd_dashboard),
        ("heatmap", "Print the daily heatmap as JSON", cmd_heatmap),
    ):
        read_parser = subparsers.add_parser(name, help=help_text)
        _add_common(read_parser)
        read_parser.add_argument(
            "--refresh",
            action="store_true",
            help="Run a refresh cycle before reading",
        )
        read_parser.set_defaults(func=func)

    incident_parser = subparsers.add_parser("incident", help="Show one cached incident")
    incident_parser.add_argument("incident_id", help="Incident id")
    _add_common(incident_parser)
    incident_parser.set_defaults(func=cmd_incident)

    heartbeats_parser = subparsers.add_parser("heartbeats", help="List heartbeat monitors")
    _add_common(heartbeats_parser)
    heartbeats_parser.set_defaults(func=cmd_heartbeats)

    sla_parser = subparsers.add_parser(
        "sla",
        help="SLA for one monitor, or a report over all cached monitors",
    )
    sla_parser.add_argument("monitor_id", nargs="?", help="Monitor id (omit for all)")
    _add_period(sla_parser)
    _add_common(sla_parser)
    sla_parser.set_defaults(func=cmd_sla)

    response_times_parser = subparsers.add_parser(
        "response-times",
        help="Per-region response times for a monitor",
    )
    response_times_parser.add_argument("monitor_id", help="Monitor id")
    _add_period(response_times_parser)
    _add_common(response_times_parser)
    response_times_parser.set_defaults(func=cmd_response_times)

    proxy_parser = subparsers.add_parser("proxy", help="Fetch a URL as a monitor would")
    proxy_parser.add_argument("url", help="URL to fetch")
    proxy_parser.add_argument("--auth", help="Authorization header value to send")
    _add_common(proxy_parser)
    proxy_parser.set_defaults(func=cmd_proxy)

    self_test_parser = subparsers.add_parser("self-test", help="Verify configuration, store and upstream access")
    self_test_parser.add_argument("--config", "-c", help="JSON configuration file (default: environment / .env)")
    self_test_parser.set_defaults(func=cmd_self_test)

    config_parser = subparsers.add_parser("config", help="Show, create or validate the JSON configuration file")
    config_parser.add_argument("action", choices=list(CONFIG_ACTIONS))
    config_parser.add_argument("--path", "-p", help=f"Configuration file (default: {DEFAULT_CONFIG_PATH})")
    config_parser.add_argument("--force", "-f", action="store_true", help="Replace an existing file on init")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point of the uptime-cache script; returns the process exit code."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
