"""
Preflight checks run by ``uptime-cache self-test``.

Before the service is put in front of a dashboard it should be able to
open its SQLite file and authenticate against Better Stack. The checks
here prove both, after the configuration itself has been validated.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .config import SystemConfig, validate_config
from .enums import ResourceKind
from .exceptions import ConfigurationError, StoreError, UpstreamError
from .store import Store
from .uptime_client import UptimeClient


SELF_TEST_KEY = "selfTestAt"

RULE = "=" * 60


@dataclass
class CheckResult:
    name: str
    success: bool
    duration_ms: float
    detail: Optional[str] = None
    error: Optional[str] = None

    def render(self) -> list[str]:
        mark = "✓" if self.success else "✗"
        head = f"  {mark} {self.name}"
        if self.detail:
            head = f"{head}: {self.detail}"
        lines = [f"{head} ({self.duration_ms:.0f}ms)"]
        if self.error:
            lines.append(f"      Error: {self.error}")
        return lines


@dataclass
class ConfigValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class SelfTestResult:
    success: bool
    config_validation: ConfigValidationResult
    checks: list[CheckResult] = field(default_factory=list)
    total_duration_ms: float = 0.0

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.success]


def _ms_since(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class SelfTest:
    """
    Validates the configuration, then checks the store and the upstream.

    The store and client may be injected; otherwise they are built from the
    configuration and closed again when the check is done. An invalid
    configuration skips both checks.
    """

    def __init__(
        self,
        config: SystemConfig,
        store: Optional[Store] = None,
        client: Optional[UptimeClient] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._client = client

    async def run(self) -> SelfTestResult:
        started = time.perf_counter()
        validation = self.validate_config()

        checks: list[CheckResult] = []
        if validation.valid:
            checks.append(self.check_store())
            checks.append(await self.check_upstream())

        return SelfTestResult(
            success=validation.valid and all(c.success for c in checks),
            config_validation=validation,
            checks=checks,
            total_duration_ms=_ms_since(started),
        )

    def validate_config(self) -> ConfigValidationResult:
        """Hard errors come from validate_config; risky but legal settings become warnings."""
        errors: list[str] = []
        try:
            validate_config(self._config)
        except ConfigurationError as e:
            errors.append(e.message)

        config = self._config
        warnings = [
            message
            for applies, message in (
                (
                    not (config.categories.production_patterns or config.categories.staging_patterns),
                    "No URL patterns configured, every monitor is categorized as other",
                ),
                (
                    not config.upstream.api_url.startswith("https://"),
                    f"Upstream API URL does not use HTTPS: {config.upstream.api_url}",
                ),
                (
                    config.retry.max_retries < 1,
                    "max_retries is below 1, failed pages are not retried",
                ),
                (
                    config.refresh.cycle_timeout_seconds <= 0,
                    "Refresh cycle timeout is disabled",
                ),
            )
            if applies
        ]

        return ConfigValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def check_store(self) -> CheckResult:
        """Open the store and write the self-test timestamp into its metadata."""
        started = time.perf_counter()
        path = self._config.persistence.database_path
        store = self._store
        try:
            if store is None:
                store = Store(path)
            store.set_metadata(SELF_TEST_KEY, datetime.now(timezone.utc).isoformat())
            contents = "has data" if store.has_data() else "empty"
        except (StoreError, OSError) as e:
            return CheckResult("store", False, _ms_since(started), error=str(e))
        finally:
            if self._store is None and store is not None:
                store.close()

        return CheckResult("store", True, _ms_since(started), detail=f"{path} ({contents})")

    async def check_upstream(self) -> CheckResult:
        """Request one monitor; 401 and 403 are reported as a rejected token."""
        started = time.perf_counter()
        upstream = self._config.upstream
        client = self._client or UptimeClient(
            api_url=upstream.api_url,
            api_token=upstream.api_token,
            timeout=upstream.timeout_seconds,
        )
        try:
            page = await client.fetch_page(ResourceKind.MONITORS, page=1, per_page=1)
        except UpstreamError as e:
            if e.status_code in (401, 403):
                reason = f"Token rejected by upstream ({e.status_code})"
            else:
                reason = e.message
            return CheckResult("upstream", False, _ms_since(started), error=reason)
        finally:
            if self._client is None:
                await client.close()

        found = "monitors found" if page.items else "no monitors"
        return CheckResult("upstream", True, _ms_since(started), detail=f"{client.api_url} ({found})")

    def format_results(self, result: SelfTestResult) -> list[str]:
        validation = result.config_validation
        lines = ["Uptime Cache - Self-Test", RULE, "", "Configuration:"]

        if validation.valid:
            lines.append("  ✓ Configuration is valid")
        else:
            lines.append("  ✗ Configuration is invalid")
            lines.extend(f"    - {error}" for error in validation.errors)

        if validation.warnings:
            lines += ["", "  Warnings:"]
            lines.extend(f"    - {warning}" for warning in validation.warnings)

        if result.checks:
            lines += ["", "Checks:"]
            for check in result.checks:
                lines.extend(check.render())

        lines += [
            "",
            "-" * 60,
            "✓ Self-test passed" if result.success else "✗ Self-test failed",
            f"  Duration: {result.total_duration_ms:.0f}ms",
        ]
        return lines

    def print_results(self, result: SelfTestResult) -> None:
        print("\n".join(self.format_results(result)))


async def run_self_test(config: SystemConfig, print_output: bool = True) -> SelfTestResult:
    """Run every preflight check for ``config``, printing a report unless told not to."""
    self_test = SelfTest(config)
    result = await self_test.run()
    if print_output:
        self_test.print_results(result)
    return result
