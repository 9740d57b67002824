"""
Structured logging for the uptime cache.

Every component logs through one AuditLogger. Entries are kept in memory
for inspection, written to a stream as JSON lines, text lines or both,
and scrubbed of credentials (the upstream API token, proxied
Authorization values) before they are stored or written.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from .enums import LogLevel


_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}

_FORMATS = ("json", "text", "both")


@dataclass
class LogEntry:
    """One recorded log line."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "component": self.component,
            "message": self.message,
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_text(self) -> str:
        line = f"[{self.timestamp}] {self.level.value.upper()} [{self.component}] {self.message}"
        if not self.data:
            return line
        return f"{line} {json.dumps(self.data, ensure_ascii=False, default=str)}"


class AuditLogger:
    """
    Structured logger shared by the store, pager, orchestrator and service.

    Entries below ``min_level`` are discarded before anything else happens.
    Values stored under credential-like keys are replaced by MASK_VALUE at
    any depth of the data dictionary, including dictionaries inside lists.
    """

    # Substrings of a data key that mark its value as a credential
    SENSITIVE_KEYS = frozenset({
        'token', 'secret', 'password', 'api_key', 'auth',
        'bearer', 'credential', 'cookie', 'session',
    })

    MASK_VALUE = "***MASKED***"

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.INFO,
    ):
        if output_format not in _FORMATS:
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._output_stream = output_stream or sys.stderr
        self._min_level = min_level
        self._entries: list[LogEntry] = []

    @classmethod
    def from_level_name(
        cls,
        level: str,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
    ) -> "AuditLogger":
        """Build a logger from a configured level name; unknown names mean INFO."""
        try:
            min_level = LogLevel(level.lower())
        except ValueError:
            min_level = LogLevel.INFO
        return cls(output_format=output_format, output_stream=output_stream, min_level=min_level)

    @property
    def output_format(self) -> str:
        return self._output_format

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @property
    def entries(self) -> list[LogEntry]:
        """Copy of everything logged so far."""
        return list(self._entries)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return _SEVERITY[level] >= _SEVERITY[self._min_level]

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """Record and write one entry. Returns None when the level is filtered out."""
        if not self.is_enabled_for(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        self._entries.append(entry)
        self._write(entry)
        return entry

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[Exception] = None,
        request_url: Optional[str] = None,
        response_status_code: Optional[int] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Record an ERROR entry describing a failure.

        The exception contributes its type and message, plus its ``code``
        when it is one of the project's coded errors. The failed request's
        URL and HTTP status are added when known.
        """
        context: dict[str, Any] = dict(additional_data or {})

        if error is not None:
            context["error_message"] = str(error)
            context["error_type"] = type(error).__name__
            if getattr(error, "code", None) is not None:
                context["error_code"] = error.code

        for key, value in (
            ("request_url", request_url),
            ("response_status_code", response_status_code),
        ):
            if value is not None:
                context[key] = value

        return self.log(LogLevel.ERROR, component, message, context)

    def mask_sensitive_data(self, data: dict) -> dict:
        """Return a copy of ``data`` with credential values replaced by MASK_VALUE."""
        if not isinstance(data, dict):
            return data
        return {
            key: self.MASK_VALUE if self._is_sensitive(key) else self._scrub(value)
            for key, value in data.items()
        }

    def _is_sensitive(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(marker in lowered for marker in self.SENSITIVE_KEYS)

    def _scrub(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self.mask_sensitive_data(value)
        if isinstance(value, list):
            return [self._scrub(item) for item in value]
        return value

    def _write(self, entry: LogEntry) -> None:
        lines = []
        if self._output_format != "text":
            lines.append(entry.to_json())
        if self._output_format != "json":
            lines.append(entry.to_text())

        self._output_stream.write("".join(line + "\n" for line in lines))
        self._output_stream.flush()

    def get_json_output(self, entry: LogEntry) -> str:
        return entry.to_json()

    def get_text_output(self, entry: LogEntry) -> str:
        return entry.to_text()

    def clear_entries(self) -> None:
        self._entries.clear()
