"""
Exception classes for the uptime cache.

All exceptions inherit from UptimeCacheError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class UptimeCacheError(Exception):
    """Base exception for all uptime cache errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class UpstreamError(UptimeCacheError):
    """
    Raised when the upstream API answers non-2xx or cannot be reached.

    ``status_code`` is 0 for transport failures (DNS, TLS, timeouts).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 0,
        url: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.status_code = status_code
        self.url = url
        merged = dict(details or {})
        merged.setdefault("status_code", status_code)
        if url is not None:
            merged.setdefault("url", url)
        super().__init__(code=code, message=message, details=merged)

    @property
    def is_transient(self) -> bool:
        """Rate limiting, server errors and transport failures may succeed later."""
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


class StoreError(UptimeCacheError):
    """Raised when a durable store operation fails (rolled back)."""

    pass


class ConfigurationError(UptimeCacheError):
    """Raised when required configuration is missing or invalid."""

    pass
