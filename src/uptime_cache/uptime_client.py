"""
Uptime API client for the uptime cache.

This module provides an async client for the upstream uptime-monitoring
API (Better Stack Uptime ``/api/v2``): paginated resource listing, the
per-monitor SLA and response-time reports, heartbeats, and an ad-hoc URL
proxy used to test monitored endpoints by hand.

All non-2xx answers and transport failures surface as UpstreamError.
"""

import json
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from .enums import ResourceKind
from .exceptions import UpstreamError
from .models import Page


class UptimeClient:
    """
    Async client for the upstream uptime API with bearer authentication.

    Usable as an async context manager; otherwise the underlying
    ``httpx.AsyncClient`` is created on first use and released by close().
    """

    def __init__(
        self,
        api_url: str,
        api_token: str,
        timeout: float = 30.0,
        proxy_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_url: Base URL of the upstream API (e.g. .../api/v2)
            api_token: Bearer token
            timeout: Request timeout in seconds for upstream API calls
            proxy_timeout: Timeout in seconds for proxied URL checks
            transport: Optional httpx transport (used by tests)
        """
        self._api_url = api_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._proxy_timeout = proxy_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "UptimeClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def api_url(self) -> str:
        return self._api_url

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_url,
                headers={"Authorization": f"Bearer {self._api_token}"},
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def _get_json(self, path: str, params: Optional[dict] = None) -> dict:
        client = self._ensure_client()
        url = f"{self._api_url}/{path.lstrip('/')}"
        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(
                code="timeout",
                message=f"Upstream request timed out after {self._timeout}s",
                url=url,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(
                code="network_error",
                message=f"Upstream request failed: {e}",
                url=url,
            ) from e

        if not response.is_success:
            raise UpstreamError(
                code="rate_limited" if response.status_code == 429 else "http_error",
                message=f"Upstream answered {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                url=url,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(
                code="parse_error",
                message=f"Upstream response is not JSON: {e}",
                status_code=response.status_code,
                url=url,
            ) from e
        if not isinstance(payload, dict):
            raise UpstreamError(
                code="parse_error",
                message="Upstream response is not a JSON object",
                status_code=response.status_code,
                url=url,
            )
        return payload

    async def fetch_page(
        self,
        resource: ResourceKind,
        page: int = 1,
        per_page: int = 50,
    ) -> Page:
        """
        Fetch one page of a paginated resource.

        Returns:
            Page with the items and the ``pagination.next`` cursor (or None)
        """
        payload = await self._get_json(
            resource.value,
            params={"page": page, "per_page": per_page},
        )
        items = payload.get("data") or []
        pagination = payload.get("pagination") or {}
        return Page(items=list(items), next_cursor=pagination.get("next"))

    async def get_heartbeats(self) -> list[dict[str, Any]]:
        """List heartbeat (cron job) monitors in dashboard shape."""
        payload = await self._get_json(ResourceKind.HEARTBEATS.value)
        heartbeats = []
        for item in payload.get("data") or []:
            attributes = item.get("attributes") or {}
            heartbeats.append({
                "id": item.get("id"),
                "name": attributes.get("name"),
                "status": attributes.get("status"),
                "period": attributes.get("period"),
                "grace": attributes.get("grace"),
                "paused": attributes.get("paused"),
                "url": attributes.get("url"),
                "createdAt": attributes.get("created_at"),
                "updatedAt": attributes.get("updated_at"),
            })
        return heartbeats

    async def get_sla(
        self,
        monitor_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Upstream availability report for one monitor.

        Defaults to the last 30 days.
        """
        date_from, date_to = default_period(date_from, date_to, timedelta(days=30))
        payload = await self._get_json(
            f"monitors/{monitor_id}/sla",
            params={"from": date_from, "to": date_to},
        )
        data = payload.get("data") or {}
        attributes = data.get("attributes") or {}
        return {
            "monitorId": data.get("id", monitor_id),
            "availability": attributes.get("availability"),
            "totalDowntime": attributes.get("total_downtime"),
            "numberOfIncidents": attributes.get("number_of_incidents"),
            "longestIncident": attributes.get("longest_incident"),
            "averageIncident": attributes.get("average_incident"),
        }

    async def get_response_times(
        self,
        monitor_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> Any:
        """
        Per-region response times for one monitor.

        Defaults to the last 24 hours.
        """
        date_from, date_to = default_period(date_from, date_to, timedelta(hours=24))
        payload = await self._get_json(
            f"monitors/{monitor_id}/response-times",
            params={"from": date_from, "to": date_to},
        )
        data = payload.get("data") or {}
        return (data.get("attributes") or {}).get("regions")

    async def proxy_get(self, url: str, auth_value: Optional[str] = None) -> dict[str, Any]:
        """
        GET an arbitrary URL, optionally with an Authorization header.

        The bearer token of the upstream API is never forwarded. Failures
        are reported in the result instead of raised.
        """
        headers = {"Authorization": auth_value} if auth_value else {}
        start_time = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._proxy_timeout),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url, headers=headers)
        except httpx.TimeoutException:
            return {
                "success": False,
                "error": f"Request timeout ({self._proxy_timeout:g}s)",
            }
        except httpx.HTTPError as e:
            return {"success": False, "error": str(e)}

        content_type = response.headers.get("content-type", "")
        body: Any
        if "application/json" in content_type:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        else:
            body = response.text

        return {
            "success": True,
            "status": response.status_code,
            "statusText": response.reason_phrase,
            "body": body,
            "elapsedMs": (time.perf_counter() - start_time) * 1000,
        }

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


def default_period(
    date_from: Optional[str],
    date_to: Optional[str],
    span: timedelta,
    now: Optional[datetime] = None,
) -> tuple[str, str]:
    """Fill missing ``from``/``to`` dates with a window ending now (UTC)."""
    now = now or datetime.now(timezone.utc)
    if not date_to:
        date_to = now.date().isoformat()
    if not date_from:
        date_from = (now - span).date().isoformat()
    return date_from, date_to


def decode_json_field(value: Any) -> Any:
    """Decode a JSON-encoded string attribute, returning it unchanged if not JSON."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value
