"""
Upstream Pager for the uptime cache.

Walks one paginated upstream resource page by page, yielding each batch as
soon as it arrives. Paging stops when the upstream reports no next page,
when the optional page cap is reached, or when a page fails for good.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger
from .enums import LogLevel, ResourceKind
from .exceptions import UpstreamError
from .models import Page, PageBatch
from .retry_manager import RetryManager
from .uptime_client import UptimeClient


class UpstreamPager:
    """
    Lazy multi-page fetcher over an UptimeClient.

    Each page is one HTTP round trip, retried by the RetryManager when the
    failure is transient. A fixed delay can be awaited between pages to stay
    under upstream rate limits.
    """

    def __init__(
        self,
        client: UptimeClient,
        retry_manager: Optional[RetryManager] = None,
        logger: Optional[AuditLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._retry_manager = retry_manager
        self._logger = logger
        self._sleep = sleep

    async def fetch_all_pages(
        self,
        resource: ResourceKind,
        per_page: int = 50,
        max_pages: Optional[int] = None,
        delay_seconds: float = 0.0,
    ) -> AsyncIterator[PageBatch]:
        """
        Yield every page of ``resource`` in order.

        Args:
            resource: Upstream resource to list
            per_page: Page size requested from the upstream
            max_pages: Stop after this many pages even if more remain
            delay_seconds: Pause awaited between two successive pages

        Yields:
            PageBatch per fetched page

        Raises:
            UpstreamError: When a page cannot be fetched
        """
        page_number = 1
        while True:
            page = await self._fetch_page(resource, page_number, per_page)
            capped = max_pages is not None and page_number >= max_pages
            has_next = page.has_next and not capped

            self._log_debug(
                f"Fetched {resource.value} page {page_number}: {len(page.items)} items",
                {"resource": resource.value, "page": page_number, "items": len(page.items), "has_next": page.has_next},
            )
            if page.has_next and capped:
                self._log_info(
                    f"Page cap reached for {resource.value}",
                    {"resource": resource.value, "max_pages": max_pages},
                )

            yield PageBatch(page=page_number, items=page.items, has_next=has_next)

            if not has_next:
                return

            page_number += 1
            if delay_seconds > 0:
                await self._sleep(delay_seconds)

    async def collect(
        self,
        resource: ResourceKind,
        per_page: int = 50,
        max_pages: Optional[int] = None,
        delay_seconds: float = 0.0,
    ) -> list[dict]:
        """Fetch every page of ``resource`` and return the items in order."""
        items: list[dict] = []
        async for batch in self.fetch_all_pages(resource, per_page, max_pages, delay_seconds):
            items.extend(batch.items)
        return items

    async def _fetch_page(self, resource: ResourceKind, page: int, per_page: int) -> Page:
        async def do_fetch() -> Page:
            return await self._client.fetch_page(resource, page=page, per_page=per_page)

        if self._retry_manager is None:
            return await do_fetch()

        outcome = await self._retry_manager.execute_with_retry(do_fetch)
        if outcome.success:
            return outcome.result

        error = outcome.last_error
        if isinstance(error, UpstreamError) and self._logger:
            self._logger.log_error(
                "UpstreamPager",
                f"Giving up on {resource.value} page {page} after {outcome.attempts} attempts",
                error=error,
                request_url=error.url,
                response_status_code=error.status_code,
            )
        raise error

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "UpstreamPager", message, data)

    def _log_debug(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.DEBUG, "UpstreamPager", message, data)
