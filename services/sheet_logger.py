"""
Sheet Logger - forwards created subscriptions to the spreadsheet endpoint.

Forwarding is fire-and-forget: `schedule()` starts a detached task bounded by
SHEET_LOGGER_TIMEOUT and returns immediately. Failures are logged and never
reach the caller.
"""

import asyncio
import logging
from typing import Optional, Set

import httpx

from config.settings import settings

logger = logging.getLogger(__name__)


class SheetLogger:
    """Client for the external spreadsheet logging endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._timeout = timeout
        self._transport = transport
        # Strong references so pending tasks are not garbage collected mid-flight
        self._pending: Set[asyncio.Task] = set()

    @property
    def url(self) -> Optional[str]:
        return self._url if self._url is not None else settings.sheet_logger_url

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else settings.sheet_logger_timeout

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def forward(self, record: dict) -> bool:
        """
        POST one record to the sheet endpoint.

        Returns:
            True if the endpoint accepted the record, False otherwise
        """
        try:
            async with httpx.AsyncClient(
                follow_redirects=True, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=record)
                response.raise_for_status()
            logger.info(f"Forwarded subscription {record.get('transactionID')} for {record.get('email')} to sheet")
            return True
        except httpx.TimeoutException:
            logger.warning(f"Sheet logger timed out after {self.timeout}s for {record.get('email')}")
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            logger.warning(f"Sheet logger request failed for {record.get('email')}: {e}")
        return False

    async def _forward_bounded(self, record: dict) -> bool:
        try:
            return await asyncio.wait_for(self.forward(record), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Sheet logger exceeded {self.timeout}s for {record.get('email')}")
        except Exception as e:
            logger.error(f"Unexpected sheet logger failure: {e}", exc_info=True)
        return False

    def schedule(self, record: dict) -> Optional[asyncio.Task]:
        """Start forwarding `record` in the background. Returns the task, or None when disabled."""
        if not self.enabled:
            logger.debug("SHEET_LOGGER_URL is not set. Skipping sheet forwarding.")
            return None
        task = asyncio.create_task(self._forward_bounded(dict(record)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight forward. Used on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# Process-wide instance
sheet_logger = SheetLogger()


def get_sheet_logger() -> SheetLogger:
    """FastAPI dependency returning the process-wide sheet logger."""
    return sheet_logger
