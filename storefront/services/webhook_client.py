"""Outbound webhook for storefront events."""
import asyncio
import httpx
import logging
import time
from typing import Any, Dict, Optional, Set

from storefront.monitoring import webhook_duration_histogram

logger = logging.getLogger(__name__)


class WebhookClient:
    """Posts events to an external notification endpoint."""

    def __init__(self, http_client: Optional[httpx.AsyncClient], url: str):
        """
        Initialize webhook client.

        Args:
            http_client: Async HTTP client, shared across requests
            url: Endpoint receiving events; an empty value disables delivery
        """
        self.http_client = http_client
        self.url = url
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.url) and self.http_client is not None

    def dispatch(self, event_type: str, payload: Dict[str, Any]) -> None:
        """Schedule delivery in the background and return immediately."""
        if not self.enabled:
            return
        task = asyncio.ensure_future(self.send_event(event_type, payload))
        # Hold a reference until the task finishes
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def send_event(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Deliver one event. Failures are logged, never raised.

        Args:
            event_type: Event name, e.g. ``low_stock``
            payload: JSON-serializable event body

        Returns:
            True if the endpoint accepted the event
        """
        if not self.enabled:
            return False

        # HTTPXClientInstrumentor already creates spans for HTTP calls
        start_time = time.time()
        status = "success"
        status_code = None
        try:
            response = await self.http_client.post(
                self.url,
                json={"type": event_type, "data": payload}
            )
            status_code = response.status_code
            if response.is_success:
                return True
            status = "error"
            logger.warning("Webhook returned non-2xx status", extra={
                "status_code": response.status_code,
                "event_type": event_type
            })
            return False
        except Exception as e:
            status = "error"
            logger.error("Failed to deliver webhook", extra={
                "event_type": event_type,
                "url": self.url,
                "error": str(e)
            })
            return False
        finally:
            webhook_duration_histogram.record(
                time.time() - start_time,
                {
                    "event_type": event_type,
                    "status": status,
                    "status_code": str(status_code) if status_code else "0"
                }
            )
