"""Order event notifications for collaborators (dashboards, voice alerts)."""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, Optional

import httpx

from florist_ledger.core.config import settings
from florist_ledger.core.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class OrderEvent:
    """A state change of an order that collaborators may react to."""
    event: str  # "order_placed", "order_failed", "transfer_requested", "transfer_accepted", ...
    order_id: int
    branch_name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "order_id": self.order_id,
            "branch_name": self.branch_name,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass
class NotificationResult:
    """Result of a notification attempt."""
    success: bool
    channel: str  # "log", "webhook"
    event: str
    error: Optional[str] = None
    sent_at: Optional[datetime] = None


class LoggingNotifier:
    """Notifier that only writes the event to the log."""

    channel = "log"

    def __init__(self, keep: int = 100):
        # Most recent events only
        self.sent: Deque[OrderEvent] = deque(maxlen=keep)

    def notify(self, event: OrderEvent) -> NotificationResult:
        logger.info(f"Order event {event.event}: order {event.order_id} at {event.branch_name}")
        self.sent.append(event)
        return NotificationResult(success=True, channel=self.channel, event=event.event, sent_at=utcnow())

    def close(self) -> None:
        self.sent.clear()


class WebhookNotifier:
    """POSTs order events as JSON to a collaborator webhook."""

    channel = "webhook"

    def __init__(self, url: str, timeout: Optional[float] = None, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout or settings.notification_timeout_seconds
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def notify(self, event: OrderEvent) -> NotificationResult:
        client = self._get_client()
        try:
            response = client.post(self.url, json=event.to_dict())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery of {event.event} for order {event.order_id} failed: {e}")
            return NotificationResult(
                success=False,
                channel=self.channel,
                event=event.event,
                error=str(e),
            )

        logger.info(f"Delivered {event.event} for order {event.order_id} to webhook")
        return NotificationResult(success=True, channel=self.channel, event=event.event, sent_at=utcnow())

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


# Singleton instance
_notifier = None


def get_notifier():
    """Get or create the notifier singleton.

    Webhook notifier when a URL is configured, logging notifier otherwise.
    """
    global _notifier
    if _notifier is None:
        if settings.order_webhook_url:
            _notifier = WebhookNotifier(settings.order_webhook_url)
        else:
            _notifier = LoggingNotifier()
    return _notifier


def close_notifier() -> None:
    """Release the singleton's HTTP connections (application shutdown)."""
    global _notifier
    if _notifier is not None:
        _notifier.close()
    _notifier = None
