"""Fire-and-forget notifications for order lifecycle events."""

import logging
from typing import Dict

from .logging import log_event

logger = logging.getLogger(__name__)


class NotificationSender:
    """Default sender: records the notification as a structured log event.

    Replace with an email/SMS backed sender by overriding ``send``.
    """

    def send(self, event: str, payload: Dict) -> None:
        log_event("info", "notification.sent", notification=event, **payload)


def notify_safely(sender: NotificationSender, event: str, payload: Dict) -> bool:
    """Send ``event``; a failing sender is logged and never propagates."""
    try:
        sender.send(event, payload)
        return True
    except Exception as exc:
        logger.exception("notification %s failed", event)
        log_event("warning", "notification.failed", notification=event, error=str(exc), **payload)
        return False
