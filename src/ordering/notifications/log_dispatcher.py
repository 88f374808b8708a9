"""Dispatcher that writes notifications to the structured log."""

import structlog

from ordering.notifications.port import NotificationDispatcher

logger = structlog.get_logger(__name__)


class LoggingNotificationDispatcher(NotificationDispatcher):
    def dispatch(self, event_type: str, payload: dict, audience: list[str]) -> None:
        logger.info(
            "Notification dispatched",
            event_type=event_type,
            audience=audience,
            order_id=payload.get("order_id"),
            status=payload.get("status"),
        )
