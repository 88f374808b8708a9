"""Order event emitter: fire-and-forget notification after a committed change.

The emitter runs after the unit of work commits. A dispatcher failure is
logged and swallowed here, so it can never undo or fail a transition.
"""

import structlog

from ordering.clock import Clock, SystemClock
from ordering.notifications.port import Audience, NotificationDispatcher, NotificationType

logger = structlog.get_logger(__name__)

_EVERYONE_BUT_AGENT = [Audience.CUSTOMER, Audience.AGENCY, Audience.ADMIN]

_AUDIENCES = {
    NotificationType.ORDER_CREATED: _EVERYONE_BUT_AGENT,
    NotificationType.ORDER_CONFIRMED: [Audience.CUSTOMER, Audience.ADMIN],
    NotificationType.ORDER_ASSIGNED: [Audience.CUSTOMER, Audience.AGENT, Audience.ADMIN],
    NotificationType.ORDER_OUT_FOR_DELIVERY: [Audience.CUSTOMER, Audience.ADMIN],
    NotificationType.ORDER_DELIVERED: _EVERYONE_BUT_AGENT,
    NotificationType.ORDER_CANCELLED: [Audience.CUSTOMER, Audience.AGENCY, Audience.AGENT, Audience.ADMIN],
    NotificationType.ORDER_RETURNED: [Audience.AGENCY, Audience.ADMIN],
    NotificationType.RETURN_APPROVED: _EVERYONE_BUT_AGENT,
    NotificationType.RETURN_REJECTED: _EVERYONE_BUT_AGENT,
    NotificationType.ORDER_REORDERED: [Audience.AGENCY, Audience.ADMIN],
    NotificationType.OTP_SENT: [Audience.CUSTOMER],
    NotificationType.PAYMENT_UPDATED: _EVERYONE_BUT_AGENT,
}


def audience_for(event_type: NotificationType) -> list[str]:
    return [a.value for a in _AUDIENCES[event_type]]


class OrderEventEmitter:
    def __init__(self, dispatcher: NotificationDispatcher, clock: Clock | None = None):
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()

    def payload(self, order, actor, **extra) -> dict:
        payload = {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": order.status,
            "customer_id": str(order.customer_id),
            "agency_id": str(order.agency_id),
            "agent_id": str(order.assigned_agent_id) if order.assigned_agent_id else None,
            "total_amount": order.total_amount,
            "actor": {
                "role": actor.role.value,
                "id": str(actor.id) if actor.id is not None else None,
                "name": actor.name,
            },
            "timestamp": self._clock.now().isoformat(),
        }
        payload.update(extra)
        return payload

    def emit(self, event_type: NotificationType, order, actor, **extra) -> bool:
        """Hand the notification to the dispatcher. Returns False if it failed."""
        try:
            self._dispatcher.dispatch(event_type.value, self.payload(order, actor, **extra), audience_for(event_type))
        except Exception as exc:
            logger.error(
                "Notification dispatch failed",
                event_type=event_type.value,
                order_id=str(order.id),
                error=str(exc),
            )
            return False
        return True
