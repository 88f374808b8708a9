"""Notification dispatcher port: fan-out of order changes to interested parties."""

from abc import ABC, abstractmethod
from enum import Enum


class NotificationType(Enum):
    ORDER_CREATED = "order_created"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_ASSIGNED = "order_assigned"
    ORDER_OUT_FOR_DELIVERY = "order_out_for_delivery"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_RETURNED = "order_returned"
    RETURN_APPROVED = "return_approved"
    RETURN_REJECTED = "return_rejected"
    ORDER_REORDERED = "order_reordered"
    OTP_SENT = "otp_sent"
    PAYMENT_UPDATED = "payment_updated"


class Audience(Enum):
    CUSTOMER = "customer"
    AGENCY = "agency"
    AGENT = "agent"
    ADMIN = "admin"


class NotificationDispatcher(ABC):
    """Delivers notifications by push, email or socket.

    Implementations are best effort. They may raise, but the emitter never
    lets that reach the order core.
    """

    @abstractmethod
    def dispatch(self, event_type: str, payload: dict, audience: list[str]) -> None:
        """Hand a notification over for delivery."""
        ...
