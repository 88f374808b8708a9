"""Read-side queries over the order listing.

Every query is scoped by the calling actor: customers see their own orders,
agents the orders they carry, agency owners their agency's orders and admins
everything.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.actors import ActorRole
from ordering.clock import Clock, SystemClock
from ordering.errors import Unauthorized
from ordering.money import ZERO, as_float, to_decimal
from ordering.order.order import OrderStatus
from ordering.projections.order_listing import OrderListing

HISTORY_STATUSES = (OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value)
PERIODS = ("day", "week", "month", "year")


@dataclass(frozen=True)
class CustomerSummary:
    customer_id: str
    total_orders: int
    total_amount: float
    by_status: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DailyDeliveries:
    date: str
    count: int
    earnings: float
    order_ids: tuple


@dataclass(frozen=True)
class AgentDeliveryStats:
    agent_id: str
    period: str
    period_start: datetime
    period_end: datetime
    delivered: int
    cancelled: int
    earnings: float
    assigned_now: int
    out_for_delivery_now: int
    total_delivered: int
    daily: list = field(default_factory=list)

    @property
    def total_this_period(self) -> int:
        return self.delivered + self.cancelled


def period_start(period: str, now: datetime) -> datetime:
    if period == "day":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)
    if period == "year":
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _amount(rows) -> float:
    return as_float(sum((to_decimal(row.total_amount) for row in rows), ZERO))


class OrderQueries:
    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def _rows(self, **filters) -> list:
        repo = current_domain.repository_for(OrderListing)
        return repo._dao.query.filter(**{k: str(v) for k, v in filters.items()}).all().items

    def _require_agent(self, actor, what):
        if actor.role is not ActorRole.AGENT:
            raise Unauthorized(actor.role.value, what, f"Only delivery agents can view {what}")

    def orders_by_status(self, actor, status) -> list:
        """Orders in `status` visible to `actor`, newest first."""
        try:
            status = OrderStatus(getattr(status, "value", status)).value
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status {status}"]}) from None

        filters = {"status": status}
        if actor.role is ActorRole.CUSTOMER:
            filters["customer_id"] = actor.id
        elif actor.role is ActorRole.AGENT:
            filters["assigned_agent_id"] = actor.id
        elif actor.role is ActorRole.AGENCY:
            filters["agency_id"] = actor.agency_id
        return sorted(self._rows(**filters), key=lambda r: r.placed_at, reverse=True)

    def customer_summary(self, actor) -> CustomerSummary:
        if actor.role is not ActorRole.CUSTOMER:
            raise Unauthorized(actor.role.value, "view a customer order summary")

        rows = self._rows(customer_id=actor.id)
        return CustomerSummary(
            customer_id=str(actor.id),
            total_orders=len(rows),
            total_amount=_amount(rows),
            by_status=dict(Counter(row.status for row in rows)),
        )

    def agent_delivery_history(self, actor, status=None, start=None, end=None, customer_name=None) -> list:
        """Closed orders the agent carried, newest delivery first.

        `start`/`end` bound `delivered_at`; `customer_name` matches any part of
        the name, ignoring case.
        """
        self._require_agent(actor, "delivery history")

        statuses = (status,) if status in HISTORY_STATUSES else HISTORY_STATUSES
        rows = [row for row in self._rows(assigned_agent_id=actor.id) if row.status in statuses]

        if start is not None or end is not None:
            rows = [
                row
                for row in rows
                if row.delivered_at is not None
                and (start is None or row.delivered_at >= start)
                and (end is None or row.delivered_at <= end)
            ]
        if customer_name:
            needle = customer_name.lower()
            rows = [row for row in rows if needle in (row.customer_name or "").lower()]

        return sorted(rows, key=lambda r: r.delivered_at or r.cancelled_at or r.updated_at, reverse=True)

    def agent_delivery_stats(self, actor, period="month") -> AgentDeliveryStats:
        self._require_agent(actor, "delivery statistics")
        if period not in PERIODS:
            period = "month"

        now = self._clock.now()
        since = period_start(period, now)
        rows = self._rows(assigned_agent_id=actor.id)

        delivered = [r for r in rows if r.status == OrderStatus.DELIVERED.value and r.delivered_at >= since]
        cancelled = [
            r
            for r in rows
            if r.status == OrderStatus.CANCELLED.value and r.cancelled_at is not None and r.cancelled_at >= since
        ]

        by_day = {}
        for row in sorted(delivered, key=lambda r: r.delivered_at, reverse=True):
            by_day.setdefault(row.delivered_at.date().isoformat(), []).append(row)
        daily = [
            DailyDeliveries(
                date=day,
                count=len(day_rows),
                earnings=_amount(day_rows),
                order_ids=tuple(str(r.order_id) for r in day_rows),
            )
            for day, day_rows in by_day.items()
        ]

        return AgentDeliveryStats(
            agent_id=str(actor.id),
            period=period,
            period_start=since,
            period_end=now,
            delivered=len(delivered),
            cancelled=len(cancelled),
            earnings=_amount(delivered),
            assigned_now=sum(1 for r in rows if r.status == OrderStatus.ASSIGNED.value),
            out_for_delivery_now=sum(1 for r in rows if r.status == OrderStatus.OUT_FOR_DELIVERY.value),
            total_delivered=sum(1 for r in rows if r.status == OrderStatus.DELIVERED.value),
            daily=daily,
        )
