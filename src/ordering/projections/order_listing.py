"""Order listing: one row per order for status boards, customer summaries and agent history."""

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.events import (
    AgentAssigned,
    AgentReassigned,
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderOutForDelivery,
    OrderPlaced,
    OrderReordered,
    ReturnApproved,
    ReturnRejected,
    ReturnRequested,
)
from ordering.order.order import Order, OrderStatus


@ordering.projection
class OrderListing:
    order_id = Identifier(identifier=True, required=True)
    order_number = String(max_length=20)
    customer_id = Identifier(required=True)
    customer_name = String(max_length=255)
    agency_id = Identifier(required=True)
    assigned_agent_id = Identifier()
    status = String(required=True)
    delivery_mode = String()
    total_amount = Float(default=0.0)
    placed_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    updated_at = DateTime()


@ordering.projector(projector_for=OrderListing, aggregates=[Order])
class OrderListingProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        current_domain.repository_for(OrderListing).add(
            OrderListing(
                order_id=event.order_id,
                order_number=event.order_number,
                customer_id=event.customer_id,
                customer_name=event.customer_name,
                agency_id=event.agency_id,
                status=OrderStatus.PENDING.value,
                delivery_mode=event.delivery_mode,
                total_amount=event.total_amount,
                placed_at=event.placed_at,
                updated_at=event.placed_at,
            )
        )

    def _update(self, order_id, updated_at, **changes):
        repo = current_domain.repository_for(OrderListing)
        record = repo.get(order_id)
        for field_name, value in changes.items():
            setattr(record, field_name, value)
        record.updated_at = updated_at
        repo.add(record)

    @on(OrderConfirmed)
    def on_order_confirmed(self, event):
        self._update(event.order_id, event.confirmed_at, status=OrderStatus.CONFIRMED.value)

    @on(AgentAssigned)
    def on_agent_assigned(self, event):
        self._update(
            event.order_id, event.assigned_at, status=OrderStatus.ASSIGNED.value, assigned_agent_id=event.agent_id
        )

    @on(AgentReassigned)
    def on_agent_reassigned(self, event):
        self._update(event.order_id, event.assigned_at, assigned_agent_id=event.agent_id)

    @on(OrderOutForDelivery)
    def on_out_for_delivery(self, event):
        self._update(event.order_id, event.out_for_delivery_at, status=OrderStatus.OUT_FOR_DELIVERY.value)

    @on(OrderDelivered)
    def on_order_delivered(self, event):
        self._update(
            event.order_id, event.delivered_at, status=OrderStatus.DELIVERED.value, delivered_at=event.delivered_at
        )

    @on(OrderCancelled)
    def on_order_cancelled(self, event):
        self._update(
            event.order_id, event.cancelled_at, status=OrderStatus.CANCELLED.value, cancelled_at=event.cancelled_at
        )

    @on(ReturnRequested)
    def on_return_requested(self, event):
        self._update(event.order_id, event.returned_at, status=OrderStatus.RETURNED.value)

    @on(ReturnApproved)
    def on_return_approved(self, event):
        self._update(event.order_id, event.approved_at, status=OrderStatus.RETURN_APPROVED.value)

    @on(ReturnRejected)
    def on_return_rejected(self, event):
        self._update(event.order_id, event.rejected_at, status=OrderStatus.RETURN_REJECTED.value)

    @on(OrderReordered)
    def on_order_reordered(self, event):
        self._update(
            event.order_id,
            event.reordered_at,
            status=OrderStatus.PENDING.value,
            total_amount=event.total_amount,
            assigned_agent_id=None,
            delivered_at=None,
            cancelled_at=None,
        )
