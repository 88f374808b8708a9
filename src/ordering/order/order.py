"""Order aggregate: the core of the ordering domain.

The status field is the only authority on what may happen next. Timestamps
and actor attribution are recorded as side effects once a transition has
been allowed by `_TRANSITIONS`.

State Machine:
    PENDING → CONFIRMED → ASSIGNED → OUT_FOR_DELIVERY → DELIVERED
    CONFIRMED → DELIVERED (pickup handover only)
    PENDING/CONFIRMED/ASSIGNED → CANCELLED
    DELIVERED → RETURNED → RETURN_APPROVED | RETURN_REJECTED
    CANCELLED/RETURNED → PENDING (reorder)
"""

import secrets
import string
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from ordering.actors import ActorRole
from ordering.domain import ordering
from ordering.errors import IllegalTransition
from ordering.money import round2
from ordering.order.events import (
    AgentAssigned,
    AgentReassigned,
    DeliveryCodeIssued,
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderNoteAdded,
    OrderOutForDelivery,
    OrderPlaced,
    OrderReordered,
    ReturnApproved,
    ReturnRejected,
    ReturnRequested,
)
from ordering.pricing.tax import TaxType


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    RETURN_APPROVED = "return_approved"
    RETURN_REJECTED = "return_rejected"


class DeliveryMode(Enum):
    HOME_DELIVERY = "home_delivery"
    PICKUP = "pickup"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# State machine transition map
_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {
        OrderStatus.ASSIGNED,
        OrderStatus.CANCELLED,
        OrderStatus.DELIVERED,  # pickup handover
    },
    OrderStatus.ASSIGNED: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: {OrderStatus.PENDING},
    OrderStatus.RETURNED: {
        OrderStatus.RETURN_APPROVED,
        OrderStatus.RETURN_REJECTED,
        OrderStatus.PENDING,
    },
    OrderStatus.RETURN_APPROVED: set(),  # Terminal
    OrderStatus.RETURN_REJECTED: set(),  # Terminal
}

_PICKUP_ONLY = {(OrderStatus.CONFIRMED, OrderStatus.DELIVERED)}

# Only these states may be cancelled by the customer themselves
CUSTOMER_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

_ORDER_NUMBER_ALPHABET = string.digits + string.ascii_uppercase


def generate_order_number(now) -> str:
    millis = str(int(now.timestamp() * 1000))
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"ORD-{millis[-6:]}-{suffix}"


def is_legal(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _TRANSITIONS.get(current, set())


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class CustomerSnapshot:
    """Customer details copied onto the order at checkout.

    Later edits to the customer's profile never reach a placed order.
    """

    name = String(required=True, max_length=255)
    email = String(max_length=254)
    phone = String(max_length=20)
    address = String(max_length=500)
    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderLine:
    """A priced line item. Lines are never edited; a reorder replaces them all."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    variant_label = String(max_length=50)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    line_total = Float(required=True, min_value=0.0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=20)
    customer_id = Identifier(required=True)
    customer = ValueObject(CustomerSnapshot, required=True)
    delivery_mode = String(choices=DeliveryMode, default=DeliveryMode.HOME_DELIVERY.value)
    lines = HasMany(OrderLine)

    # Money
    subtotal = Float(default=0.0, min_value=0.0)
    tax_type = String(choices=TaxType, default=TaxType.NONE.value)
    tax_value = Float(default=0.0, min_value=0.0)
    tax_amount = Float(default=0.0, min_value=0.0)
    platform_charge = Float(default=0.0, min_value=0.0)
    delivery_charge = Float(default=0.0, min_value=0.0)
    delivery_distance = Float(min_value=0.0)
    coupon_code = String(max_length=50)
    coupon_discount = Float(default=0.0, min_value=0.0)
    total_amount = Float(default=0.0, min_value=0.0)

    # Payment
    payment_method = String(max_length=50, default="cash_on_delivery")
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_received = Boolean(default=False)

    # Assignment and delivery verification
    agency_id = Identifier(required=True)
    assigned_agent_id = Identifier()
    delivery_otp = String(max_length=6)
    otp_expires_at = DateTime()

    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)

    # Per-transition timestamps
    placed_at = DateTime()
    confirmed_at = DateTime()
    assigned_at = DateTime()
    out_for_delivery_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    returned_at = DateTime()
    return_approved_at = DateTime()
    return_rejected_at = DateTime()
    reordered_at = DateTime()
    updated_at = DateTime()

    # Actor attribution
    cancelled_by = String(choices=ActorRole)
    cancelled_by_id = Identifier()
    cancelled_by_name = String(max_length=255)
    returned_by = String(choices=ActorRole)
    returned_by_id = Identifier()
    returned_by_name = String(max_length=255)
    return_approved_by = String(choices=ActorRole)
    return_approved_by_id = Identifier()
    return_approved_by_name = String(max_length=255)
    return_rejected_by = String(choices=ActorRole)
    return_rejected_by_id = Identifier()
    return_rejected_by_name = String(max_length=255)

    # Evidence and notes
    cancellation_reason = String(max_length=500)
    return_reason = String(max_length=500)
    delivery_proof_image = String(max_length=500)
    delivery_note = Text()
    admin_notes = Text()
    agent_notes = Text()

    @invariant.post
    def total_balances_components(self):
        expected = (
            round2(self.subtotal)
            + round2(self.tax_amount)
            + round2(self.platform_charge)
            + round2(self.delivery_charge)
            - round2(self.coupon_discount)
        )
        if round2(self.total_amount) != expected:
            raise ValidationError(
                {"total_amount": [f"Total {self.total_amount} does not match its components ({expected})"]}
            )

    @invariant.post
    def order_has_lines(self):
        if not self.lines:
            raise ValidationError({"lines": ["An order needs at least one line"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, customer_id, customer, quote, now, payment_method=None, order_number=None):
        """Create a pending order from a priced quote.

        Args:
            customer_id: The customer placing the order.
            customer: Dict with name, email, phone, address and optional
                latitude/longitude, frozen onto the order.
            quote: A pricing `Quote` for a single agency.
            now: Placement time, used for `placed_at` and the order number.
        """
        order = cls(
            order_number=order_number or generate_order_number(now),
            customer_id=customer_id,
            customer=CustomerSnapshot(**customer),
            delivery_mode=quote.delivery_mode,
            agency_id=quote.agency_id,
            lines=[_line_from(priced) for priced in quote.lines],
            payment_method=payment_method or "cash_on_delivery",
            placed_at=now,
            updated_at=now,
            **quote.charges(),
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=str(customer_id),
                customer_name=customer.get("name"),
                agency_id=str(quote.agency_id),
                delivery_mode=quote.delivery_mode,
                line_count=len(quote.lines),
                total_amount=quote.total,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_pickup(self) -> bool:
        return self.delivery_mode == DeliveryMode.PICKUP.value

    def assert_can_transition(self, target: OrderStatus):
        current = self.current_status
        if not is_legal(current, target):
            raise IllegalTransition(current.value, target.value)
        if (current, target) in _PICKUP_ONLY and not self.is_pickup:
            raise IllegalTransition(current.value, target.value, "only pickup orders are handed over at the agency")

    def _actor_fields(self, actor):
        return {
            "actor_role": actor.role.value,
            "actor_id": str(actor.id) if actor.id is not None else None,
            "actor_name": actor.name,
        }

    def _attribute(self, prefix, actor):
        setattr(self, f"{prefix}_by", actor.role.value)
        setattr(self, f"{prefix}_by_id", str(actor.id) if actor.id is not None else None)
        setattr(self, f"{prefix}_by_name", actor.name)

    # -------------------------------------------------------------------
    # Order lifecycle transitions
    # -------------------------------------------------------------------
    def confirm(self, actor, now):
        self.assert_can_transition(OrderStatus.CONFIRMED)
        with atomic_change(self):
            self.status = OrderStatus.CONFIRMED.value
            self.confirmed_at = now
            self.updated_at = now
        self.raise_(OrderConfirmed(order_id=str(self.id), confirmed_at=now, **self._actor_fields(actor)))

    def assign_agent(self, agent_id, code, expires_at, actor, now):
        self.assert_can_transition(OrderStatus.ASSIGNED)
        if self.is_pickup:
            raise ValidationError({"delivery_mode": ["Pickup orders are handed over at the agency"]})
        with atomic_change(self):
            self.status = OrderStatus.ASSIGNED.value
            self.assigned_agent_id = str(agent_id)
            self.assigned_at = now
            self.delivery_otp = code
            self.otp_expires_at = expires_at
            self.updated_at = now
        self.raise_(
            AgentAssigned(
                order_id=str(self.id),
                agent_id=str(agent_id),
                assigned_at=now,
                otp_expires_at=expires_at,
                **self._actor_fields(actor),
            )
        )

    def reassign_agent(self, agent_id, code, expires_at, actor, now):
        """Hand an assigned order to a different agent with a fresh code."""
        if self.current_status is not OrderStatus.ASSIGNED:
            raise IllegalTransition(self.status, OrderStatus.ASSIGNED.value, "only an assigned order can change agent")
        if str(agent_id) == str(self.assigned_agent_id):
            raise ValidationError({"agent_id": ["The order is already assigned to this agent"]})
        previous = self.assigned_agent_id
        with atomic_change(self):
            self.assigned_agent_id = str(agent_id)
            self.assigned_at = now
            self.delivery_otp = code
            self.otp_expires_at = expires_at
            self.updated_at = now
        self.raise_(
            AgentReassigned(
                order_id=str(self.id),
                agent_id=str(agent_id),
                previous_agent_id=previous,
                assigned_at=now,
                otp_expires_at=expires_at,
                **self._actor_fields(actor),
            )
        )

    def reissue_delivery_code(self, code, expires_at, actor, now):
        """Replace the delivery code without moving the order."""
        if self.current_status not in (OrderStatus.ASSIGNED, OrderStatus.OUT_FOR_DELIVERY):
            raise IllegalTransition(
                self.status, OrderStatus.OUT_FOR_DELIVERY.value, "a delivery code can only be resent to a dispatched order"
            )
        with atomic_change(self):
            self.delivery_otp = code
            self.otp_expires_at = expires_at
            self.updated_at = now
        self.raise_(DeliveryCodeIssued(order_id=str(self.id), otp_expires_at=expires_at, **self._actor_fields(actor)))

    def mark_out_for_delivery(self, actor, now):
        self.assert_can_transition(OrderStatus.OUT_FOR_DELIVERY)
        with atomic_change(self):
            self.status = OrderStatus.OUT_FOR_DELIVERY.value
            self.out_for_delivery_at = now
            self.updated_at = now
        self.raise_(OrderOutForDelivery(order_id=str(self.id), out_for_delivery_at=now, **self._actor_fields(actor)))

    def assert_awaiting_delivery_code(self):
        """Only an order out for delivery can be closed with a delivery code."""
        if self.current_status is not OrderStatus.OUT_FOR_DELIVERY:
            raise IllegalTransition(self.status, OrderStatus.DELIVERED.value)

    def deliver(self, actor, now, payment_received=False, note=None, proof_image=None):
        """Close the delivery once the code has been checked."""
        self.assert_awaiting_delivery_code()
        with atomic_change(self):
            self.status = OrderStatus.DELIVERED.value
            self.delivered_at = now
            self.delivery_otp = None
            self.otp_expires_at = None
            self.payment_received = bool(payment_received)
            if payment_received:
                self.payment_status = PaymentStatus.PAID.value
            if note:
                self.delivery_note = note
            if proof_image:
                self.delivery_proof_image = proof_image
            self.updated_at = now
        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                delivered_at=now,
                payment_received=self.payment_received,
                handover="otp",
                **self._actor_fields(actor),
            )
        )

    def hand_over(self, actor, now, note=None):
        """Pickup orders: the customer collects and pays at the agency."""
        self.assert_can_transition(OrderStatus.DELIVERED)
        if not self.is_pickup:
            raise IllegalTransition(self.status, OrderStatus.DELIVERED.value, "home deliveries close with a delivery code")
        with atomic_change(self):
            self.status = OrderStatus.DELIVERED.value
            self.delivered_at = now
            self.payment_received = True
            self.payment_status = PaymentStatus.PAID.value
            if note:
                self.delivery_note = note
            self.updated_at = now
        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                delivered_at=now,
                payment_received=True,
                handover="pickup",
                **self._actor_fields(actor),
            )
        )

    def cancel(self, actor, now, reason=None):
        self.assert_can_transition(OrderStatus.CANCELLED)
        with atomic_change(self):
            self.status = OrderStatus.CANCELLED.value
            self.cancelled_at = now
            self.cancellation_reason = reason
            self._attribute("cancelled", actor)
            self.delivery_otp = None
            self.otp_expires_at = None
            self.updated_at = now
        self.raise_(OrderCancelled(order_id=str(self.id), reason=reason, cancelled_at=now, **self._actor_fields(actor)))

    def request_return(self, actor, now, reason):
        self.assert_can_transition(OrderStatus.RETURNED)
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A reason is required to return an order"]})
        with atomic_change(self):
            self.status = OrderStatus.RETURNED.value
            self.returned_at = now
            self.return_reason = reason
            self._attribute("returned", actor)
            self.updated_at = now
        self.raise_(ReturnRequested(order_id=str(self.id), reason=reason, returned_at=now, **self._actor_fields(actor)))

    def approve_return(self, actor, now):
        self.assert_can_transition(OrderStatus.RETURN_APPROVED)
        with atomic_change(self):
            self.status = OrderStatus.RETURN_APPROVED.value
            self.return_approved_at = now
            self._attribute("return_approved", actor)
            self.updated_at = now
        self.raise_(ReturnApproved(order_id=str(self.id), approved_at=now, **self._actor_fields(actor)))

    def reject_return(self, actor, now, reason=None):
        self.assert_can_transition(OrderStatus.RETURN_REJECTED)
        with atomic_change(self):
            self.status = OrderStatus.RETURN_REJECTED.value
            self.return_rejected_at = now
            self._attribute("return_rejected", actor)
            if reason:
                self.admin_notes = _append_note(self.admin_notes, reason)
            self.updated_at = now
        self.raise_(ReturnRejected(order_id=str(self.id), reason=reason, rejected_at=now, **self._actor_fields(actor)))

    def reorder(self, quote, actor, now):
        """Start a fresh cycle with newly priced lines.

        The previous cancellation or return attribution stays on the order;
        the delivery cycle and assignment are cleared.
        """
        self.assert_can_transition(OrderStatus.PENDING)
        with atomic_change(self):
            for line in list(self.lines):
                self.remove_lines(line)
            for priced in quote.lines:
                self.add_lines(_line_from(priced))
            for field_name, value in quote.charges().items():
                setattr(self, field_name, value)

            self.status = OrderStatus.PENDING.value
            self.reordered_at = now
            self.confirmed_at = None
            self.assigned_at = None
            self.out_for_delivery_at = None
            self.delivered_at = None
            self.assigned_agent_id = None
            self.delivery_otp = None
            self.otp_expires_at = None
            self.payment_status = PaymentStatus.PENDING.value
            self.payment_received = False
            self.delivery_note = None
            self.delivery_proof_image = None
            self.updated_at = now
        self.raise_(
            OrderReordered(
                order_id=str(self.id),
                total_amount=self.total_amount,
                reordered_at=now,
                **self._actor_fields(actor),
            )
        )

    def add_note(self, actor, note, now):
        if not note or not note.strip():
            raise ValidationError({"note": ["Note cannot be empty"]})
        if actor.role is ActorRole.AGENT:
            self.agent_notes = _append_note(self.agent_notes, note)
        else:
            self.admin_notes = _append_note(self.admin_notes, note)
        self.updated_at = now
        self.raise_(OrderNoteAdded(order_id=str(self.id), note=note, **self._actor_fields(actor)))


def _line_from(priced) -> OrderLine:
    return OrderLine(
        product_id=priced.product_id,
        product_name=priced.product_name,
        variant_label=priced.variant_label,
        unit_price=priced.unit_price,
        quantity=priced.quantity,
        line_total=priced.line_total,
    )


def _append_note(existing, note):
    return f"{existing}\n{note}" if existing else note


@ordering.repository(part_of=Order)
class OrderRepository:
    def by_number(self, order_number):
        records = self._dao.query.filter(order_number=order_number).all().items
        return records[0] if records else None

    def for_customer(self, customer_id) -> list:
        return self._dao.query.filter(customer_id=str(customer_id)).all().items

    def for_agency(self, agency_id, status=None) -> list:
        filters = {"agency_id": str(agency_id)}
        if status is not None:
            filters["status"] = OrderStatus(status).value
        return self._dao.query.filter(**filters).all().items
