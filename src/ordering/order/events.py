"""Domain events for the Order aggregate.

Every transition records who performed it (`actor_role`, `actor_id`,
`actor_name`) so the event stream doubles as the audit trail.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A priced order was placed at checkout and stock was reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    customer_name = String()
    agency_id = Identifier(required=True)
    delivery_mode = String(required=True)
    line_count = Integer(required=True)
    total_amount = Float(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderConfirmed:
    """The agency (or an admin) accepted the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    confirmed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class AgentAssigned:
    """A delivery agent was dispatched and a delivery code issued."""

    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    assigned_at = DateTime(required=True)
    otp_expires_at = DateTime(required=True)


@ordering.event(part_of="Order")
class AgentReassigned:
    """An assigned order moved to a different agent, with a new delivery code."""

    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    previous_agent_id = Identifier()
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    assigned_at = DateTime(required=True)
    otp_expires_at = DateTime(required=True)


@ordering.event(part_of="Order")
class DeliveryCodeIssued:
    """A fresh delivery code replaced the previous one."""

    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    otp_expires_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderOutForDelivery:
    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    out_for_delivery_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    """Goods were handed over, via delivery code or pickup at the agency."""

    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    payment_received = Boolean(default=False)
    handover = String(required=True)  # "otp" or "pickup"
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    reason = String()
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class ReturnRequested:
    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    reason = String(required=True)
    returned_at = DateTime(required=True)


@ordering.event(part_of="Order")
class ReturnApproved:
    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    approved_at = DateTime(required=True)


@ordering.event(part_of="Order")
class ReturnRejected:
    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    reason = String()
    rejected_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderReordered:
    """A cancelled or returned order was re-priced and re-reserved."""

    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    total_amount = Float(required=True)
    reordered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderNoteAdded:
    __version__ = 1

    order_id = Identifier(required=True)
    actor_role = String(required=True)
    actor_id = String()
    actor_name = String()
    note = Text(required=True)
