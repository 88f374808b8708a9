"""Calling actors and the capabilities their roles grant.

The identity context hands every state-transition call an `Actor`. Roles map
to a fixed capability set once; guards only ever ask `actor.can(...)`.
"""

from dataclasses import dataclass, field
from enum import Enum

from ordering.errors import Unauthorized


class ActorRole(Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    AGENCY = "agency"
    AGENT = "agent"
    SYSTEM = "system"


class Capability(Enum):
    CONFIRM = "confirm"
    ASSIGN_AGENT = "assign_agent"
    DISPATCH = "dispatch"
    VERIFY_DELIVERY = "verify_delivery"
    HAND_OVER_PICKUP = "hand_over_pickup"
    CANCEL = "cancel"
    CANCEL_AFTER_ASSIGNMENT = "cancel_after_assignment"
    REQUEST_RETURN = "request_return"
    REVIEW_RETURN = "review_return"
    REORDER = "reorder"
    ANNOTATE = "annotate"


_CAPABILITIES = {
    ActorRole.CUSTOMER: frozenset(
        {
            Capability.CANCEL,
            Capability.REQUEST_RETURN,
            Capability.REORDER,
        }
    ),
    ActorRole.ADMIN: frozenset(
        {
            Capability.CONFIRM,
            Capability.ASSIGN_AGENT,
            Capability.DISPATCH,
            Capability.VERIFY_DELIVERY,
            Capability.HAND_OVER_PICKUP,
            Capability.CANCEL,
            Capability.CANCEL_AFTER_ASSIGNMENT,
            Capability.REQUEST_RETURN,
            Capability.REVIEW_RETURN,
            Capability.ANNOTATE,
        }
    ),
    ActorRole.AGENCY: frozenset(
        {
            Capability.CONFIRM,
            Capability.ASSIGN_AGENT,
            Capability.DISPATCH,
            Capability.VERIFY_DELIVERY,
            Capability.HAND_OVER_PICKUP,
            Capability.CANCEL,
            Capability.CANCEL_AFTER_ASSIGNMENT,
            Capability.REVIEW_RETURN,
            Capability.ANNOTATE,
        }
    ),
    ActorRole.AGENT: frozenset(
        {
            Capability.DISPATCH,
            Capability.VERIFY_DELIVERY,
            Capability.ANNOTATE,
        }
    ),
    ActorRole.SYSTEM: frozenset(
        {
            Capability.CONFIRM,
            Capability.ASSIGN_AGENT,
            Capability.CANCEL,
            Capability.CANCEL_AFTER_ASSIGNMENT,
        }
    ),
}


@dataclass(frozen=True)
class Actor:
    """Who is asking. `agency_id` is set for agency owners and agents."""

    role: ActorRole
    id: str | None = None
    name: str | None = None
    agency_id: str | None = None
    capabilities: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        role = ActorRole(self.role)
        object.__setattr__(self, "role", role)
        object.__setattr__(self, "capabilities", _CAPABILITIES[role])

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            raise Unauthorized(self.role.value, capability.value)

    def require_scope(self, order) -> None:
        """Refuse actors acting on orders outside their reach."""
        if self.role is ActorRole.CUSTOMER and str(order.customer_id) != str(self.id):
            raise Unauthorized(self.role.value, "act on this order", "Order belongs to another customer")
        if self.role in (ActorRole.AGENCY, ActorRole.AGENT) and str(order.agency_id) != str(self.agency_id):
            raise Unauthorized(self.role.value, "act on this order", "Order belongs to another agency")
        if self.role is ActorRole.AGENT and str(order.assigned_agent_id) != str(self.id):
            raise Unauthorized(self.role.value, "act on this order", "Order is not assigned to this agent")

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=ActorRole.SYSTEM, id="system", name="System")

    @classmethod
    def admin(cls, id: str, name: str | None = None) -> "Actor":
        return cls(role=ActorRole.ADMIN, id=id, name=name)

    @classmethod
    def customer(cls, id: str, name: str | None = None) -> "Actor":
        return cls(role=ActorRole.CUSTOMER, id=id, name=name)

    @classmethod
    def agency(cls, id: str, agency_id: str, name: str | None = None) -> "Actor":
        return cls(role=ActorRole.AGENCY, id=id, name=name, agency_id=agency_id)

    @classmethod
    def agent(cls, id: str, agency_id: str, name: str | None = None) -> "Actor":
        return cls(role=ActorRole.AGENT, id=id, name=name, agency_id=agency_id)
