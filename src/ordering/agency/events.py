from protean.fields import Boolean, Identifier, String

from ordering.domain import ordering


@ordering.event(part_of="Agency")
class AgencyRegistered:
    __version__ = 1

    agency_id: Identifier(required=True)
    name: String(required=True)
    city: String()


@ordering.event(part_of="Agency")
class AgencySettingsUpdated:
    __version__ = 1

    agency_id: Identifier(required=True)
    status: String(required=True)
    auto_accept_orders: Boolean()
    pickup_enabled: Boolean()


@ordering.event(part_of="DeliveryAgent")
class AgentRegistered:
    __version__ = 1

    agent_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    name: String(required=True)


@ordering.event(part_of="DeliveryAgent")
class AgentAvailabilityChanged:
    __version__ = 1

    agent_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    status: String(required=True)
