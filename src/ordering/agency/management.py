"""Agency and agent administration commands."""

from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.agency.agency import Agency, AgencyStatus
from ordering.agency.agent import AgentStatus, DeliveryAgent
from ordering.clock import SystemClock
from ordering.domain import ordering


@ordering.command(part_of="Agency")
class RegisterAgency:
    name: String(required=True, max_length=255)
    email: String(max_length=254)
    phone: String(max_length=20)
    address: String(max_length=500)
    city: String(max_length=100)
    pincode: String(max_length=10)
    latitude: Float()
    longitude: Float()
    auto_accept_orders: Boolean(default=False)
    pickup_enabled: Boolean(default=True)


@ordering.command(part_of="Agency")
class UpdateAgencySettings:
    agency_id: Identifier(required=True)
    status: String(choices=AgencyStatus)
    auto_accept_orders: Boolean()
    pickup_enabled: Boolean()


@ordering.command(part_of="DeliveryAgent")
class RegisterDeliveryAgent:
    agency_id: Identifier(required=True)
    name: String(required=True, max_length=255)
    email: String(max_length=254)
    phone: String(max_length=20)
    vehicle_number: String(max_length=20)
    status: String(choices=AgentStatus, default=AgentStatus.OFFLINE.value)
    joined_at: DateTime()


@ordering.command(part_of="DeliveryAgent")
class SetAgentAvailability:
    agent_id: Identifier(required=True)
    status: String(required=True, choices=AgentStatus)


@ordering.command_handler(part_of=Agency)
class AgencyManagementHandler:
    @handle(RegisterAgency)
    def register_agency(self, command):
        agency = Agency.register(
            name=command.name,
            email=command.email,
            phone=command.phone,
            address=command.address,
            city=command.city,
            pincode=command.pincode,
            latitude=command.latitude,
            longitude=command.longitude,
            auto_accept_orders=command.auto_accept_orders,
            pickup_enabled=command.pickup_enabled,
        )
        current_domain.repository_for(Agency).add(agency)
        return str(agency.id)

    @handle(UpdateAgencySettings)
    def update_settings(self, command):
        repo = current_domain.repository_for(Agency)
        agency = repo.get(command.agency_id)
        agency.update_settings(
            status=command.status,
            auto_accept_orders=command.auto_accept_orders,
            pickup_enabled=command.pickup_enabled,
        )
        repo.add(agency)


@ordering.command_handler(part_of=DeliveryAgent)
class DeliveryAgentManagementHandler:
    @handle(RegisterDeliveryAgent)
    def register_agent(self, command):
        current_domain.repository_for(Agency).get(command.agency_id)

        agent = DeliveryAgent.enlist(
            agency_id=command.agency_id,
            name=command.name,
            email=command.email,
            phone=command.phone,
            vehicle_number=command.vehicle_number,
            status=command.status,
            joined_at=command.joined_at or SystemClock().now(),
        )
        current_domain.repository_for(DeliveryAgent).add(agent)
        return str(agent.id)

    @handle(SetAgentAvailability)
    def set_availability(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        agent.set_availability(command.status)
        repo.add(agent)
