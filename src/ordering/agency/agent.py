"""DeliveryAgent aggregate and its finder repository."""

from enum import Enum

from protean.fields import DateTime, Identifier, String

from ordering.domain import ordering


class AgentStatus(Enum):
    ONLINE = "online"
    OFFLINE = "offline"


@ordering.aggregate
class DeliveryAgent:
    """A courier belonging to exactly one agency.

    The online/offline status is the only availability signal the assignment
    resolver looks at.
    """

    agency_id: Identifier(required=True)
    name: String(required=True, max_length=255)
    email: String(max_length=254)
    phone: String(max_length=20)
    vehicle_number: String(max_length=20)
    status: String(choices=AgentStatus, default=AgentStatus.OFFLINE.value)
    joined_at: DateTime(required=True)

    @property
    def is_online(self) -> bool:
        return self.status == AgentStatus.ONLINE.value

    @classmethod
    def enlist(cls, agency_id, name, **details):
        from ordering.agency.events import AgentRegistered

        agent = cls(agency_id=agency_id, name=name, **details)
        agent.raise_(AgentRegistered(agent_id=agent.id, agency_id=agency_id, name=name))
        return agent

    def set_availability(self, status):
        from ordering.agency.events import AgentAvailabilityChanged

        status = AgentStatus(status)
        if self.status == status.value:
            return
        self.status = status.value
        self.raise_(AgentAvailabilityChanged(agent_id=self.id, agency_id=self.agency_id, status=status.value))


@ordering.repository(part_of=DeliveryAgent)
class DeliveryAgentRepository:
    def for_agency(self, agency_id) -> list:
        return self._dao.query.filter(agency_id=str(agency_id)).all().items

    def online_for_agency(self, agency_id) -> list:
        agents = self._dao.query.filter(agency_id=str(agency_id), status=AgentStatus.ONLINE.value).all().items
        return sorted(agents, key=lambda a: (a.joined_at, str(a.id)))
