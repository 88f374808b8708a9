"""Assignment resolver: which agency serves an order, and which agents may carry it.

The resolver never moves an order. Assigning an agent is a state transition
and goes through `OrderStateMachine.assign_agent`, which consults
`ensure_assignable` as its guard.
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from ordering.agency.agency import Agency
from ordering.agency.agent import DeliveryAgent
from ordering.errors import InvalidItem, MultiAgencyCart, NotFound
from ordering.inventory.inventory import AgencyInventory
from ordering.order.order import DeliveryMode, Order

logger = structlog.get_logger(__name__)


class AssignmentResolver:
    def resolve_agency(self, lines, agency_id=None, delivery_mode=DeliveryMode.HOME_DELIVERY.value) -> Agency:
        """Pick the single agency serving every line of a cart."""
        requested = {str(line.agency_id) for line in lines if getattr(line, "agency_id", None)}
        if agency_id:
            requested.add(str(agency_id))
        if len(requested) > 1:
            raise MultiAgencyCart(requested)

        chosen = requested.pop() if requested else self._infer_agency(lines)
        agency = self._load_agency(chosen)

        if not agency.is_active:
            raise ValidationError({"agency_id": [f"Agency {agency.name} is not accepting orders"]})
        if getattr(delivery_mode, "value", delivery_mode) == DeliveryMode.PICKUP.value and not agency.pickup_enabled:
            raise ValidationError({"delivery_mode": [f"Agency {agency.name} does not offer pickup"]})
        return agency

    def _infer_agency(self, lines) -> str:
        inventory = current_domain.repository_for(AgencyInventory)
        candidates = None
        for line in lines:
            serving = {str(row.agency_id) for row in inventory.stocking(line.product_id)}
            if not serving:
                raise InvalidItem(line.product_id, f"No agency stocks product {line.product_id}")
            if candidates is not None and not candidates & serving:
                raise MultiAgencyCart(candidates | serving)
            candidates = serving if candidates is None else candidates & serving

        if len(candidates) > 1:
            raise ValidationError({"agency_id": ["Several agencies serve these items; choose one"]})
        return candidates.pop()

    def _load_agency(self, agency_id) -> Agency:
        try:
            return current_domain.repository_for(Agency).get(agency_id)
        except ObjectNotFoundError:
            raise NotFound("Agency", agency_id) from None

    def list_eligible_agents(self, order_id) -> list:
        """Online agents of the order's agency, longest-serving first."""
        try:
            order = current_domain.repository_for(Order).get(order_id)
        except ObjectNotFoundError:
            raise NotFound("Order", order_id) from None
        return current_domain.repository_for(DeliveryAgent).online_for_agency(order.agency_id)

    def ensure_assignable(self, order, agent_id) -> DeliveryAgent:
        try:
            agent = current_domain.repository_for(DeliveryAgent).get(agent_id)
        except ObjectNotFoundError:
            raise NotFound("DeliveryAgent", agent_id) from None

        if str(agent.agency_id) != str(order.agency_id):
            raise ValidationError({"agent_id": [f"Agent {agent.name} does not belong to the order's agency"]})
        if not agent.is_online:
            raise ValidationError({"agent_id": [f"Agent {agent.name} is offline"]})
        return agent
