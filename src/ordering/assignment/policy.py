"""Auto-dispatch for agencies that accept orders without review."""

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.actors import Actor
from ordering.agency.agency import Agency
from ordering.errors import OrderingError
from ordering.order.order import OrderStatus

logger = structlog.get_logger(__name__)


class AutoDispatchPolicy:
    """Confirms a new order as `system` and hands it to the first online agent.

    The order is already placed when the policy runs, so a refusal here never
    fails the checkout: the order is left where the policy stopped and the
    agency picks it up by hand.
    """

    def __init__(self, lifecycle, resolver):
        self._lifecycle = lifecycle
        self._resolver = resolver

    def apply(self, order):
        agency = current_domain.repository_for(Agency).get(order.agency_id)
        if not agency.auto_accept_orders:
            return order

        try:
            return self._dispatch(order, agency)
        except (OrderingError, ValidationError) as exc:
            messages = getattr(exc, "messages", {})
            logger.warning(
                "Auto-dispatch stopped",
                order_id=str(order.id),
                agency_id=str(agency.id),
                kind=getattr(exc, "kind", "validation"),
                messages=dict(messages),
            )
            return self._lifecycle.load(order.id)

    def _dispatch(self, order, agency):
        system = Actor.system()
        order = self._lifecycle.confirm(order.id, system, expected_status=OrderStatus.PENDING)
        if order.is_pickup:
            return order

        agents = self._resolver.list_eligible_agents(order.id)
        if not agents:
            logger.info("No online agent for auto-dispatch", order_id=str(order.id), agency_id=str(agency.id))
            return order

        return self._lifecycle.assign_agent(order.id, agents[0].id, system, expected_status=OrderStatus.CONFIRMED)
