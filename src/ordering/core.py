"""Composition root for the order core.

Wires the collaborators once and hands out a single object the surrounding
API layer calls. The notification dispatcher and the clock are injected here;
nothing below this module looks them up globally.
"""

import structlog
from protean.utils.globals import current_domain

from ordering.agency.management import RegisterDeliveryAgent
from ordering.assignment.policy import AutoDispatchPolicy
from ordering.assignment.resolver import AssignmentResolver
from ordering.clock import Clock, SystemClock
from ordering.inventory.reservation import InventoryReservation
from ordering.notifications import build_dispatcher
from ordering.notifications.port import NotificationDispatcher
from ordering.order.checkout import Checkout, CheckoutRequest
from ordering.order.lifecycle import OrderStateMachine
from ordering.order.order import Order
from ordering.pricing.distance import DistanceCalculator
from ordering.pricing.engine import PricingEngine
from ordering.pricing.management import SweepExpiredCoupons
from ordering.projections.queries import OrderQueries
from ordering.settings import OrderingSettings
from ordering.utils.locking import KeyedLocks
from ordering.verification.otp import DeliveryVerifier

logger = structlog.get_logger(__name__)


class OrderingCore:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        settings: OrderingSettings,
        distance: DistanceCalculator | None = None,
    ):
        self.dispatcher = dispatcher
        self.clock = clock
        self.settings = settings

        self.locks = KeyedLocks()
        self.pricing = PricingEngine(distance=distance, clock=clock)
        self.reservation = InventoryReservation(self.locks)
        self.resolver = AssignmentResolver()
        self.verifier = DeliveryVerifier(clock=clock, ttl=settings.otp_ttl)
        self.lifecycle = OrderStateMachine(
            dispatcher,
            clock=clock,
            settings=settings,
            locks=self.locks,
            reservation=self.reservation,
            resolver=self.resolver,
            verifier=self.verifier,
            pricing=self.pricing,
        )
        self.checkout = Checkout(
            self.lifecycle.emitter,
            pricing=self.pricing,
            reservation=self.reservation,
            resolver=self.resolver,
            clock=clock,
        )
        self.auto_dispatch = AutoDispatchPolicy(self.lifecycle, self.resolver)
        self.queries = OrderQueries(clock)

    def quote(self, request: CheckoutRequest):
        """Price a cart without placing it."""
        agency = self.resolver.resolve_agency(
            request.lines, agency_id=request.agency_id, delivery_mode=request.delivery_mode
        )
        return self.pricing.quote(
            agency.id,
            request.lines,
            delivery_mode=request.delivery_mode,
            coupon_code=request.coupon_code,
            location=request.delivery_location(),
        )

    def place_order(self, request: CheckoutRequest) -> Order:
        order = self.checkout.place_order(request)
        return self.auto_dispatch.apply(order)

    def list_eligible_agents(self, order_id) -> list:
        return self.resolver.list_eligible_agents(order_id)

    def assign_agent(self, order_id, agent_id, actor, expected_status=None) -> Order:
        return self.lifecycle.assign_agent(order_id, agent_id, actor, expected_status=expected_status)

    def get_order(self, order_id) -> Order:
        return self.lifecycle.load(order_id)

    def register_delivery_agent(self, agency_id, name, **details) -> str:
        """Enlist an agent, stamping `joined_at` from the core's clock."""
        command = RegisterDeliveryAgent(agency_id=agency_id, name=name, joined_at=self.clock.now(), **details)
        return current_domain.process(command, asynchronous=False)

    def sweep_expired_coupons(self) -> int:
        """Deactivate every coupon that has expired by the core's clock."""
        return current_domain.process(SweepExpiredCoupons(as_of=self.clock.now()), asynchronous=False)


def build_order_core(
    dispatcher: NotificationDispatcher | None = None,
    clock: Clock | None = None,
    settings: OrderingSettings | None = None,
    distance: DistanceCalculator | None = None,
) -> OrderingCore:
    """Build the order core inside an active domain context."""
    settings = settings or OrderingSettings.from_config(current_domain.config)
    dispatcher = dispatcher or build_dispatcher(settings.notification_dispatcher)
    clock = clock or SystemClock()

    logger.info(
        "Order core ready",
        dispatcher=type(dispatcher).__name__,
        return_window_hours=settings.return_window.total_seconds() / 3600,
        otp_ttl_minutes=settings.otp_ttl.total_seconds() / 60,
    )
    return OrderingCore(dispatcher, clock, settings, distance=distance)
