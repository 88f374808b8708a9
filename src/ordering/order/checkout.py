"""Checkout: turns a priced cart into a pending order with reserved stock.

    resolve agency → (inventory locks) quote → place order + reserve stock
    in one unit of work → notify `order_created`

Pricing and agency errors surface before anything is written. A reservation
failure rolls back the unit of work, so no order exists without its stock.
When another worker saves an inventory row first, checkout prices and
reserves again against the new stock level.
"""

from dataclasses import dataclass, field

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ExpectedVersionError, ValidationError
from protean.utils.globals import current_domain

from ordering.actors import Actor
from ordering.assignment.resolver import AssignmentResolver
from ordering.clock import Clock, SystemClock
from ordering.errors import ConcurrentUpdate, OrderingError
from ordering.inventory.reservation import InventoryReservation
from ordering.notifications.emitter import OrderEventEmitter
from ordering.notifications.port import NotificationType
from ordering.order.order import DeliveryMode, Order
from ordering.pricing.engine import LineSelection, Location, PricingEngine

logger = structlog.get_logger(__name__)

# Optimistic-version retries before checkout gives up on a busy inventory row
WRITE_ATTEMPTS = 3


@dataclass
class CheckoutRequest:
    customer_id: str
    customer: dict
    lines: list[LineSelection]
    agency_id: str | None = None
    delivery_mode: str = DeliveryMode.HOME_DELIVERY.value
    coupon_code: str | None = None
    payment_method: str | None = None
    location: Location | None = field(default=None)

    def delivery_location(self) -> Location | None:
        """The explicit location, else the coordinates on the customer snapshot."""
        if self.location is not None:
            return self.location
        latitude = self.customer.get("latitude")
        longitude = self.customer.get("longitude")
        if latitude is None or longitude is None:
            return None
        return Location(latitude, longitude)


class Checkout:
    def __init__(
        self,
        emitter: OrderEventEmitter,
        pricing: PricingEngine | None = None,
        reservation: InventoryReservation | None = None,
        resolver: AssignmentResolver | None = None,
        clock: Clock | None = None,
    ):
        self._emitter = emitter
        self._pricing = pricing or PricingEngine()
        self._reservation = reservation or InventoryReservation()
        self._resolver = resolver or AssignmentResolver()
        self._clock = clock or SystemClock()

    def place_order(self, request: CheckoutRequest) -> Order:
        if not request.customer_id:
            raise ValidationError({"customer_id": ["A customer is required to place an order"]})
        if not request.customer or not request.customer.get("name"):
            raise ValidationError({"customer": ["Customer name is required"]})

        try:
            agency = self._resolver.resolve_agency(
                request.lines, agency_id=request.agency_id, delivery_mode=request.delivery_mode
            )

            with self._reservation.locked(agency.id, request.lines):
                for attempt in range(1, WRITE_ATTEMPTS + 1):
                    quote = self._pricing.quote(
                        agency.id,
                        request.lines,
                        delivery_mode=request.delivery_mode,
                        coupon_code=request.coupon_code,
                        location=request.delivery_location(),
                    )

                    now = self._clock.now()
                    try:
                        with UnitOfWork():
                            order = Order.place(
                                customer_id=request.customer_id,
                                customer=request.customer,
                                quote=quote,
                                now=now,
                                payment_method=request.payment_method,
                            )
                            self._reservation.reserve(agency.id, quote.lines, reference=str(order.id))
                            current_domain.repository_for(Order).add(order)
                        break
                    except ExpectedVersionError:
                        # Stock moved under another worker; price and reserve again
                        logger.warning("Inventory changed during checkout", agency_id=str(agency.id), attempt=attempt)
                else:
                    raise ConcurrentUpdate("AgencyInventory", agency.id)
        except OrderingError as exc:
            logger.warning(
                "Checkout refused",
                customer_id=str(request.customer_id),
                kind=exc.kind,
                messages=exc.messages,
            )
            raise

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            agency_id=str(order.agency_id),
            total_amount=order.total_amount,
        )
        customer = Actor.customer(request.customer_id, request.customer.get("name"))
        self._emitter.emit(NotificationType.ORDER_CREATED, order, customer)
        return order
