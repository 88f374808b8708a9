"""Order state machine: guarded, attributed, linearized transitions.

Every request follows the same path:

    lock order → load → capability and scope → already there? (no-op)
    → stale expectation? (StateConflict) → transition table → guards
    → change + stock effects in one unit of work → notify

The write is checked against the aggregate version it was loaded at. When
another worker saved first, the request starts over from the load; after
`WRITE_ATTEMPTS` it is refused with `StateConflict`. Notification happens
after the commit and never fails the request.
"""

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.actors import Capability
from ordering.assignment.resolver import AssignmentResolver
from ordering.clock import Clock, SystemClock
from ordering.errors import IllegalTransition, NotFound, OrderingError, StateConflict, Unauthorized
from ordering.inventory.reservation import InventoryReservation
from ordering.notifications.emitter import OrderEventEmitter
from ordering.notifications.port import NotificationDispatcher, NotificationType
from ordering.order.order import CUSTOMER_CANCELLABLE, Order, OrderStatus
from ordering.pricing.engine import LineSelection, Location, PricingEngine
from ordering.settings import OrderingSettings
from ordering.utils.locking import KeyedLocks, order_key
from ordering.utils.logging import request_context
from ordering.verification.otp import DeliveryVerifier

logger = structlog.get_logger(__name__)

# Optimistic-version retries before a write is reported as a conflict
WRITE_ATTEMPTS = 3


def _status(value) -> OrderStatus | None:
    if value is None:
        return None
    return OrderStatus(getattr(value, "value", value))


class OrderStateMachine:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        clock: Clock | None = None,
        settings: OrderingSettings | None = None,
        locks: KeyedLocks | None = None,
        reservation: InventoryReservation | None = None,
        resolver: AssignmentResolver | None = None,
        verifier: DeliveryVerifier | None = None,
        pricing: PricingEngine | None = None,
    ):
        self._clock = clock or SystemClock()
        self._settings = settings or OrderingSettings()
        self._locks = locks or KeyedLocks()
        self._reservation = reservation or InventoryReservation(self._locks)
        self._resolver = resolver or AssignmentResolver()
        self._verifier = verifier or DeliveryVerifier(self._clock, self._settings.otp_ttl)
        self._pricing = pricing or PricingEngine(clock=self._clock)
        self.emitter = OrderEventEmitter(dispatcher, self._clock)

    # -------------------------------------------------------------------
    # Core
    # -------------------------------------------------------------------
    def load(self, order_id) -> Order:
        try:
            return current_domain.repository_for(Order).get(order_id)
        except ObjectNotFoundError:
            raise NotFound("Order", order_id) from None

    def _transition(self, order_id, actor, target, capability, expected_status, change, already_applied=None):
        """Run one guarded transition.

        `change(order, now)` checks the transition-specific guards, mutates the
        order and any stock, and returns the notifications to send as a list
        of `(NotificationType, extra_payload)` pairs. `already_applied(order)`
        decides whether a repeated request is a no-op; by default that is the
        order already being in `target`.
        """
        if already_applied is None:

            def already_applied(order):
                return order.current_status is target

        with request_context(actor, order_id=str(order_id)):
            return self._apply(order_id, actor, target, capability, expected_status, change, already_applied)

    def _apply(self, order_id, actor, target, capability, expected_status, change, already_applied):
        expected = _status(expected_status)
        with self._locks.holding([order_key(order_id)]):
            try:
                for attempt in range(1, WRITE_ATTEMPTS + 1):
                    order = self.load(order_id)
                    actor.require(capability)
                    actor.require_scope(order)

                    current = order.current_status
                    if already_applied(order):
                        logger.info("Transition already applied", status=current.value)
                        return order

                    if expected is not None and expected is not current:
                        raise StateConflict(expected.value, current.value)

                    now = self._clock.now()
                    try:
                        with UnitOfWork():
                            notifications = change(order, now)
                            current_domain.repository_for(Order).add(order)
                        break
                    except ExpectedVersionError:
                        # Another writer saved first; start over from its version
                        logger.warning("Order changed during transition", target=target.value, attempt=attempt)
                else:
                    raise StateConflict((expected or current).value, self.load(order_id).status)
            except OrderingError as exc:
                logger.warning(
                    "Transition refused",
                    target=target.value,
                    kind=exc.kind,
                    messages=exc.messages,
                )
                raise

        logger.info("Order transitioned", from_status=current.value, to_status=order.status)
        for event_type, extra in notifications:
            self.emitter.emit(event_type, order, actor, **extra)
        return order

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def confirm(self, order_id, actor, expected_status=None) -> Order:
        def change(order, now):
            order.assert_can_transition(OrderStatus.CONFIRMED)
            order.confirm(actor, now)
            return [(NotificationType.ORDER_CONFIRMED, {})]

        return self._transition(order_id, actor, OrderStatus.CONFIRMED, Capability.CONFIRM, expected_status, change)

    def assign_agent(self, order_id, agent_id, actor, expected_status=None) -> Order:
        """Dispatch an agent, or hand an assigned order to a different one.

        Repeating the request for the agent already carrying the order is a
        no-op. Either way a fresh delivery code goes to the customer.
        """

        def already_applied(order):
            return order.current_status is OrderStatus.ASSIGNED and str(order.assigned_agent_id) == str(agent_id)

        def change(order, now):
            reassigning = order.current_status is OrderStatus.ASSIGNED
            if not reassigning:
                order.assert_can_transition(OrderStatus.ASSIGNED)
            agent = self._resolver.ensure_assignable(order, agent_id)
            code = self._verifier.issue()
            extra = {"agent_name": agent.name}
            if reassigning:
                extra["previous_agent_id"] = str(order.assigned_agent_id)
                order.reassign_agent(agent.id, code.code, code.expires_at, actor, now)
            else:
                order.assign_agent(agent.id, code.code, code.expires_at, actor, now)
            return [
                (NotificationType.ORDER_ASSIGNED, extra),
                (NotificationType.OTP_SENT, {"otp": code.code, "otp_expires_at": code.expires_at.isoformat()}),
            ]

        return self._transition(
            order_id, actor, OrderStatus.ASSIGNED, Capability.ASSIGN_AGENT, expected_status, change, already_applied
        )

    def mark_out_for_delivery(self, order_id, actor, expected_status=None) -> Order:
        def change(order, now):
            order.assert_can_transition(OrderStatus.OUT_FOR_DELIVERY)
            order.mark_out_for_delivery(actor, now)
            return [(NotificationType.ORDER_OUT_FOR_DELIVERY, {})]

        return self._transition(
            order_id, actor, OrderStatus.OUT_FOR_DELIVERY, Capability.DISPATCH, expected_status, change
        )

    def verify_delivery(
        self,
        order_id,
        code,
        actor,
        payment_received=False,
        note=None,
        proof_image=None,
        expected_status=None,
    ) -> Order:
        """Close a delivery with the code the customer presents to the agent."""

        def change(order, now):
            order.assert_awaiting_delivery_code()
            self._verifier.verify(order.delivery_otp, order.otp_expires_at, code)
            order.deliver(actor, now, payment_received=payment_received, note=note, proof_image=proof_image)
            notifications = [(NotificationType.ORDER_DELIVERED, {})]
            if payment_received:
                notifications.append((NotificationType.PAYMENT_UPDATED, {"payment_status": order.payment_status}))
            return notifications

        return self._transition(
            order_id, actor, OrderStatus.DELIVERED, Capability.VERIFY_DELIVERY, expected_status, change
        )

    def hand_over_pickup(self, order_id, actor, note=None, expected_status=None) -> Order:
        def change(order, now):
            order.hand_over(actor, now, note=note)
            return [
                (NotificationType.ORDER_DELIVERED, {}),
                (NotificationType.PAYMENT_UPDATED, {"payment_status": order.payment_status}),
            ]

        return self._transition(
            order_id, actor, OrderStatus.DELIVERED, Capability.HAND_OVER_PICKUP, expected_status, change
        )

    def cancel(self, order_id, actor, reason=None, expected_status=None) -> Order:
        def change(order, now):
            order.assert_can_transition(OrderStatus.CANCELLED)
            if order.current_status not in CUSTOMER_CANCELLABLE and not actor.can(Capability.CANCEL_AFTER_ASSIGNMENT):
                raise Unauthorized(
                    actor.role.value,
                    Capability.CANCEL.value,
                    f"{actor.role.value} may not cancel an order that is {order.status}",
                )
            order.cancel(actor, now, reason=reason)
            self._reservation.restore(order.agency_id, order.lines, reference=str(order.id))
            return [(NotificationType.ORDER_CANCELLED, {"reason": reason})]

        return self._transition(order_id, actor, OrderStatus.CANCELLED, Capability.CANCEL, expected_status, change)

    def request_return(self, order_id, actor, reason, expected_status=None) -> Order:
        def change(order, now):
            order.assert_can_transition(OrderStatus.RETURNED)
            deadline = order.delivered_at + self._settings.return_window
            if now > deadline:
                raise IllegalTransition(order.status, OrderStatus.RETURNED.value, "the return window has closed")
            order.request_return(actor, now, reason)
            return [(NotificationType.ORDER_RETURNED, {"reason": reason})]

        return self._transition(
            order_id, actor, OrderStatus.RETURNED, Capability.REQUEST_RETURN, expected_status, change
        )

    def approve_return(self, order_id, actor, expected_status=None) -> Order:
        def change(order, now):
            order.approve_return(actor, now)
            self._reservation.restore(order.agency_id, order.lines, reference=str(order.id))
            return [(NotificationType.RETURN_APPROVED, {})]

        return self._transition(
            order_id, actor, OrderStatus.RETURN_APPROVED, Capability.REVIEW_RETURN, expected_status, change
        )

    def reject_return(self, order_id, actor, reason=None, expected_status=None) -> Order:
        def change(order, now):
            order.reject_return(actor, now, reason=reason)
            return [(NotificationType.RETURN_REJECTED, {"reason": reason})]

        return self._transition(
            order_id, actor, OrderStatus.RETURN_REJECTED, Capability.REVIEW_RETURN, expected_status, change
        )

    def reorder(self, order_id, actor, expected_status=None) -> Order:
        """Re-price and re-reserve a cancelled or returned order."""

        def change(order, now):
            order.assert_can_transition(OrderStatus.PENDING)
            selections = [
                LineSelection(product_id=line.product_id, quantity=line.quantity, variant_label=line.variant_label)
                for line in order.lines
            ]
            location = None
            if order.customer.latitude is not None and order.customer.longitude is not None:
                location = Location(order.customer.latitude, order.customer.longitude)

            # Stock is checked by the reservation below, after returned goods are back
            quote = self._pricing.quote(
                order.agency_id,
                selections,
                delivery_mode=order.delivery_mode,
                coupon_code=order.coupon_code,
                location=location,
                check_stock=False,
            )

            previous_lines = list(order.lines)
            with self._reservation.locked(order.agency_id, [*previous_lines, *quote.lines]):
                if order.current_status is OrderStatus.RETURNED:
                    self._reservation.restore(order.agency_id, previous_lines, reference=str(order.id))
                self._reservation.reserve(order.agency_id, quote.lines, reference=str(order.id))
            order.reorder(quote, actor, now)
            return [(NotificationType.ORDER_REORDERED, {})]

        return self._transition(order_id, actor, OrderStatus.PENDING, Capability.REORDER, expected_status, change)

    # -------------------------------------------------------------------
    # Non-transition updates
    # -------------------------------------------------------------------
    def _update(self, order_id, actor, capability, mutate) -> Order:
        """Apply a change that does not move the order, retrying on version conflicts."""
        with self._locks.holding([order_key(order_id)]):
            for attempt in range(1, WRITE_ATTEMPTS + 1):
                order = self.load(order_id)
                actor.require(capability)
                actor.require_scope(order)
                status = order.status
                try:
                    with UnitOfWork():
                        mutate(order, self._clock.now())
                        current_domain.repository_for(Order).add(order)
                    return order
                except ExpectedVersionError:
                    logger.warning("Order changed during update", attempt=attempt)
            raise StateConflict(status, self.load(order_id).status)

    def resend_delivery_code(self, order_id, actor) -> Order:
        """Issue a fresh code to a dispatched order without moving it."""
        code = self._verifier.issue()
        order = self._update(
            order_id,
            actor,
            Capability.DISPATCH,
            lambda order, now: order.reissue_delivery_code(code.code, code.expires_at, actor, now),
        )

        logger.info("Delivery code reissued", order_id=str(order_id), actor_role=actor.role.value)
        self.emitter.emit(
            NotificationType.OTP_SENT,
            order,
            actor,
            otp=code.code,
            otp_expires_at=code.expires_at.isoformat(),
        )
        return order

    def add_note(self, order_id, actor, note) -> Order:
        return self._update(
            order_id, actor, Capability.ANNOTATE, lambda order, now: order.add_note(actor, note, now)
        )
