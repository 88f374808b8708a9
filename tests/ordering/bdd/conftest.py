"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

from ordering.errors import OrderingError


def _kind(exc):
    return getattr(exc, "kind", "validation")


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def outcome():
    """Container for the error a When step ran into."""
    return {"exc": None}


@pytest.fixture()
def attempt(outcome):
    """Run a When step, keeping a refusal for the Then steps to inspect."""

    def _attempt(action, fallback):
        try:
            return action()
        except (OrderingError, ValidationError) as exc:
            outcome["exc"] = exc
            return fallback()

    return _attempt


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the Lakeside agency is taking orders")
def _(world):
    return world


@given(parsers.cfparse('a coupon "{code}" gives {percent:g} percent off'))
def _(seed, code, percent):
    seed.coupon(code=code, discount_value=percent)


@given(parsers.cfparse("a customer placed an order for {quantity:d} cylinders"), target_fixture="order")
def _(place, quantity):
    return place(quantity=quantity)


@given(parsers.cfparse("a customer placed a pickup order for {quantity:d} cylinders"), target_fixture="order")
def _(place, quantity):
    return place(quantity=quantity, delivery_mode="pickup")


@given(parsers.cfparse('the order has reached "{status}"'), target_fixture="order")
def _(order, advance, status):
    return advance(order, status)


@given("the customer cancelled the order", target_fixture="order")
def _(core, order, world):
    return core.lifecycle.cancel(order.id, world.customer)


@given(parsers.cfparse('the customer asked to return the order because "{reason}"'), target_fixture="order")
def _(core, order, world, reason):
    return core.lifecycle.request_return(order.id, world.customer, reason)


@given(parsers.cfparse("{minutes:d} minutes pass"))
def _(clock, minutes):
    clock.advance(minutes=minutes)


@given(parsers.cfparse("{hours:d} hours pass"))
def _(clock, hours):
    clock.advance(hours=hours)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(seed, order, status):
    assert seed.order(order.id).status == status


@then(parsers.cfparse("the agency has {count:d} cylinders in stock"))
def _(seed, world, count):
    assert seed.inventory(world.product, world.agency).stock == count


@then(parsers.cfparse('the request is refused as "{kind}"'))
def _(outcome, kind):
    assert outcome["exc"] is not None, "Expected the request to be refused"
    assert _kind(outcome["exc"]) == kind


@then("the request succeeds")
def _(outcome):
    assert outcome["exc"] is None, f"Unexpected refusal: {outcome['exc']}"


@then(parsers.cfparse('{count:d} "{event_type}" notification is sent'))
@then(parsers.cfparse('{count:d} "{event_type}" notifications are sent'))
def _(dispatcher, count, event_type):
    assert len(dispatcher.of_type(event_type)) == count


@then(parsers.cfparse("the order total is {amount:g}"))
def _(seed, order, amount):
    assert seed.order(order.id).total_amount == amount
