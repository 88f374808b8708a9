from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from protean.exceptions import ExpectedVersionError
from protean.integrations.pytest import DomainFixture
from protean.utils.globals import current_domain

from ordering.actors import Actor
from ordering.agency.agency import Agency
from ordering.agency.agent import AgentStatus, DeliveryAgent
from ordering.catalogue.product import Product
from ordering.clock import FixedClock
from ordering.core import build_order_core
from ordering.inventory.inventory import AgencyInventory
from ordering.notifications.fake_dispatcher import FakeNotificationDispatcher
from ordering.order.checkout import CheckoutRequest
from ordering.order.order import Order
from ordering.pricing.coupon import Coupon
from ordering.pricing.delivery_charge import DeliveryCharge
from ordering.pricing.engine import LineSelection
from ordering.pricing.platform_charge import PlatformCharge
from ordering.pricing.tax import Tax

CUSTOMER = {
    "name": "Asha Verma",
    "email": "asha@example.com",
    "phone": "9800000001",
    "address": "12 Lake Road, Pune",
}


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def clock():
    return FixedClock(datetime(2024, 1, 1, 9, 0, tzinfo=UTC))


@pytest.fixture()
def dispatcher():
    fake = FakeNotificationDispatcher()
    yield fake
    fake.reset()


@pytest.fixture()
def core(dispatcher, clock):
    return build_order_core(dispatcher=dispatcher, clock=clock)


class Seed:
    """Writes reference data straight through the repositories."""

    def agency(self, name="Lakeside Gas", **details) -> Agency:
        agency = Agency.register(name=name, city="Pune", pincode="411001", **details)
        current_domain.repository_for(Agency).add(agency)
        return agency

    def product(self, name="LPG Cylinder 14.2kg", price=100.0, unit="cylinder", variants=None) -> Product:
        product = Product.register(name=name, price=price, unit=unit, variants=variants)
        current_domain.repository_for(Product).add(product)
        return product

    def stock(self, product, agency, quantity=10, low_stock_threshold=2, agency_price=None, variants=None):
        row = AgencyInventory.open(
            product_id=product.id,
            agency_id=agency.id,
            stock=quantity,
            low_stock_threshold=low_stock_threshold,
            agency_price=agency_price,
        )
        for variant in variants or []:
            row.replenish(
                variant["stock"],
                variant_label=variant["label"],
                unit=variant.get("unit"),
                price=variant.get("price"),
            )
        current_domain.repository_for(AgencyInventory).add(row)
        return row

    def agent(self, agency, name="Ravi", online=True, joined_at=None) -> DeliveryAgent:
        agent = DeliveryAgent.enlist(
            agency_id=agency.id,
            name=name,
            phone="9800000100",
            vehicle_number="MH12AB1234",
            status=(AgentStatus.ONLINE if online else AgentStatus.OFFLINE).value,
            joined_at=joined_at or datetime(2023, 1, 1, tzinfo=UTC),
        )
        current_domain.repository_for(DeliveryAgent).add(agent)
        return agent

    def tax(self, percentage=None, fixed_amount=None) -> Tax:
        tax = Tax(percentage=percentage, fixed_amount=fixed_amount)
        current_domain.repository_for(Tax).add(tax)
        return tax

    def platform_charge(self, amount=10.0) -> PlatformCharge:
        charge = PlatformCharge(amount=amount)
        current_domain.repository_for(PlatformCharge).add(charge)
        return charge

    def delivery_charge(self, agency, **rule) -> DeliveryCharge:
        rule.setdefault("charge_type", "fixed")
        rule.setdefault("delivery_radius", 60.0)
        if rule["charge_type"] == "fixed":
            rule.setdefault("fixed_amount", 20.0)
        charge = DeliveryCharge(agency_id=agency.id, **rule)
        current_domain.repository_for(DeliveryCharge).add(charge)
        return charge

    def coupon(self, code="SAVE10", discount_type="percentage", discount_value=10.0, **details) -> Coupon:
        coupon = Coupon.issue(code=code, discount_type=discount_type, discount_value=discount_value, **details)
        current_domain.repository_for(Coupon).add(coupon)
        return coupon

    def inventory(self, product, agency) -> AgencyInventory:
        return current_domain.repository_for(AgencyInventory).for_product(product.id, agency.id)

    def order(self, order_id) -> Order:
        return current_domain.repository_for(Order).get(order_id)


@pytest.fixture()
def seed():
    return Seed()


@pytest.fixture()
def world(seed):
    """One agency stocking one cylinder at 100, with 5% tax, 10 platform fee and 20 delivery."""
    agency = seed.agency()
    product = seed.product()
    seed.stock(product, agency, quantity=10)
    agent = seed.agent(agency)
    seed.tax(percentage=5.0)
    seed.platform_charge(10.0)
    seed.delivery_charge(agency, fixed_amount=20.0)

    return SimpleNamespace(
        agency=agency,
        product=product,
        agent=agent,
        customer=Actor.customer("cust-001", CUSTOMER["name"]),
        admin=Actor.admin("admin-001", "Ops Desk"),
        owner=Actor.agency("owner-001", agency.id, "Lakeside Owner"),
        courier=Actor.agent(agent.id, agency.id, agent.name),
    )


@pytest.fixture()
def checkout_request(world):
    def _request(quantity=2, customer_id="cust-001", **overrides):
        request = CheckoutRequest(
            customer_id=customer_id,
            customer=dict(CUSTOMER),
            lines=[LineSelection(product_id=world.product.id, quantity=quantity)],
        )
        for key, value in overrides.items():
            setattr(request, key, value)
        return request

    return _request


@pytest.fixture()
def place(core, checkout_request):
    def _place(quantity=2, **overrides) -> Order:
        return core.place_order(checkout_request(quantity=quantity, **overrides))

    return _place


@pytest.fixture()
def advance(core, world):
    """Drive an order forward along the home-delivery path up to `status`."""
    path = ["confirmed", "assigned", "out_for_delivery", "delivered"]

    def _advance(order, status):
        lifecycle = core.lifecycle
        for step in path[: path.index(status) + 1]:
            if step == "confirmed":
                order = lifecycle.confirm(order.id, world.owner)
            elif step == "assigned":
                order = lifecycle.assign_agent(order.id, world.agent.id, world.owner)
            elif step == "out_for_delivery":
                order = lifecycle.mark_out_for_delivery(order.id, world.courier)
            elif step == "delivered":
                order = lifecycle.verify_delivery(order.id, order.delivery_otp, world.courier)
        return order

    return _advance


@pytest.fixture()
def lost_races(monkeypatch):
    """Make the next `count` saves of an aggregate lose to a concurrent writer."""

    def _lose(aggregate_cls, count):
        repo_cls = type(current_domain.repository_for(aggregate_cls))
        original = repo_cls.add
        remaining = [count]

        def add(self, item):
            if remaining[0] > 0:
                remaining[0] -= 1
                raise ExpectedVersionError(f"Wrong expected version for {aggregate_cls.__name__}")
            return original(self, item)

        monkeypatch.setattr(repo_cls, "add", add)

    return _lose
