"""Application tests for placing orders through the order core."""

import pytest
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.errors import ConcurrentUpdate, InsufficientStock, InvalidCoupon, InvalidItem, MultiAgencyCart, NotFound
from ordering.inventory.inventory import AgencyInventory
from ordering.order.order import Order, OrderStatus
from ordering.pricing.engine import LineSelection


class TestPlaceOrder:
    def test_happy_path_totals(self, place, world, seed):
        order = place(quantity=2)

        assert order.status == OrderStatus.PENDING.value
        assert order.subtotal == 200.0
        assert order.tax_type == "percentage"
        assert order.tax_value == 5.0
        assert order.tax_amount == 10.0
        assert order.platform_charge == 10.0
        assert order.delivery_charge == 20.0
        assert order.coupon_discount == 0.0
        assert order.total_amount == 240.0
        assert order.agency_id == world.agency.id

    def test_order_is_persisted_with_lines(self, place, seed):
        order = place(quantity=2)

        stored = seed.order(order.id)
        assert stored.order_number == order.order_number
        assert stored.customer.name == "Asha Verma"
        assert len(stored.lines) == 1
        assert stored.lines[0].product_name == "LPG Cylinder 14.2kg"
        assert stored.lines[0].unit_price == 100.0
        assert stored.lines[0].line_total == 200.0

    def test_stock_is_reserved(self, place, world, seed):
        place(quantity=2)
        assert seed.inventory(world.product, world.agency).stock == 8

    def test_order_created_notification(self, place, dispatcher):
        order = place()

        created = dispatcher.of_type("order_created")
        assert len(created) == 1
        assert created[0]["payload"]["order_id"] == str(order.id)
        assert created[0]["payload"]["actor"]["role"] == "customer"
        assert set(created[0]["audience"]) == {"customer", "agency", "admin"}

    def test_placed_at_comes_from_clock(self, place, clock):
        order = place()
        assert order.placed_at == clock.now()

    def test_payment_method_is_recorded(self, place):
        order = place(payment_method="upi")
        assert order.payment_method == "upi"


class TestCheckoutRefusals:
    def _assert_nothing_written(self, world, seed, stock=10):
        assert current_domain.repository_for(Order)._dao.query.all().items == []
        assert seed.inventory(world.product, world.agency).stock == stock

    def test_insufficient_stock(self, place, world, seed):
        with pytest.raises(InsufficientStock) as exc:
            place(quantity=11)

        assert exc.value.product_id == world.product.id
        assert exc.value.available == 10
        self._assert_nothing_written(world, seed)

    def test_repeated_lines_are_counted_together(self, core, checkout_request, world, seed):
        request = checkout_request()
        request.lines = [
            LineSelection(product_id=world.product.id, quantity=6),
            LineSelection(product_id=world.product.id, quantity=6),
        ]
        with pytest.raises(InsufficientStock):
            core.place_order(request)
        self._assert_nothing_written(world, seed)

    def test_unknown_product(self, core, checkout_request, world, seed):
        request = checkout_request(agency_id=world.agency.id)
        request.lines = [LineSelection(product_id="no-such-product", quantity=1)]
        with pytest.raises(InvalidItem):
            core.place_order(request)
        self._assert_nothing_written(world, seed)

    def test_inactive_product(self, place, world, seed):
        world.product.deactivate()
        current_domain.repository_for(type(world.product)).add(world.product)

        with pytest.raises(InvalidItem):
            place()
        self._assert_nothing_written(world, seed)

    def test_invalid_coupon_aborts_without_side_effects(self, place, world, seed):
        seed.coupon(code="OLD", is_active=False)
        with pytest.raises(InvalidCoupon) as exc:
            place(coupon_code="old")
        assert exc.value.reason == "inactive"
        self._assert_nothing_written(world, seed)

    def test_unknown_agency(self, place):
        with pytest.raises(NotFound):
            place(agency_id="no-such-agency")

    def test_inactive_agency(self, place, world):
        world.agency.update_settings(status="inactive")
        current_domain.repository_for(type(world.agency)).add(world.agency)

        with pytest.raises(ValidationError) as exc:
            place()
        assert "agency_id" in exc.value.messages

    def test_customer_name_required(self, place):
        with pytest.raises(ValidationError) as exc:
            place(customer={"phone": "9800000001"})
        assert "customer" in exc.value.messages

    def test_empty_cart(self, core, checkout_request, world):
        request = checkout_request(agency_id=world.agency.id)
        request.lines = []
        with pytest.raises(ValidationError):
            core.place_order(request)

    def test_quantity_must_be_positive(self, place):
        with pytest.raises(ValidationError) as exc:
            place(quantity=0)
        assert "quantity" in exc.value.messages


class TestAgencyResolution:
    def test_items_from_two_agencies_are_rejected(self, core, checkout_request, world, seed):
        other = seed.agency(name="Hillside Gas")
        regulator = seed.product(name="Regulator", price=250.0)
        seed.stock(regulator, other, quantity=5)

        request = checkout_request()
        request.lines = [
            LineSelection(product_id=world.product.id, quantity=1),
            LineSelection(product_id=regulator.id, quantity=1),
        ]
        with pytest.raises(MultiAgencyCart) as exc:
            core.place_order(request)
        assert set(exc.value.agency_ids) == {str(world.agency.id), str(other.id)}

    def test_lines_naming_different_agencies_are_rejected(self, core, checkout_request, world, seed):
        other = seed.agency(name="Hillside Gas")
        seed.stock(world.product, other, quantity=5)

        request = checkout_request()
        request.lines = [
            LineSelection(product_id=world.product.id, quantity=1, agency_id=world.agency.id),
            LineSelection(product_id=world.product.id, quantity=1, agency_id=other.id),
        ]
        with pytest.raises(MultiAgencyCart):
            core.place_order(request)

    def test_ambiguous_cart_needs_an_agency(self, place, world, seed):
        other = seed.agency(name="Hillside Gas")
        seed.stock(world.product, other, quantity=5)

        with pytest.raises(ValidationError) as exc:
            place()
        assert "agency_id" in exc.value.messages

    def test_explicit_agency_settles_ambiguity(self, place, world, seed):
        other = seed.agency(name="Hillside Gas")
        seed.stock(world.product, other, quantity=5)

        order = place(agency_id=other.id)

        assert order.agency_id == other.id
        assert seed.inventory(world.product, other).stock == 3
        assert seed.inventory(world.product, world.agency).stock == 10


class TestInventoryRaces:
    def test_checkout_reprices_and_reserves_again(self, place, world, seed, dispatcher, lost_races):
        lost_races(AgencyInventory, 1)

        order = place(quantity=2)

        assert order.status == OrderStatus.PENDING.value
        assert seed.inventory(world.product, world.agency).stock == 8
        assert len(current_domain.repository_for(Order)._dao.query.all().items) == 1
        assert len(dispatcher.of_type("order_created")) == 1

    def test_order_save_race_leaves_no_half_checkout(self, place, world, seed, lost_races):
        lost_races(Order, 1)

        place(quantity=2)

        assert seed.inventory(world.product, world.agency).stock == 8
        assert len(current_domain.repository_for(Order)._dao.query.all().items) == 1

    def test_persistent_race_is_reported(self, place, world, seed, dispatcher, lost_races):
        lost_races(AgencyInventory, 100)

        with pytest.raises(ConcurrentUpdate) as exc:
            place(quantity=2)

        assert exc.value.kind == "concurrent_update"
        assert exc.value.entity == "AgencyInventory"
        assert seed.inventory(world.product, world.agency).stock == 10
        assert current_domain.repository_for(Order)._dao.query.all().items == []
        assert dispatcher.of_type("order_created") == []
