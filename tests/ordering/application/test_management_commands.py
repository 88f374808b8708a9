"""Administration commands processed through the domain."""

import json
from datetime import UTC, date, datetime

import pytest
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from ordering.agency.agency import Agency
from ordering.agency.agent import DeliveryAgent
from ordering.agency.management import (
    RegisterAgency,
    RegisterDeliveryAgent,
    SetAgentAvailability,
    UpdateAgencySettings,
)
from ordering.catalogue.management import DeactivateProduct, RegisterProduct
from ordering.catalogue.product import Product
from ordering.errors import NotFound
from ordering.inventory.inventory import AgencyInventory
from ordering.inventory.management import SetInventoryActive, StockInventory
from ordering.order.checkout import CheckoutRequest
from ordering.pricing.coupon import Coupon
from ordering.pricing.delivery_charge import DeliveryCharge
from ordering.pricing.management import (
    ConfigureDeliveryCharge,
    ConfigurePlatformCharge,
    ConfigureTax,
    DeactivateCoupon,
    IssueCoupon,
    SweepExpiredCoupons,
)
from ordering.pricing.engine import LineSelection
from ordering.pricing.tax import Tax


def _process(command):
    return current_domain.process(command, asynchronous=False)


@pytest.fixture()
def agency_id():
    return _process(RegisterAgency(name="Lakeside Gas", city="Pune", latitude=18.5204, longitude=73.8567))


@pytest.fixture()
def product_id():
    return _process(RegisterProduct(name="LPG Cylinder 14.2kg", price=100.0, unit="cylinder"))


class TestCatalogueCommands:
    def test_register_product_with_variants(self):
        product_id = _process(
            RegisterProduct(
                name="LPG Cylinder",
                price=900.0,
                variants=json.dumps([{"label": "5kg", "price": 400.0}, {"label": "14.2kg", "price": 900.0}]),
            )
        )

        product = current_domain.repository_for(Product).get(product_id)
        assert [v.label for v in product.variants] == ["5kg", "14.2kg"]

    def test_variants_must_be_json(self):
        with pytest.raises(ValidationError) as exc:
            _process(RegisterProduct(name="LPG Cylinder", price=900.0, variants="5kg,14.2kg"))
        assert "variants" in exc.value.messages

    def test_deactivate_product(self, product_id):
        _process(DeactivateProduct(product_id=product_id))
        assert not current_domain.repository_for(Product).get(product_id).is_active


class TestAgencyCommands:
    def test_register_agency(self, agency_id):
        agency = current_domain.repository_for(Agency).get(agency_id)
        assert agency.name == "Lakeside Gas"
        assert agency.location == (18.5204, 73.8567)

    def test_update_settings_leaves_other_fields(self, agency_id):
        _process(UpdateAgencySettings(agency_id=agency_id, auto_accept_orders=True))

        agency = current_domain.repository_for(Agency).get(agency_id)
        assert agency.auto_accept_orders is True
        assert agency.pickup_enabled is True
        assert agency.is_active

    def test_register_agent_and_go_online(self, agency_id):
        agent_id = _process(RegisterDeliveryAgent(agency_id=agency_id, name="Ravi", phone="9800000100"))
        _process(SetAgentAvailability(agent_id=agent_id, status="online"))

        agent = current_domain.repository_for(DeliveryAgent).get(agent_id)
        assert agent.is_online

    def test_core_stamps_joined_at_from_its_clock(self, core, clock, agency_id):
        agent_id = core.register_delivery_agent(agency_id, "Ravi", phone="9800000100")

        assert current_domain.repository_for(DeliveryAgent).get(agent_id).joined_at == clock.now()

    def test_explicit_joined_at_is_kept(self, agency_id):
        joined = datetime(2022, 6, 1, tzinfo=UTC)
        agent_id = _process(RegisterDeliveryAgent(agency_id=agency_id, name="Sunil", joined_at=joined))

        assert current_domain.repository_for(DeliveryAgent).get(agent_id).joined_at == joined

    def test_agent_needs_a_known_agency(self):
        with pytest.raises(ObjectNotFoundError):
            _process(RegisterDeliveryAgent(agency_id="no-such-agency", name="Ravi"))

    def test_unknown_availability(self, agency_id):
        with pytest.raises(ValidationError):
            SetAgentAvailability(agent_id="agent-001", status="on_break")


class TestInventoryCommands:
    def test_stock_opens_and_tops_up_a_row(self, agency_id, product_id):
        _process(StockInventory(product_id=product_id, agency_id=agency_id, quantity=10))
        _process(StockInventory(product_id=product_id, agency_id=agency_id, quantity=5, price=95.0))

        row = current_domain.repository_for(AgencyInventory).for_product(product_id, agency_id)
        assert row.stock == 15
        assert row.agency_price == 95.0

    def test_default_low_stock_threshold_comes_from_config(self, agency_id, product_id):
        _process(StockInventory(product_id=product_id, agency_id=agency_id, quantity=10))

        row = current_domain.repository_for(AgencyInventory).for_product(product_id, agency_id)
        assert row.low_stock_threshold == 10

    def test_variant_stock(self, agency_id, product_id):
        _process(
            StockInventory(product_id=product_id, agency_id=agency_id, quantity=4, variant_label="5kg", price=410.0)
        )

        row = current_domain.repository_for(AgencyInventory).for_product(product_id, agency_id)
        assert row.stock == 0
        assert row.available("5kg") == 4
        assert row.price_override("5kg") == 410.0

    def test_set_inventory_inactive(self, agency_id, product_id):
        _process(StockInventory(product_id=product_id, agency_id=agency_id, quantity=10))
        _process(SetInventoryActive(product_id=product_id, agency_id=agency_id, is_active=False))

        row = current_domain.repository_for(AgencyInventory).for_product(product_id, agency_id)
        assert not row.is_active

    def test_set_active_on_missing_row(self, agency_id, product_id):
        with pytest.raises(NotFound):
            _process(SetInventoryActive(product_id=product_id, agency_id=agency_id, is_active=False))


class TestChargeCommands:
    def test_configure_tax_replaces_the_active_one(self):
        _process(ConfigureTax(percentage=5.0))
        _process(ConfigureTax(fixed_amount=12.0))

        repo = current_domain.repository_for(Tax)
        assert repo.active().fixed_amount == 12.0
        assert len(repo._dao.query.filter(is_active=True).all().items) == 1

    def test_tax_takes_one_mode(self):
        with pytest.raises(ValidationError):
            _process(ConfigureTax(percentage=5.0, fixed_amount=12.0))

    def test_delivery_charge_is_updated_in_place(self, agency_id):
        first = _process(ConfigureDeliveryCharge(agency_id=agency_id, charge_type="fixed", fixed_amount=20.0))
        second = _process(ConfigureDeliveryCharge(agency_id=agency_id, charge_type="per_km", rate_per_km=8.0))

        assert first == second

    def test_radius_defaults_to_the_configured_one(self, agency_id, monkeypatch):
        monkeypatch.setitem(current_domain.config["custom"], "DEFAULT_DELIVERY_RADIUS_KM", 25)

        rule_id = _process(ConfigureDeliveryCharge(agency_id=agency_id, charge_type="fixed", fixed_amount=20.0))

        assert current_domain.repository_for(DeliveryCharge).get(rule_id).delivery_radius == 25.0

    def test_update_without_radius_keeps_the_current_one(self, agency_id):
        _process(
            ConfigureDeliveryCharge(agency_id=agency_id, charge_type="fixed", fixed_amount=20.0, delivery_radius=15.0)
        )
        rule_id = _process(ConfigureDeliveryCharge(agency_id=agency_id, charge_type="per_km", rate_per_km=8.0))

        assert current_domain.repository_for(DeliveryCharge).get(rule_id).delivery_radius == 15.0

    def test_per_km_needs_a_rate(self, agency_id):
        with pytest.raises(ValidationError):
            _process(ConfigureDeliveryCharge(agency_id=agency_id, charge_type="per_km"))


class TestCouponCommands:
    def test_codes_are_unique_regardless_of_case(self):
        _process(IssueCoupon(code="SAVE10", discount_type="percentage", discount_value=10.0))
        with pytest.raises(ValidationError):
            _process(IssueCoupon(code="save10", discount_type="fixed", discount_value=50.0))

    def test_deactivate_coupon(self):
        _process(IssueCoupon(code="SAVE10", discount_type="percentage", discount_value=10.0))
        _process(DeactivateCoupon(code="save10"))

        assert not current_domain.repository_for(Coupon).by_code("SAVE10").is_active

    def test_sweep_deactivates_only_expired_coupons(self):
        _process(
            IssueCoupon(code="OLD", discount_type="fixed", discount_value=50.0, expiry_date=date(2023, 12, 31))
        )
        _process(IssueCoupon(code="NEW", discount_type="fixed", discount_value=50.0, expiry_date=date(2024, 6, 30)))
        _process(IssueCoupon(code="FOREVER", discount_type="fixed", discount_value=50.0))

        swept = _process(SweepExpiredCoupons(as_of=datetime(2024, 1, 1, 9, 0, tzinfo=UTC)))

        repo = current_domain.repository_for(Coupon)
        assert swept == 1
        assert not repo.by_code("OLD").is_active
        assert repo.by_code("NEW").is_active
        assert repo.by_code("FOREVER").is_active

    def test_core_sweeps_by_its_clock(self, core, clock):
        _process(IssueCoupon(code="JAN", discount_type="fixed", discount_value=50.0, expiry_date=date(2024, 1, 31)))

        assert core.sweep_expired_coupons() == 0
        clock.advance(days=31)
        assert core.sweep_expired_coupons() == 1
        assert not current_domain.repository_for(Coupon).by_code("JAN").is_active


class TestConfiguredWorld:
    def test_order_priced_from_commands(self, core, agency_id, product_id):
        _process(StockInventory(product_id=product_id, agency_id=agency_id, quantity=10))
        _process(ConfigureTax(percentage=5.0))
        _process(ConfigurePlatformCharge(amount=10.0))
        _process(ConfigureDeliveryCharge(agency_id=agency_id, charge_type="fixed", fixed_amount=20.0))
        _process(IssueCoupon(code="SAVE10", discount_type="percentage", discount_value=10.0))

        order = core.place_order(
            CheckoutRequest(
                customer_id="cust-001",
                customer={"name": "Asha Verma", "phone": "9800000001"},
                lines=[LineSelection(product_id=product_id, quantity=2)],
                coupon_code="SAVE10",
            )
        )

        assert order.subtotal == 200.0
        assert order.coupon_discount == 20.0
        assert order.total_amount == 220.0
