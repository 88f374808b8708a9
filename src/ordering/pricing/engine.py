"""Pricing engine: turns a cart selection into a priced quote.

Quoting only reads. Any error surfaces before stock or orders are touched.
All arithmetic runs on two-decimal Decimals. Quotes carry floats.
"""

from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from ordering.agency.agency import Agency
from ordering.catalogue.product import Product
from ordering.clock import Clock, SystemClock
from ordering.errors import InsufficientStock, InvalidCoupon, InvalidItem, NotFound, OutOfDeliveryRadius
from ordering.inventory.inventory import AgencyInventory
from ordering.money import ZERO, as_float, round2, to_decimal
from ordering.order.order import DeliveryMode
from ordering.pricing.coupon import Coupon, normalize_code
from ordering.pricing.delivery_charge import DeliveryCharge
from ordering.pricing.distance import DistanceCalculator, HaversineDistance
from ordering.pricing.platform_charge import PlatformCharge
from ordering.pricing.tax import Tax, TaxType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LineSelection:
    """One cart line as the customer picked it."""

    product_id: str
    quantity: int
    variant_label: str | None = None
    agency_id: str | None = None


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class PricedLine:
    product_id: str
    product_name: str
    variant_label: str | None
    unit_price: float
    quantity: int
    line_total: float


@dataclass(frozen=True)
class Quote:
    agency_id: str
    delivery_mode: str
    lines: tuple[PricedLine, ...]
    subtotal: float
    tax_type: str
    tax_value: float
    tax_amount: float
    platform_charge: float
    delivery_charge: float
    delivery_distance: float | None
    coupon_code: str | None
    coupon_discount: float
    total: float

    def charges(self) -> dict:
        """Money fields in the shape the Order aggregate stores them."""
        return {
            "subtotal": self.subtotal,
            "tax_type": self.tax_type,
            "tax_value": self.tax_value,
            "tax_amount": self.tax_amount,
            "platform_charge": self.platform_charge,
            "delivery_charge": self.delivery_charge,
            "delivery_distance": self.delivery_distance,
            "coupon_code": self.coupon_code,
            "coupon_discount": self.coupon_discount,
            "total_amount": self.total,
        }


def _validate_selection(lines, delivery_mode):
    if not lines:
        raise ValidationError({"items": ["At least one item is required"]})
    for line in lines:
        if not line.product_id:
            raise ValidationError({"items": ["Every item needs a product"]})
        if line.quantity is None or int(line.quantity) < 1:
            raise ValidationError({"quantity": [f"Quantity for {line.product_id} must be at least 1"]})
    try:
        DeliveryMode(delivery_mode)
    except ValueError:
        raise ValidationError({"delivery_mode": [f"Unknown delivery mode: {delivery_mode}"]}) from None


class PricingEngine:
    def __init__(self, distance: DistanceCalculator | None = None, clock: Clock | None = None):
        self._distance = distance or HaversineDistance()
        self._clock = clock or SystemClock()

    def quote(
        self,
        agency_id,
        lines,
        delivery_mode=DeliveryMode.HOME_DELIVERY.value,
        coupon_code=None,
        location: Location | None = None,
        check_stock: bool = True,
    ) -> Quote:
        delivery_mode = getattr(delivery_mode, "value", delivery_mode)
        _validate_selection(lines, delivery_mode)

        try:
            agency = current_domain.repository_for(Agency).get(agency_id)
        except ObjectNotFoundError:
            raise NotFound("Agency", agency_id) from None

        priced = self._price_lines(agency_id, lines, check_stock)
        subtotal = round2(sum((to_decimal(p.line_total) for p in priced), ZERO))

        tax_type, tax_value, tax_amount = self._tax(subtotal)
        platform_charge = self._platform_charge()
        delivery_charge, distance = self._delivery(agency, delivery_mode, location)

        before_discount = subtotal + tax_amount + platform_charge + delivery_charge
        code = normalize_code(coupon_code) if coupon_code else None
        discount = self._discount(code, subtotal, agency_id) if code else ZERO
        discount = min(discount, before_discount)

        total = round2(before_discount - discount)

        logger.debug(
            "Order priced",
            agency_id=str(agency_id),
            subtotal=str(subtotal),
            total=str(total),
            coupon_code=code,
        )

        return Quote(
            agency_id=str(agency_id),
            delivery_mode=delivery_mode,
            lines=tuple(priced),
            subtotal=as_float(subtotal),
            tax_type=tax_type.value,
            tax_value=tax_value,
            tax_amount=as_float(tax_amount),
            platform_charge=as_float(platform_charge),
            delivery_charge=as_float(delivery_charge),
            delivery_distance=distance,
            coupon_code=code,
            coupon_discount=as_float(discount),
            total=as_float(total),
        )

    def _price_lines(self, agency_id, lines, check_stock=True) -> list[PricedLine]:
        products = current_domain.repository_for(Product)
        inventory = current_domain.repository_for(AgencyInventory)

        demand = OrderedDict()
        priced = []
        for line in lines:
            product_id = str(line.product_id)
            try:
                product = products.get(product_id)
            except ObjectNotFoundError:
                raise InvalidItem(product_id, f"Unknown product {product_id}") from None
            if not product.is_active:
                raise InvalidItem(product_id, f"{product.name} is not available")

            row = inventory.for_product(product_id, agency_id)
            if row is None or not row.is_active:
                raise InvalidItem(product_id, f"{product.name} is not stocked by this agency")

            unit_price = self._unit_price(product, row, line.variant_label)

            key = (product_id, line.variant_label or None)
            demand[key] = demand.get(key, 0) + int(line.quantity)
            available = row.available(line.variant_label)
            if check_stock and available < demand[key]:
                raise InsufficientStock(product_id, demand[key], available, line.variant_label)

            priced.append(
                PricedLine(
                    product_id=product_id,
                    product_name=product.name,
                    variant_label=line.variant_label or None,
                    unit_price=as_float(unit_price),
                    quantity=int(line.quantity),
                    line_total=as_float(unit_price * int(line.quantity)),
                )
            )
        return priced

    def _unit_price(self, product, row, variant_label) -> Decimal:
        """Agency override first, then the catalogue price."""
        if variant_label:
            override = row.price_override(variant_label)
            if override is not None:
                return round2(override)
            variant = product.variant(variant_label)
            if variant is None or row.variant(variant_label) is None:
                raise InvalidItem(
                    product.id, f"{product.name} has no variant {variant_label} here", variant_label=variant_label
                )
            return round2(variant.price)

        override = row.price_override()
        if override is not None:
            return round2(override)
        return round2(product.price)

    def _tax(self, subtotal):
        tax = current_domain.repository_for(Tax).active()
        if tax is None:
            return TaxType.NONE, 0.0, ZERO
        return tax.tax_type, tax.value, tax.amount_for(subtotal)

    def _platform_charge(self) -> Decimal:
        charge = current_domain.repository_for(PlatformCharge).active()
        return round2(charge.amount) if charge else ZERO

    def _delivery(self, agency, delivery_mode, location):
        if delivery_mode == DeliveryMode.PICKUP.value:
            return ZERO, None

        rule = current_domain.repository_for(DeliveryCharge).for_agency(agency.id)
        if rule is None:
            return ZERO, None

        distance = None
        if agency.location is not None and location is not None:
            distance = as_float(self._distance.distance_km(agency.location, location.as_tuple()))
            if distance > rule.delivery_radius:
                raise OutOfDeliveryRadius(distance, rule.delivery_radius)

        if rule.needs_distance and distance is None:
            raise ValidationError({"location": ["A delivery location is required to compute the delivery charge"]})

        return rule.charge_for(distance), distance

    def _discount(self, code, subtotal, agency_id) -> Decimal:
        coupon = current_domain.repository_for(Coupon).by_code(code)
        if coupon is None:
            raise InvalidCoupon(code, "unknown", f"Coupon {code} does not exist")
        return coupon.discount_for(subtotal, self._clock.now(), agency_id=agency_id)
