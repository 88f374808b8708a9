"""Per-agency delivery charge rules."""

from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, Identifier, String

from ordering.domain import ordering
from ordering.money import round2, to_decimal


class ChargeType(Enum):
    PER_KM = "per_km"
    FIXED = "fixed"


@ordering.aggregate
class DeliveryCharge:
    """How an agency charges for home delivery.

    `per_km` multiplies the delivery distance by `rate_per_km`; `fixed` charges
    `fixed_amount` regardless of distance. Either way, deliveries beyond
    `delivery_radius` kilometres are refused.
    """

    agency_id: Identifier(required=True)
    charge_type: String(choices=ChargeType, default=ChargeType.FIXED.value)
    rate_per_km: Float(min_value=0.0)
    fixed_amount: Float(min_value=0.0)
    delivery_radius: Float(required=True, min_value=1.0)
    is_active: Boolean(default=True)

    @invariant.post
    def mode_needs_its_amount(self):
        if self.charge_type == ChargeType.PER_KM.value and self.rate_per_km is None:
            raise ValidationError({"rate_per_km": ["Rate per km is required for per_km charges"]})
        if self.charge_type == ChargeType.FIXED.value and self.fixed_amount is None:
            raise ValidationError({"fixed_amount": ["Fixed amount is required for fixed charges"]})

    @property
    def needs_distance(self) -> bool:
        return self.charge_type == ChargeType.PER_KM.value

    def charge_for(self, distance_km) -> Decimal:
        if self.needs_distance:
            return round2(to_decimal(self.rate_per_km) * to_decimal(distance_km))
        return round2(self.fixed_amount)


@ordering.repository(part_of=DeliveryCharge)
class DeliveryChargeRepository:
    def for_agency(self, agency_id):
        records = self._dao.query.filter(agency_id=str(agency_id)).all().items
        active = [r for r in records if r.is_active]
        return active[0] if active else None
