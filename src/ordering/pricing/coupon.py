"""Coupon aggregate: discount rules with minimum spend and expiry."""

from datetime import UTC, datetime, time
from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Date, Float, Identifier, String

from ordering.domain import ordering
from ordering.errors import InvalidCoupon
from ordering.money import ZERO, round2, to_decimal


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _parse_time(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


@ordering.aggregate
class Coupon:
    """A discount code, optionally scoped to one agency.

    `max_amount` caps a percentage discount; `min_amount` is the smallest
    subtotal the coupon applies to. The coupon expires at `expiry_date`
    `expiry_time` (UTC).
    """

    code: String(required=True, max_length=50)
    discount_type: String(choices=DiscountType, default=DiscountType.PERCENTAGE.value)
    discount_value: Float(required=True, min_value=0.0)
    min_amount: Float(default=0.0, min_value=0.0)
    max_amount: Float(min_value=0.0)
    expiry_date: Date()
    expiry_time: String(max_length=5, default="23:59")
    agency_id: Identifier()
    is_active: Boolean(default=True)

    @invariant.post
    def percentage_cannot_exceed_hundred(self):
        if self.discount_type == DiscountType.PERCENTAGE.value and self.discount_value > 100:
            raise ValidationError({"discount_value": ["Percentage discount cannot exceed 100"]})

    @invariant.post
    def expiry_time_is_clock_time(self):
        if not self.expiry_time:
            return
        try:
            _parse_time(self.expiry_time)
        except ValueError:
            raise ValidationError({"expiry_time": ["Expiry time must be HH:MM"]}) from None

    @classmethod
    def issue(cls, code, discount_type, discount_value, **details):
        return cls(
            code=normalize_code(code),
            discount_type=DiscountType(discount_type).value,
            discount_value=discount_value,
            **details,
        )

    @property
    def expires_at(self) -> datetime | None:
        if self.expiry_date is None:
            return None
        return datetime.combine(self.expiry_date, _parse_time(self.expiry_time or "23:59"), tzinfo=UTC)

    def is_expired(self, now: datetime) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and now >= expires_at

    def discount_for(self, subtotal: Decimal, now: datetime, agency_id=None) -> Decimal:
        """The discount this coupon grants on `subtotal`, or InvalidCoupon."""
        if not self.is_active:
            raise InvalidCoupon(self.code, "inactive", f"Coupon {self.code} is not active")
        if self.is_expired(now):
            raise InvalidCoupon(self.code, "expired", f"Coupon {self.code} has expired")
        if self.agency_id and agency_id and str(self.agency_id) != str(agency_id):
            raise InvalidCoupon(self.code, "wrong_agency", f"Coupon {self.code} is not valid for this agency")

        minimum = to_decimal(self.min_amount)
        if subtotal < minimum:
            raise InvalidCoupon(
                self.code,
                "below_minimum",
                f"Coupon {self.code} needs a subtotal of at least {round2(minimum)}",
            )

        if self.discount_type == DiscountType.PERCENTAGE.value:
            discount = round2(subtotal * to_decimal(self.discount_value) / Decimal(100))
            if self.max_amount is not None:
                discount = min(discount, round2(self.max_amount))
        else:
            discount = round2(self.discount_value)
        return max(discount, ZERO)

    def deactivate(self):
        from ordering.pricing.events import CouponDeactivated

        if not self.is_active:
            return
        self.is_active = False
        self.raise_(CouponDeactivated(coupon_id=self.id, code=self.code))


@ordering.repository(part_of=Coupon)
class CouponRepository:
    def by_code(self, code):
        records = self._dao.query.filter(code=normalize_code(code)).all().items
        return records[0] if records else None

    def active(self) -> list:
        return self._dao.query.filter(is_active=True).all().items
