"""Tax configuration: a single active record, percentage or fixed."""

from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float

from ordering.domain import ordering
from ordering.money import ZERO, round2, to_decimal


class TaxType(Enum):
    NONE = "none"
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@ordering.aggregate
class Tax:
    percentage: Float(min_value=0.0, max_value=100.0)
    fixed_amount: Float(min_value=0.0)
    is_active: Boolean(default=True)

    @invariant.post
    def only_one_mode_configured(self):
        if self.percentage is not None and self.fixed_amount is not None:
            raise ValidationError({"tax": ["Only one of percentage or fixed amount may be set"]})

    @property
    def tax_type(self) -> TaxType:
        if self.percentage is not None:
            return TaxType.PERCENTAGE
        if self.fixed_amount is not None:
            return TaxType.FIXED
        return TaxType.NONE

    @property
    def value(self) -> float:
        if self.percentage is not None:
            return self.percentage
        return self.fixed_amount or 0.0

    def amount_for(self, subtotal: Decimal) -> Decimal:
        tax_type = self.tax_type
        if tax_type is TaxType.PERCENTAGE:
            return round2(subtotal * to_decimal(self.percentage) / Decimal(100))
        if tax_type is TaxType.FIXED:
            return round2(self.fixed_amount)
        return ZERO


@ordering.repository(part_of=Tax)
class TaxRepository:
    def active(self):
        records = self._dao.query.filter(is_active=True).all().items
        return records[0] if records else None
