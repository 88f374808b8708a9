from protean.fields import Boolean, Float

from ordering.domain import ordering


@ordering.aggregate
class PlatformCharge:
    """A flat fee added to every order while active."""

    amount: Float(required=True, min_value=0.0)
    is_active: Boolean(default=True)


@ordering.repository(part_of=PlatformCharge)
class PlatformChargeRepository:
    def active(self):
        records = self._dao.query.filter(is_active=True).all().items
        return records[0] if records else None
