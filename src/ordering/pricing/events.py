from protean.fields import Identifier, String

from ordering.domain import ordering


@ordering.event(part_of="Coupon")
class CouponDeactivated:
    __version__ = 1

    coupon_id: Identifier(required=True)
    code: String(required=True)
