"""Admin configuration of taxes, charges and coupons."""

import structlog
from protean import atomic_change, handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Date, DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.clock import SystemClock
from ordering.domain import ordering
from ordering.pricing.coupon import Coupon, DiscountType
from ordering.pricing.delivery_charge import ChargeType, DeliveryCharge
from ordering.pricing.platform_charge import PlatformCharge
from ordering.pricing.tax import Tax
from ordering.settings import OrderingSettings

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Tax")
class ConfigureTax:
    """Replace the active tax. Leave both amounts empty to charge no tax."""

    percentage: Float(min_value=0.0, max_value=100.0)
    fixed_amount: Float(min_value=0.0)


@ordering.command(part_of="PlatformCharge")
class ConfigurePlatformCharge:
    amount: Float(required=True, min_value=0.0)
    is_active: Boolean(default=True)


@ordering.command(part_of="DeliveryCharge")
class ConfigureDeliveryCharge:
    agency_id: Identifier(required=True)
    charge_type: String(required=True, choices=ChargeType)
    rate_per_km: Float(min_value=0.0)
    fixed_amount: Float(min_value=0.0)
    delivery_radius: Float(min_value=1.0)
    is_active: Boolean(default=True)


@ordering.command(part_of="Coupon")
class IssueCoupon:
    code: String(required=True, max_length=50)
    discount_type: String(required=True, choices=DiscountType)
    discount_value: Float(required=True, min_value=0.0)
    min_amount: Float(default=0.0, min_value=0.0)
    max_amount: Float(min_value=0.0)
    expiry_date: Date()
    expiry_time: String(max_length=5, default="23:59")
    agency_id: Identifier()


@ordering.command(part_of="Coupon")
class DeactivateCoupon:
    code: String(required=True, max_length=50)


@ordering.command(part_of="Coupon")
class SweepExpiredCoupons:
    as_of: DateTime()


def _deactivate_all(repo, records):
    for record in records:
        record.is_active = False
        repo.add(record)


@ordering.command_handler(part_of=Tax)
class TaxConfigurationHandler:
    @handle(ConfigureTax)
    def configure_tax(self, command):
        if command.percentage is not None and command.fixed_amount is not None:
            raise ValidationError({"tax": ["Only one of percentage or fixed amount may be set"]})

        repo = current_domain.repository_for(Tax)
        _deactivate_all(repo, repo._dao.query.filter(is_active=True).all().items)

        tax = Tax(percentage=command.percentage, fixed_amount=command.fixed_amount)
        repo.add(tax)
        return str(tax.id)


@ordering.command_handler(part_of=PlatformCharge)
class PlatformChargeConfigurationHandler:
    @handle(ConfigurePlatformCharge)
    def configure_platform_charge(self, command):
        repo = current_domain.repository_for(PlatformCharge)
        _deactivate_all(repo, repo._dao.query.filter(is_active=True).all().items)

        charge = PlatformCharge(amount=command.amount, is_active=command.is_active)
        repo.add(charge)
        return str(charge.id)


@ordering.command_handler(part_of=DeliveryCharge)
class DeliveryChargeConfigurationHandler:
    @handle(ConfigureDeliveryCharge)
    def configure_delivery_charge(self, command):
        repo = current_domain.repository_for(DeliveryCharge)
        existing = repo._dao.query.filter(agency_id=str(command.agency_id)).all().items

        if existing:
            rule = existing[0]
            with atomic_change(rule):
                rule.charge_type = command.charge_type
                rule.rate_per_km = command.rate_per_km
                rule.fixed_amount = command.fixed_amount
                if command.delivery_radius is not None:
                    rule.delivery_radius = command.delivery_radius
                rule.is_active = command.is_active
        else:
            rule = DeliveryCharge(
                agency_id=command.agency_id,
                charge_type=command.charge_type,
                rate_per_km=command.rate_per_km,
                fixed_amount=command.fixed_amount,
                delivery_radius=command.delivery_radius
                or OrderingSettings.from_config(current_domain.config).default_delivery_radius_km,
                is_active=command.is_active,
            )
        repo.add(rule)
        return str(rule.id)


@ordering.command_handler(part_of=Coupon)
class CouponManagementHandler:
    @handle(IssueCoupon)
    def issue_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        if repo.by_code(command.code) is not None:
            raise ValidationError({"code": [f"Coupon {command.code.upper()} already exists"]})

        coupon = Coupon.issue(
            code=command.code,
            discount_type=command.discount_type,
            discount_value=command.discount_value,
            min_amount=command.min_amount,
            max_amount=command.max_amount,
            expiry_date=command.expiry_date,
            expiry_time=command.expiry_time,
            agency_id=command.agency_id,
        )
        repo.add(coupon)
        return str(coupon.id)

    @handle(DeactivateCoupon)
    def deactivate_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.by_code(command.code)
        if coupon is None:
            raise ValidationError({"code": [f"Coupon {command.code.upper()} does not exist"]})
        coupon.deactivate()
        repo.add(coupon)

    @handle(SweepExpiredCoupons)
    def sweep_expired(self, command):
        now = command.as_of or SystemClock().now()
        repo = current_domain.repository_for(Coupon)

        expired = [c for c in repo.active() if c.is_expired(now)]
        for coupon in expired:
            coupon.deactivate()
            repo.add(coupon)

        logger.info("Expired coupons deactivated", count=len(expired))
        return len(expired)
