"""Agency aggregate: a tenant that fulfils orders from its own stock and agents."""

from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, String

from ordering.domain import ordering

_UNSET = object()


class AgencyStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@ordering.aggregate
class Agency:
    name: String(required=True, max_length=255)
    email: String(max_length=254)
    phone: String(max_length=20)
    address: String(max_length=500)
    city: String(max_length=100)
    pincode: String(max_length=10)
    latitude: Float(min_value=-90.0, max_value=90.0)
    longitude: Float(min_value=-180.0, max_value=180.0)
    status: String(choices=AgencyStatus, default=AgencyStatus.ACTIVE.value)
    auto_accept_orders: Boolean(default=False)
    pickup_enabled: Boolean(default=True)

    @invariant.post
    def coordinates_come_in_pairs(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValidationError({"coordinates": ["Both latitude and longitude are required"]})

    @property
    def is_active(self) -> bool:
        return self.status == AgencyStatus.ACTIVE.value

    @property
    def location(self):
        if self.latitude is None:
            return None
        return (self.latitude, self.longitude)

    @classmethod
    def register(cls, name, **details):
        from ordering.agency.events import AgencyRegistered

        agency = cls(name=name, **details)
        agency.raise_(AgencyRegistered(agency_id=agency.id, name=name, city=agency.city))
        return agency

    def update_settings(self, status=_UNSET, auto_accept_orders=_UNSET, pickup_enabled=_UNSET):
        from ordering.agency.events import AgencySettingsUpdated

        if status is not _UNSET and status is not None:
            self.status = AgencyStatus(status).value
        if auto_accept_orders is not _UNSET and auto_accept_orders is not None:
            self.auto_accept_orders = auto_accept_orders
        if pickup_enabled is not _UNSET and pickup_enabled is not None:
            self.pickup_enabled = pickup_enabled

        self.raise_(
            AgencySettingsUpdated(
                agency_id=self.id,
                status=self.status,
                auto_accept_orders=self.auto_accept_orders,
                pickup_enabled=self.pickup_enabled,
            )
        )
