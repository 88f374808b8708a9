"""Product aggregate: the gas cylinders and accessories an agency can stock."""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, String

from ordering.domain import ordering


class ProductStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@ordering.entity(part_of="Product")
class ProductVariant:
    """A purchasable size of a product, e.g. a 5 kg or 14.2 kg cylinder."""

    label: String(required=True, max_length=50)
    unit: String(max_length=20)
    price: Float(required=True, min_value=0.0)


@ordering.aggregate
class Product:
    """A catalogue item with a base price and optional named variants.

    Agencies stock products through AgencyInventory rows, which may override
    the price shown here.
    """

    name: String(required=True, max_length=255)
    unit: String(max_length=20)
    price: Float(required=True, min_value=0.0)
    status: String(choices=ProductStatus, default=ProductStatus.ACTIVE.value)
    variants: HasMany(ProductVariant)
    created_at: DateTime(default=lambda: datetime.now(UTC))

    @invariant.post
    def variant_labels_must_be_unique(self):
        labels = [v.label for v in self.variants]
        if len(labels) != len(set(labels)):
            raise ValidationError({"variants": ["Variant labels must be unique"]})

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    def variant(self, label):
        return next((v for v in self.variants if v.label == label), None)

    @classmethod
    def register(cls, name, price, unit=None, variants=None):
        from ordering.catalogue.events import ProductRegistered

        product = cls(
            name=name,
            price=price,
            unit=unit,
            variants=[ProductVariant(**v) for v in (variants or [])],
        )
        product.raise_(
            ProductRegistered(
                product_id=product.id,
                name=name,
                price=price,
                variant_labels=",".join(v.label for v in product.variants),
            )
        )
        return product

    def deactivate(self):
        from ordering.catalogue.events import ProductDeactivated

        if not self.is_active:
            return
        self.status = ProductStatus.INACTIVE.value
        self.raise_(ProductDeactivated(product_id=self.id))
