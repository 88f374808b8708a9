"""AgencyInventory aggregate: one stock row per (product, agency).

A row holds the base stock count plus optional per-variant stock and price
overrides. Only the inventory reservation service and the stocking commands
change these counters.
"""

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, HasMany, Identifier, Integer, String

from ordering.domain import ordering
from ordering.errors import InsufficientStock
from ordering.inventory.events import (
    InventoryStocked,
    LowStockDetected,
    StockRestored,
    StockWithdrawn,
)


@ordering.entity(part_of="AgencyInventory")
class InventoryVariant:
    """Agency-specific stock and price for one product variant."""

    label: String(required=True, max_length=50)
    unit: String(max_length=20)
    price: Float(min_value=0.0)
    stock: Integer(default=0, min_value=0)


@ordering.aggregate
class AgencyInventory:
    product_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    stock: Integer(default=0, min_value=0)
    low_stock_threshold: Integer(default=10, min_value=0)
    is_active: Boolean(default=True)
    agency_price: Float(min_value=0.0)
    variants: HasMany(InventoryVariant)

    @invariant.post
    def variant_labels_must_be_unique(self):
        labels = [v.label for v in self.variants]
        if len(labels) != len(set(labels)):
            raise ValidationError({"variants": ["Variant labels must be unique"]})

    @classmethod
    def open(cls, product_id, agency_id, stock=0, low_stock_threshold=10, agency_price=None):
        row = cls(
            product_id=product_id,
            agency_id=agency_id,
            stock=stock,
            low_stock_threshold=low_stock_threshold,
            agency_price=agency_price,
        )
        row.raise_(
            InventoryStocked(
                inventory_id=row.id,
                product_id=product_id,
                agency_id=agency_id,
                quantity=stock,
                new_stock=stock,
            )
        )
        return row

    def variant(self, label):
        return next((v for v in self.variants if v.label == label), None)

    def available(self, variant_label=None) -> int:
        if variant_label:
            variant = self.variant(variant_label)
            return variant.stock if variant else 0
        return self.stock

    def price_override(self, variant_label=None):
        """The agency's price for this item, or None to fall back to the catalogue."""
        if variant_label:
            variant = self.variant(variant_label)
            return variant.price if variant else None
        return self.agency_price

    def _set_stock(self, variant_label, value):
        if variant_label:
            variant = self.variant(variant_label)
            variant.stock = value
            self.add_variants(variant)
        else:
            self.stock = value

    def replenish(self, quantity, variant_label=None, unit=None, price=None):
        """Add stock, creating the variant row on first use."""
        if quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})

        if variant_label and self.variant(variant_label) is None:
            self.add_variants(InventoryVariant(label=variant_label, unit=unit, price=price, stock=0))
        elif variant_label and price is not None:
            variant = self.variant(variant_label)
            variant.price = price
            self.add_variants(variant)

        new_stock = self.available(variant_label) + quantity
        self._set_stock(variant_label, new_stock)
        self.raise_(
            InventoryStocked(
                inventory_id=self.id,
                product_id=self.product_id,
                agency_id=self.agency_id,
                variant_label=variant_label,
                quantity=quantity,
                new_stock=new_stock,
            )
        )

    def withdraw(self, quantity, variant_label=None, reference=None):
        """Take stock for an order. Never lets the counter go negative."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        current = self.available(variant_label)
        if current < quantity:
            raise InsufficientStock(self.product_id, quantity, current, variant_label)

        new_stock = current - quantity
        self._set_stock(variant_label, new_stock)
        self.raise_(
            StockWithdrawn(
                inventory_id=self.id,
                product_id=self.product_id,
                agency_id=self.agency_id,
                variant_label=variant_label,
                quantity=quantity,
                new_stock=new_stock,
                reference=reference,
            )
        )
        self._check_low_stock(current, new_stock, variant_label)

    def restore(self, quantity, variant_label=None, reference=None):
        """Put stock back after a cancellation or an approved return."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        if variant_label and self.variant(variant_label) is None:
            self.add_variants(InventoryVariant(label=variant_label, stock=0))

        new_stock = self.available(variant_label) + quantity
        self._set_stock(variant_label, new_stock)
        self.raise_(
            StockRestored(
                inventory_id=self.id,
                product_id=self.product_id,
                agency_id=self.agency_id,
                variant_label=variant_label,
                quantity=quantity,
                new_stock=new_stock,
                reference=reference,
            )
        )

    def set_active(self, is_active):
        self.is_active = bool(is_active)

    def _check_low_stock(self, before, after, variant_label):
        threshold = self.low_stock_threshold or 0
        if before > threshold >= after:
            self.raise_(
                LowStockDetected(
                    inventory_id=self.id,
                    product_id=self.product_id,
                    agency_id=self.agency_id,
                    variant_label=variant_label,
                    current_stock=after,
                    threshold=threshold,
                )
            )


@ordering.repository(part_of=AgencyInventory)
class AgencyInventoryRepository:
    def for_product(self, product_id, agency_id):
        """The stock row for a product at an agency, or None."""
        rows = self._dao.query.filter(product_id=str(product_id), agency_id=str(agency_id)).all().items
        return rows[0] if rows else None

    def stocking(self, product_id) -> list:
        """Active rows for a product across all agencies."""
        rows = self._dao.query.filter(product_id=str(product_id)).all().items
        return [row for row in rows if row.is_active]

    def for_agency(self, agency_id) -> list:
        return self._dao.query.filter(agency_id=str(agency_id)).all().items
