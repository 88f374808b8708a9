"""Stocking commands for agency inventory rows."""

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import NotFound
from ordering.inventory.inventory import AgencyInventory
from ordering.settings import OrderingSettings


@ordering.command(part_of="AgencyInventory")
class StockInventory:
    """Open a row for (product, agency) or top it up."""

    product_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    quantity: Integer(required=True, min_value=0)
    variant_label: String(max_length=50)
    variant_unit: String(max_length=20)
    price: Float(min_value=0.0)
    low_stock_threshold: Integer(min_value=0)


@ordering.command(part_of="AgencyInventory")
class SetInventoryActive:
    product_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    is_active: Boolean(required=True)


@ordering.command_handler(part_of=AgencyInventory)
class InventoryManagementHandler:
    @handle(StockInventory)
    def stock_inventory(self, command):
        repo = current_domain.repository_for(AgencyInventory)
        row = repo.for_product(command.product_id, command.agency_id)

        if row is None:
            threshold = command.low_stock_threshold
            if threshold is None:
                threshold = OrderingSettings.from_config(current_domain.config).low_stock_threshold
            row = AgencyInventory.open(
                product_id=command.product_id,
                agency_id=command.agency_id,
                stock=0 if command.variant_label else command.quantity,
                low_stock_threshold=threshold,
                agency_price=None if command.variant_label else command.price,
            )
            if command.variant_label:
                row.replenish(
                    command.quantity,
                    variant_label=command.variant_label,
                    unit=command.variant_unit,
                    price=command.price,
                )
        else:
            if command.low_stock_threshold is not None:
                row.low_stock_threshold = command.low_stock_threshold
            if command.price is not None and not command.variant_label:
                row.agency_price = command.price
            row.replenish(
                command.quantity,
                variant_label=command.variant_label,
                unit=command.variant_unit,
                price=command.price,
            )

        repo.add(row)
        return str(row.id)

    @handle(SetInventoryActive)
    def set_active(self, command):
        repo = current_domain.repository_for(AgencyInventory)
        row = repo.for_product(command.product_id, command.agency_id)
        if row is None:
            raise NotFound("AgencyInventory", f"{command.product_id}@{command.agency_id}")
        row.set_active(command.is_active)
        repo.add(row)
