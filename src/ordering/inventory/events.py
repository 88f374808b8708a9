"""Domain events for AgencyInventory."""

from protean.fields import Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="AgencyInventory")
class InventoryStocked:
    """Stock was added to an agency's row, or the row was opened."""

    __version__ = 1

    inventory_id: Identifier(required=True)
    product_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    variant_label: String()
    quantity: Integer(required=True)
    new_stock: Integer(required=True)


@ordering.event(part_of="AgencyInventory")
class StockWithdrawn:
    """Stock was taken for an order."""

    __version__ = 1

    inventory_id: Identifier(required=True)
    product_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    variant_label: String()
    quantity: Integer(required=True)
    new_stock: Integer(required=True)
    reference: String()


@ordering.event(part_of="AgencyInventory")
class StockRestored:
    """Stock came back from a cancelled order or an approved return."""

    __version__ = 1

    inventory_id: Identifier(required=True)
    product_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    variant_label: String()
    quantity: Integer(required=True)
    new_stock: Integer(required=True)
    reference: String()


@ordering.event(part_of="AgencyInventory")
class LowStockDetected:
    """Available stock fell to or below the row's threshold."""

    __version__ = 1

    inventory_id: Identifier(required=True)
    product_id: Identifier(required=True)
    agency_id: Identifier(required=True)
    variant_label: String()
    current_stock: Integer(required=True)
    threshold: Integer(required=True)
