"""Inventory reservation: all-or-nothing stock withdrawal for an order.

Every method takes the per-(agency, product) locks for the rows it touches,
so concurrent checkouts against the same row are serialized. Locks are
re-entrant, letting callers hold them across a wider unit of work.
"""

from collections import OrderedDict
from contextlib import contextmanager

import structlog
from protean.utils.globals import current_domain

from ordering.errors import InsufficientStock, InvalidItem
from ordering.inventory.inventory import AgencyInventory
from ordering.utils.locking import KeyedLocks, inventory_key

logger = structlog.get_logger(__name__)


def _demand(items) -> "OrderedDict[tuple, int]":
    """Sum quantities per (product, variant) so repeated lines count once."""
    demand = OrderedDict()
    for item in items:
        key = (str(item.product_id), item.variant_label or None)
        demand[key] = demand.get(key, 0) + int(item.quantity)
    return demand


class InventoryReservation:
    def __init__(self, locks: KeyedLocks | None = None):
        self._locks = locks or KeyedLocks()

    def keys(self, agency_id, items) -> list[str]:
        return sorted({inventory_key(agency_id, item.product_id) for item in items})

    @contextmanager
    def locked(self, agency_id, items):
        with self._locks.holding(self.keys(agency_id, items)):
            yield

    def check(self, agency_id, items) -> dict:
        """Verify every line can be served. Returns the rows keyed by product id."""
        repo = current_domain.repository_for(AgencyInventory)
        rows = {}
        for (product_id, variant_label), quantity in _demand(items).items():
            row = rows.get(product_id)
            if row is None:
                row = repo.for_product(product_id, agency_id)
                if row is None or not row.is_active:
                    raise InvalidItem(product_id, f"Product {product_id} is not stocked by agency {agency_id}")
                rows[product_id] = row

            available = row.available(variant_label)
            if available < quantity:
                raise InsufficientStock(product_id, quantity, available, variant_label)
        return rows

    def reserve(self, agency_id, items, reference=None) -> None:
        """Withdraw stock for every line, or for none of them."""
        with self.locked(agency_id, items):
            rows = self.check(agency_id, items)
            for (product_id, variant_label), quantity in _demand(items).items():
                rows[product_id].withdraw(quantity, variant_label=variant_label, reference=reference)

            repo = current_domain.repository_for(AgencyInventory)
            for row in rows.values():
                repo.add(row)

        logger.info(
            "Stock reserved",
            agency_id=str(agency_id),
            reference=reference,
            lines=len(rows),
        )

    def restore(self, agency_id, items, reference=None) -> None:
        """Return the quantities of a cancelled or returned order to stock."""
        repo = current_domain.repository_for(AgencyInventory)
        with self.locked(agency_id, items):
            touched = {}
            for (product_id, variant_label), quantity in _demand(items).items():
                row = touched.get(product_id) or repo.for_product(product_id, agency_id)
                if row is None:
                    logger.warning(
                        "No inventory row to restore into",
                        agency_id=str(agency_id),
                        product_id=product_id,
                        reference=reference,
                    )
                    continue
                row.restore(quantity, variant_label=variant_label, reference=reference)
                touched[product_id] = row

            for row in touched.values():
                repo.add(row)

        logger.info("Stock restored", agency_id=str(agency_id), reference=reference, lines=len(touched))
