"""Low-stock alerts raised after a reservation commits."""

import structlog
from protean.utils.mixins import handle

from ordering.domain import ordering
from ordering.inventory.events import LowStockDetected
from ordering.inventory.inventory import AgencyInventory

logger = structlog.get_logger(__name__)


@ordering.event_handler(part_of=AgencyInventory)
class LowStockAlertHandler:
    @handle(LowStockDetected)
    def on_low_stock(self, event: LowStockDetected) -> None:
        logger.warning(
            "Agency stock is running low",
            agency_id=str(event.agency_id),
            product_id=str(event.product_id),
            variant_label=event.variant_label,
            current_stock=event.current_stock,
            threshold=event.threshold,
        )
