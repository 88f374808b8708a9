"""Ordering bounded context: bottled-gas delivery orders.

Covers pricing, per-agency inventory reservation, agency and agent
assignment, the order status lifecycle, delivery verification codes and
notification fan-out.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
