"""Domain refusals raised by the ordering core.

Malformed input is reported with Protean's `ValidationError`. Everything here
is a business refusal: the request was well formed but cannot be honoured.
Each error carries a stable `kind` and a `messages` mapping shaped like
Protean's (`{field: [text, ...]}`) so callers can render them the same way.
"""


class OrderingError(Exception):
    kind = "ordering_error"
    field = "order"

    def __init__(self, message: str, field: str | None = None, **details):
        super().__init__(message)
        self.message = message
        if field is not None:
            self.field = field
        self.details = details

    @property
    def messages(self) -> dict[str, list[str]]:
        return {self.field: [self.message]}

    def to_dict(self) -> dict:
        return {"kind": self.kind, "messages": self.messages, **self.details}


class NotFound(OrderingError):
    kind = "not_found"

    def __init__(self, entity: str, identifier):
        super().__init__(f"{entity} {identifier} does not exist", field=entity.lower(), entity=entity, id=identifier)
        self.entity = entity
        self.identifier = identifier


class InvalidItem(OrderingError):
    kind = "invalid_item"
    field = "items"

    def __init__(self, product_id, message: str, variant_label: str | None = None):
        super().__init__(message, product_id=product_id, variant_label=variant_label)
        self.product_id = product_id
        self.variant_label = variant_label


class InsufficientStock(OrderingError):
    kind = "insufficient_stock"
    field = "items"

    def __init__(self, product_id, requested: int, available: int, variant_label: str | None = None):
        label = f"{product_id} ({variant_label})" if variant_label else str(product_id)
        super().__init__(
            f"Insufficient stock for {label}: {available} available, {requested} requested",
            product_id=product_id,
            variant_label=variant_label,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.variant_label = variant_label
        self.requested = requested
        self.available = available


class InvalidCoupon(OrderingError):
    kind = "invalid_coupon"
    field = "coupon_code"

    def __init__(self, code: str, reason: str, message: str):
        super().__init__(message, code=code, reason=reason)
        self.code = code
        self.reason = reason


class OutOfDeliveryRadius(OrderingError):
    kind = "out_of_delivery_radius"
    field = "location"

    def __init__(self, distance: float, radius: float):
        super().__init__(
            f"Delivery location is {distance} km away, beyond the {radius} km delivery radius",
            distance=distance,
            radius=radius,
        )
        self.distance = distance
        self.radius = radius


class MultiAgencyCart(OrderingError):
    kind = "multi_agency_cart"
    field = "items"

    def __init__(self, agency_ids):
        agency_ids = sorted(str(a) for a in agency_ids)
        super().__init__(f"Items must come from a single agency, got {', '.join(agency_ids)}", agency_ids=agency_ids)
        self.agency_ids = agency_ids


class IllegalTransition(OrderingError):
    kind = "illegal_transition"
    field = "status"

    def __init__(self, current: str, target: str, reason: str | None = None):
        message = f"Cannot transition from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, current=current, target=target)
        self.current = current
        self.target = target


class StateConflict(OrderingError):
    kind = "state_conflict"
    field = "status"

    def __init__(self, expected: str, actual: str):
        super().__init__(f"Order is {actual}, not {expected}", expected=expected, actual=actual)
        self.expected = expected
        self.actual = actual


class InvalidOTP(OrderingError):
    kind = "invalid_otp"
    field = "otp"

    REASONS = ("missing", "mismatch", "expired")

    def __init__(self, reason: str):
        messages = {
            "missing": "No delivery code has been issued for this order",
            "mismatch": "Delivery code does not match",
            "expired": "Delivery code has expired",
        }
        super().__init__(messages[reason], reason=reason)
        self.reason = reason


class Unauthorized(OrderingError):
    kind = "unauthorized"
    field = "actor"

    def __init__(self, role: str, action: str, message: str | None = None):
        super().__init__(message or f"{role} may not {action}", role=role, action=action)
        self.role = role
        self.action = action


class ConcurrentUpdate(OrderingError):
    kind = "concurrent_update"

    def __init__(self, entity: str, identifier):
        super().__init__(
            f"{entity} {identifier} kept changing while the request was being applied; try again",
            field=entity.lower(),
            entity=entity,
            id=identifier,
        )
        self.entity = entity
        self.identifier = identifier
