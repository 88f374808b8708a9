from protean.fields import Float, Identifier, String

from ordering.domain import ordering


@ordering.event(part_of="Product")
class ProductRegistered:
    __version__ = 1

    product_id: Identifier(required=True)
    name: String(required=True)
    price: Float(required=True)
    variant_labels: String()


@ordering.event(part_of="Product")
class ProductDeactivated:
    __version__ = 1

    product_id: Identifier(required=True)
