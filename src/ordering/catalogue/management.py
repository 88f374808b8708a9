"""Catalogue administration: registering and retiring products."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.catalogue.product import Product
from ordering.domain import ordering


@ordering.command(part_of="Product")
class RegisterProduct:
    name: String(required=True, max_length=255)
    price: Float(required=True, min_value=0.0)
    unit: String(max_length=20)
    variants: Text()  # JSON: list of {label, unit, price}


@ordering.command(part_of="Product")
class DeactivateProduct:
    product_id: Identifier(required=True)


@ordering.command_handler(part_of=Product)
class ProductManagementHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        try:
            variants = json.loads(command.variants) if command.variants else []
        except json.JSONDecodeError:
            raise ValidationError({"variants": ["Variants must be valid JSON"]}) from None

        product = Product.register(
            name=command.name,
            price=command.price,
            unit=command.unit,
            variants=variants,
        )
        current_domain.repository_for(Product).add(product)
        return str(product.id)

    @handle(DeactivateProduct)
    def deactivate_product(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.deactivate()
        repo.add(product)
