"""Product registration — commands and handler."""

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from delivery.catalog.product import Product
from delivery.domain import delivery
from delivery.inventory.record import InventoryRecord


@delivery.command(part_of="Product")
class RegisterProduct:
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    weight_grams = Float(default=0.0)
    category = String(max_length=50)
    is_concentrate = Boolean(default=False)
    merchant_id = Identifier(required=True)
    initial_stock = Integer(default=0, min_value=0)
    low_stock_threshold = Integer(default=5, min_value=0)


@delivery.command(part_of="Product")
class DeactivateProduct:
    product_id = Identifier(required=True)


@delivery.command_handler(part_of=Product)
class ProductRegistrationHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        product = Product.register(
            name=command.name,
            price=command.price,
            weight_grams=command.weight_grams or 0.0,
            category=command.category,
            is_concentrate=command.is_concentrate or False,
            merchant_id=command.merchant_id,
        )
        current_domain.repository_for(Product).add(product)
        current_domain.repository_for(InventoryRecord).add(
            InventoryRecord(
                product_id=str(product.id),
                stock=command.initial_stock or 0,
                low_stock_threshold=command.low_stock_threshold,
            )
        )
        return str(product.id)

    @handle(DeactivateProduct)
    def deactivate_product(self, command):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.deactivate()
        repo.add(product)
