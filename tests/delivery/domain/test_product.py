"""Tests for Product regulated-weight classification."""

import pytest
from delivery.catalog.product import Product, RegulatedClass
from protean.exceptions import ValidationError


class TestRegulatedClass:
    def test_concentrate_flag_wins(self):
        product = Product.register(
            name="Rosin 1g", price=60.0, weight_grams=1.0, category="flower", is_concentrate=True, merchant_id="m-1"
        )
        assert product.regulated_class == RegulatedClass.CONCENTRATE

    def test_flower_category(self):
        product = Product.register(name="Gelato 3.5g", price=40.0, weight_grams=3.5, category="Flower", merchant_id="m-1")
        assert product.regulated_class == RegulatedClass.FLOWER

    def test_accessories_are_unregulated(self):
        product = Product.register(name="Grinder", price=15.0, category="accessories", merchant_id="m-1")
        assert product.regulated_class == RegulatedClass.NONE

    def test_regulated_product_needs_weight(self):
        with pytest.raises(ValidationError) as exc:
            Product.register(name="Mystery Bud", price=40.0, category="flower", merchant_id="m-1")
        assert "Regulated products must declare a unit weight" in str(exc.value)

    def test_deactivate(self):
        product = Product.register(name="Grinder", price=15.0, category="accessories", merchant_id="m-1")
        product.deactivate()
        assert product.is_active is False
