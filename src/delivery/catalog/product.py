"""Product — the catalog data order creation reads.

Search and merchandising live elsewhere; this aggregate only carries what the
order pipeline snapshots onto an order line and what the quota ledger needs to
classify the purchase.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String

from delivery.domain import delivery


class RegulatedClass(Enum):
    FLOWER = "flower"
    CONCENTRATE = "concentrate"
    NONE = "none"


@delivery.aggregate
class Product:
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    weight_grams = Float(default=0.0, min_value=0.0)
    category = String(max_length=50)
    is_concentrate = Boolean(default=False)
    merchant_id = Identifier(required=True)
    is_active = Boolean(default=True)
    created_at = DateTime()

    @invariant.post
    def regulated_products_must_declare_weight(self):
        if self.regulated_class != RegulatedClass.NONE and not self.weight_grams:
            raise ValidationError({"weight_grams": ["Regulated products must declare a unit weight"]})

    @classmethod
    def register(cls, **kwargs):
        return cls(created_at=datetime.now(UTC), **kwargs)

    @property
    def regulated_class(self) -> RegulatedClass:
        if self.is_concentrate:
            return RegulatedClass.CONCENTRATE
        if (self.category or "").lower() == "flower":
            return RegulatedClass.FLOWER
        return RegulatedClass.NONE

    def deactivate(self) -> None:
        self.is_active = False
