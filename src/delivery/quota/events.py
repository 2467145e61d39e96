"""Quota domain events."""

from protean.fields import DateTime, Float, Identifier, String

from delivery.domain import delivery


@delivery.event(part_of="QuotaCharge")
class QuotaChargeFinalized:
    """A reserved quota charge reached its final outcome."""

    __version__ = 1

    charge_id = Identifier(required=True)
    order_id = Identifier(required=True)
    ledger_entry_id = String(required=True)
    outcome = String(required=True)
    flower_grams = Float(default=0.0)
    concentrate_grams = Float(default=0.0)
    finalized_at = DateTime(required=True)
