"""Quota ledger — per-customer, per-day regulated weight totals.

A ``QuotaLedgerEntry`` row exists per (customer, calendar day in the
jurisdiction's timezone). Rows are created lazily, grow additively with every
order and are never deleted. The only decrement is the rollback of a charge
whose order was never persisted.

Each order's contribution is tracked separately as a ``QuotaCharge`` so that
reservation and rollback are idempotent per order and so that terminal order
states can mark the charge consumed or forfeited.

    QuotaCharge: RESERVED → ROLLED_BACK | CONSUMED | FORFEITED
"""

from datetime import UTC, date, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String

from delivery.domain import delivery
from delivery.quota.events import QuotaChargeFinalized
from delivery.settings import current_jurisdiction


class ChargeStatus(Enum):
    RESERVED = "reserved"
    ROLLED_BACK = "rolled_back"
    CONSUMED = "consumed"
    FORFEITED = "forfeited"


def ledger_entry_id(customer_key: str, day: date) -> str:
    return f"{customer_key}:{day.isoformat()}"


def quota_day(moment: datetime | None = None) -> date:
    """Calendar date of ``moment`` in the jurisdiction's timezone."""
    moment = moment or datetime.now(UTC)
    return moment.astimezone(current_jurisdiction().tz).date()


@delivery.aggregate
class QuotaLedgerEntry:
    entry_id = Identifier(identifier=True)
    customer_key = String(required=True, max_length=100)
    day = String(required=True, max_length=10)
    flower_grams = Float(default=0.0)
    concentrate_grams = Float(default=0.0)
    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    def remaining(self) -> tuple[float, float]:
        jurisdiction = current_jurisdiction()
        return (
            max(0.0, round(jurisdiction.flower_daily_limit_grams - (self.flower_grams or 0.0), 2)),
            max(0.0, round(jurisdiction.concentrate_daily_limit_grams - (self.concentrate_grams or 0.0), 2)),
        )

    def would_exceed(self, flower_grams: float, concentrate_grams: float) -> bool:
        jurisdiction = current_jurisdiction()
        flower = round((self.flower_grams or 0.0) + flower_grams, 2)
        concentrate = round((self.concentrate_grams or 0.0) + concentrate_grams, 2)
        return flower > jurisdiction.flower_daily_limit_grams or concentrate > jurisdiction.concentrate_daily_limit_grams


@delivery.aggregate
class QuotaCharge:
    """One order's draw on a ledger entry."""

    order_id = Identifier(identifier=True)
    ledger_entry_id = String(required=True, max_length=120)
    customer_key = String(required=True, max_length=100)
    flower_grams = Float(default=0.0)
    concentrate_grams = Float(default=0.0)
    status = String(choices=ChargeStatus, default=ChargeStatus.RESERVED.value)
    reserved_at = DateTime()
    finalized_at = DateTime()

    def finalize(self, outcome: ChargeStatus) -> bool:
        """Record the terminal outcome. Returns False if already finalized."""
        if outcome not in (ChargeStatus.CONSUMED, ChargeStatus.FORFEITED):
            raise ValidationError({"status": [f"{outcome.value} is not a final outcome"]})
        if self.status != ChargeStatus.RESERVED.value:
            return False

        now = datetime.now(UTC)
        self.status = outcome.value
        self.finalized_at = now
        self.raise_(
            QuotaChargeFinalized(
                charge_id=str(self.order_id),
                order_id=str(self.order_id),
                ledger_entry_id=self.ledger_entry_id,
                outcome=outcome.value,
                flower_grams=self.flower_grams,
                concentrate_grams=self.concentrate_grams,
                finalized_at=now,
            )
        )
        return True
