"""Quota reservation, rollback and finalization.

Reservation is serialised at the ledger row: read the entry, check the
candidate totals against the jurisdiction ceilings, then write with a
conditional update on ``revision``. Losing the race re-reads and re-checks.
"""

from datetime import UTC, date, datetime

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from delivery.errors import PersistenceFailure, QuotaExceeded
from delivery.quota.ledger import ChargeStatus, QuotaCharge, QuotaLedgerEntry, ledger_entry_id, quota_day
from delivery.settings import current_jurisdiction, service_settings
from delivery.utils.db import read_committed

logger = structlog.get_logger(__name__)


def customer_quota_key(customer_id: str | None, guest_reference: str | None = None) -> str:
    if customer_id:
        return str(customer_id)
    return f"guest:{guest_reference}"


class QuotaLedger:
    def __init__(self):
        self.entries = current_domain.repository_for(QuotaLedgerEntry)
        self.charges = current_domain.repository_for(QuotaCharge)

    def _charge_for(self, order_id: str) -> QuotaCharge | None:
        try:
            return self.charges.get(order_id)
        except ObjectNotFoundError:
            return None

    def remaining(self, customer_key: str, day: date | None = None) -> tuple[float, float]:
        day = day or quota_day()
        try:
            entry = self.entries.get(ledger_entry_id(customer_key, day))
        except ObjectNotFoundError:
            jurisdiction = current_jurisdiction()
            return jurisdiction.flower_daily_limit_grams, jurisdiction.concentrate_daily_limit_grams
        return entry.remaining()

    def reserve(
        self,
        order_id: str,
        customer_key: str,
        flower_grams: float,
        concentrate_grams: float,
        day: date | None = None,
    ) -> QuotaCharge:
        """Charge the day's ledger for one order.

        Idempotent per ``order_id``: a charge that is already reserved or
        finalized is returned as is. Raises ``QuotaExceeded`` with the
        remaining allowance when either ceiling would be breached.
        """
        existing = self._charge_for(order_id)
        if existing is not None and existing.status != ChargeStatus.ROLLED_BACK.value:
            logger.info("quota charge already recorded", order_id=order_id, status=existing.status)
            return existing

        day = day or quota_day()
        entry_id = ledger_entry_id(customer_key, day)
        attempts = service_settings().cas_max_attempts

        for attempt in range(1, attempts + 1):
            entry = self.entries.get_or_create(entry_id, customer_key, day.isoformat())
            if entry.would_exceed(flower_grams, concentrate_grams):
                remaining_flower, remaining_concentrate = entry.remaining()
                logger.warning(
                    "quota exceeded",
                    order_id=order_id,
                    customer_key=customer_key,
                    requested_flower_grams=flower_grams,
                    requested_concentrate_grams=concentrate_grams,
                )
                raise QuotaExceeded(remaining_flower, remaining_concentrate)

            if self.entries.compare_and_apply(entry, flower_grams, concentrate_grams):
                break
            logger.info("quota ledger revision moved, retrying", entry_id=entry_id, attempt=attempt)
        else:
            raise PersistenceFailure("The quota ledger is busy. Please retry.", entry_id=entry_id)

        charge = existing or QuotaCharge(order_id=order_id, ledger_entry_id=entry_id, customer_key=customer_key)
        charge.ledger_entry_id = entry_id
        charge.flower_grams = flower_grams
        charge.concentrate_grams = concentrate_grams
        charge.status = ChargeStatus.RESERVED.value
        charge.reserved_at = datetime.now(UTC)
        self.charges.add(charge)

        logger.info(
            "quota reserved",
            order_id=order_id,
            entry_id=entry_id,
            flower_grams=flower_grams,
            concentrate_grams=concentrate_grams,
        )
        return charge

    def rollback(self, order_id: str) -> bool:
        """Undo the charge of an order that was never persisted."""
        charge = self._charge_for(order_id)
        if charge is None or charge.status != ChargeStatus.RESERVED.value:
            return False
        if not self.charges.close_if_reserved(order_id, ChargeStatus.ROLLED_BACK):
            return False

        attempts = service_settings().cas_max_attempts
        for _ in range(attempts):
            entry = read_committed(self.entries, charge.ledger_entry_id)
            if self.entries.compare_and_apply(entry, -charge.flower_grams, -charge.concentrate_grams):
                break
        else:
            raise PersistenceFailure("Could not roll back quota charge", order_id=order_id)

        logger.info("quota rolled back", order_id=order_id, entry_id=charge.ledger_entry_id)
        return True

    def finalize(self, order_id: str, outcome: ChargeStatus) -> bool:
        """Mark an order's charge consumed or forfeited. The ledger is untouched."""
        charge = self._charge_for(order_id)
        if charge is None:
            logger.warning("no quota charge to finalize", order_id=order_id)
            return False
        if not charge.finalize(outcome):
            return False
        self.charges.add(charge)
        logger.info("quota charge finalized", order_id=order_id, outcome=outcome.value)
        return True
