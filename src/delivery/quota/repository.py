"""Repositories for quota records with compare-and-swap updates."""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.utils.query import Q

from delivery.domain import delivery
from delivery.quota.ledger import ChargeStatus, QuotaCharge, QuotaLedgerEntry
from delivery.utils.db import conditional_update, insert_if_absent, read_committed


@delivery.repository(part_of=QuotaLedgerEntry)
class QuotaLedgerRepository:
    def get_or_create(self, entry_id: str, customer_key: str, day: str) -> QuotaLedgerEntry:
        """Fetch the day's entry, creating an empty one on first use."""
        try:
            return read_committed(self, entry_id)
        except ObjectNotFoundError:
            now = datetime.now(UTC)
            insert_if_absent(
                self,
                QuotaLedgerEntry(
                    entry_id=entry_id,
                    customer_key=customer_key,
                    day=day,
                    flower_grams=0.0,
                    concentrate_grams=0.0,
                    revision=0,
                    created_at=now,
                    updated_at=now,
                ),
            )
            return read_committed(self, entry_id)

    def compare_and_apply(self, entry: QuotaLedgerEntry, flower_delta: float, concentrate_delta: float) -> bool:
        """Apply deltas only if the row still carries the revision we read.

        Returns False when another writer got there first.
        """
        updated = conditional_update(
            self,
            Q(entry_id=entry.entry_id, revision=entry.revision),
            {
                "flower_grams": max(0.0, round((entry.flower_grams or 0.0) + flower_delta, 2)),
                "concentrate_grams": max(0.0, round((entry.concentrate_grams or 0.0) + concentrate_delta, 2)),
                "revision": entry.revision + 1,
                "updated_at": datetime.now(UTC),
            },
        )
        return updated == 1

    def find_for_customer(self, customer_key: str) -> list[QuotaLedgerEntry]:
        return self._dao.query.filter(customer_key=customer_key).all().items


@delivery.repository(part_of=QuotaCharge)
class QuotaChargeRepository:
    def close_if_reserved(self, order_id: str, status: ChargeStatus) -> bool:
        """Move a reserved charge to ``status``. Only one caller can win."""
        updated = conditional_update(
            self,
            Q(order_id=order_id, status=ChargeStatus.RESERVED.value),
            {"status": status.value, "finalized_at": datetime.now(UTC)},
        )
        return updated == 1
