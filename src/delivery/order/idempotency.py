"""Idempotency registry for order creation.

A retried checkout (client timeout, double tap) must not place a second
order. Each attempt is keyed either by the client's ``Idempotency-Key``
header or by a digest of the customer, the normalised cart and the current
time window.

IdempotencyRecord: IN_PROGRESS → COMPLETED | FAILED, COMPLETED → FAILED when the
order write itself fails. A stalled IN_PROGRESS or a FAILED key can be taken
over by a new attempt, which gets a new token and a new order id.
"""

import hashlib
import json
import time
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.query import Q

from delivery.domain import delivery
from delivery.utils.db import conditional_update, insert_if_absent


class IdempotencyStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def normalise_cart(lines: list[dict]) -> list[tuple[str, int]]:
    """Merge duplicate products and order lines by product id."""
    merged: dict[str, int] = {}
    for line in lines:
        product_id = str(line["product_id"])
        merged[product_id] = merged.get(product_id, 0) + int(line["quantity"])
    return sorted(merged.items())


def derive_idempotency_key(
    customer_key: str,
    lines: list[dict],
    window_seconds: int,
    client_key: str | None = None,
    now: float | None = None,
) -> str:
    if client_key:
        material = f"client|{customer_key}|{client_key}"
    else:
        window = int((now if now is not None else time.time()) // window_seconds)
        material = f"cart|{customer_key}|{json.dumps(normalise_cart(lines))}|{window}"
    return hashlib.sha256(material.encode()).hexdigest()


@delivery.aggregate
class IdempotencyRecord:
    key = Identifier(identifier=True)
    customer_key = String(required=True, max_length=100)
    order_id = Identifier(required=True)
    attempt_token = String(required=True, max_length=32)
    status = String(choices=IdempotencyStatus, default=IdempotencyStatus.IN_PROGRESS.value)
    error_code = String(max_length=50)
    created_at = DateTime()
    updated_at = DateTime()

    def age_seconds(self) -> float:
        created = self.created_at if self.created_at.tzinfo else self.created_at.replace(tzinfo=UTC)
        return (datetime.now(UTC) - created).total_seconds()


def new_attempt_token() -> str:
    return uuid4().hex


@delivery.repository(part_of=IdempotencyRecord)
class IdempotencyRecordRepository:
    """Every change after creation is conditional on the attempt token, so
    only the attempt that currently owns a key can complete or fail it."""

    def find(self, key: str) -> IdempotencyRecord | None:
        try:
            return self.get(key)
        except ObjectNotFoundError:
            return None

    def start(self, key: str, customer_key: str, order_id: str, token: str) -> IdempotencyRecord | None:
        """Open the key for a first attempt. None if another attempt opened it first."""
        now = datetime.now(UTC)
        record = IdempotencyRecord(
            key=key,
            customer_key=customer_key,
            order_id=order_id,
            attempt_token=token,
            status=IdempotencyStatus.IN_PROGRESS.value,
            created_at=now,
            updated_at=now,
        )
        if not insert_if_absent(self, record):
            return None
        return record

    def take_over(self, record: IdempotencyRecord, order_id: str, token: str) -> bool:
        """Hand a stalled or failed attempt's key to a new attempt with a fresh order id."""
        now = datetime.now(UTC)
        updated = conditional_update(
            self,
            Q(key=record.key, attempt_token=record.attempt_token, status=record.status),
            {
                "order_id": order_id,
                "attempt_token": token,
                "status": IdempotencyStatus.IN_PROGRESS.value,
                "error_code": None,
                "created_at": now,
                "updated_at": now,
            },
        )
        return updated == 1

    def transition(
        self,
        key: str,
        token: str,
        current: IdempotencyStatus,
        target: IdempotencyStatus,
        error_code: str | None = None,
    ) -> bool:
        updated = conditional_update(
            self,
            Q(key=key, attempt_token=token, status=current.value),
            {"status": target.value, "error_code": error_code, "updated_at": datetime.now(UTC)},
        )
        return updated == 1
