"""Order placement saga — cart to durable order.

Quota, stock and the order row live in different records, so placement is
not one ACID transaction. Each step that changes shared state pushes its
undo onto a compensation list; on any failure the list runs in reverse.

Flow:
    0. Validate input shape (no side effects before this passes)
    0b. Idempotency: replay a completed order, or take over a stalled or
        failed attempt under a fresh order id after releasing what it held
    1. Eligibility gate
    2. Geofence
    3. Price lines from the catalog, classify regulated weight
    4. Reserve quota for the whole order         (undo: roll back charge)
    5. Reserve stock line by line                 (undo: release line)
    6. Delivery fee from live courier supply
    7. Complete the idempotency key (only the owning attempt can), then
       persist order, items and first tracking event in one write

The whole run is bounded by ORDER_CREATION_BUDGET_SECONDS, checked between
steps.
"""

import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from delivery.catalog.product import Product, RegulatedClass
from delivery.courier.courier import Courier
from delivery.eligibility import get_eligibility_gate
from delivery.errors import CreationTimedOut, NotEligible, OrderError, OrderInProgress, PersistenceFailure, UnservedRegion
from delivery.inventory.service import InventoryReservations
from delivery.order.idempotency import (
    IdempotencyRecord,
    IdempotencyStatus,
    derive_idempotency_key,
    new_attempt_token,
    normalise_cart,
)
from delivery.order.order import Order, PaymentMethod
from delivery.order.reconciliation import CompensationFailure
from delivery.pricing.fee import SpeedTier, delivery_fee
from delivery.quota.service import QuotaLedger, customer_quota_key
from delivery.settings import current_jurisdiction, service_settings

logger = structlog.get_logger(__name__)


@dataclass
class PlacementRequest:
    lines: list[dict]
    address: dict
    payment_method: str
    speed_tier: str = SpeedTier.STANDARD.value
    customer_id: str | None = None
    guest_reference: str | None = None
    idempotency_key: str | None = None
    client_delivery_fee: float | None = None
    scheduled_delivery_at: datetime | None = None

    @property
    def customer_key(self) -> str:
        return customer_quota_key(self.customer_id, self.guest_reference)


@dataclass(frozen=True)
class PlacementResult:
    order: Order
    replayed: bool = False


def _regulated_grams(lines: list[dict], regulated_class: RegulatedClass) -> float:
    return round(
        sum(line["weight_grams"] * line["quantity"] for line in lines if line["regulated_class"] == regulated_class.value),
        2,
    )


@dataclass
class _Compensation:
    step: str
    action: Callable[[], object]
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class _Attempt:
    key: str
    token: str
    order_id: str


class OrderPlacement:
    def __init__(self, gate=None, clock: Callable[[], float] = time.monotonic):
        self.gate = gate or get_eligibility_gate()
        self.clock = clock
        self.settings = service_settings()
        self.orders = current_domain.repository_for(Order)
        self.idempotency = current_domain.repository_for(IdempotencyRecord)

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    def place(self, request: PlacementRequest) -> PlacementResult:
        started = self.clock()
        self._validate(request)

        key = derive_idempotency_key(
            request.customer_key,
            request.lines,
            self.settings.idempotency_window_seconds,
            client_key=request.idempotency_key,
        )
        replay, attempt = self._begin(key, request.customer_key)
        if replay is not None:
            return PlacementResult(order=replay, replayed=True)

        order_id = attempt.order_id
        log = logger.bind(order_id=order_id, customer_key=request.customer_key, idempotency_key=key)
        compensations: list[_Compensation] = []
        step = "eligibility"
        completed = False

        try:
            self._check_eligibility(request)
            step = "region"
            self._check_region(request)
            self._check_deadline(started, "pricing")

            step = "pricing"
            lines, merchant_id = self._price_lines(request)
            flower = _regulated_grams(lines, RegulatedClass.FLOWER)
            concentrate = _regulated_grams(lines, RegulatedClass.CONCENTRATE)

            step = "reserve_quota"
            quota = QuotaLedger()
            quota.reserve(order_id, request.customer_key, flower, concentrate)
            compensations.append(_Compensation("rollback_quota", lambda: quota.rollback(order_id)))
            log.info("quota step complete", flower_grams=flower, concentrate_grams=concentrate)

            step = "reserve_stock"
            stock = InventoryReservations()
            for line in lines:
                self._check_deadline(started, "reserve_stock")
                product_id = line["product_id"]
                stock.reserve(order_id, product_id, line["quantity"], product_name=line["product_name"])
                compensations.append(
                    _Compensation(
                        "release_stock",
                        lambda product_id=product_id: stock.release(order_id, product_id),
                        {"product_id": product_id, "quantity": line["quantity"]},
                    )
                )
            log.info("stock step complete", lines=len(lines))

            self._check_deadline(started, "price_delivery")
            step = "price_delivery"
            fee = self._delivery_fee(request, lines)

            self._check_deadline(started, "persist")
            step = "persist"
            order = Order.place(
                order_id=order_id,
                customer_id=request.customer_id,
                guest_reference=request.guest_reference if not request.customer_id else None,
                merchant_id=merchant_id,
                address=request.address,
                payment_method=request.payment_method,
                speed_tier=request.speed_tier,
                lines=lines,
                delivery_fee=fee,
                scheduled_delivery_at=request.scheduled_delivery_at,
            )
            # Only the attempt holding the key gets past this point to write the order
            if not self.idempotency.transition(
                key, attempt.token, IdempotencyStatus.IN_PROGRESS, IdempotencyStatus.COMPLETED
            ):
                log.warning("attempt superseded before persisting", step=step)
                raise OrderInProgress(order_id=order_id)
            completed = True
            self._persist(order)
        except OrderError as exc:
            self._abandon(attempt, compensations, completed, exc.code, exc)
            raise
        except ValidationError as exc:
            self._abandon(attempt, compensations, completed, "validation_error", exc)
            raise
        except Exception as exc:
            written = self._written(order_id) if completed else None
            if written is not None:
                log.error("order written but post-commit processing failed", error=repr(exc))
                return PlacementResult(order=written)
            log.error("order placement step failed", step=step, error=repr(exc))
            self._abandon(attempt, compensations, completed, PersistenceFailure.code, exc)
            raise PersistenceFailure(order_id=order_id, step=step) from exc

        log.info("order placed", order_number=order.order_number, total=order.total)
        return PlacementResult(order=order)

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    def _validate(self, request: PlacementRequest) -> None:
        errors: dict[str, list[str]] = {}
        if not request.lines:
            errors["items"] = ["Cart is empty"]
        elif len(request.lines) > self.settings.max_cart_lines:
            errors["items"] = [f"Too many items (max {self.settings.max_cart_lines})"]
        else:
            for line in request.lines:
                if not line.get("product_id"):
                    errors.setdefault("items", []).append("Every item needs a product_id")
                quantity = line.get("quantity")
                if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                    errors.setdefault("items", []).append("Quantity must be a whole number of at least 1")

        if request.payment_method not in {m.value for m in PaymentMethod}:
            errors["payment_method"] = ["Payment method must be cash, card or crypto"]
        if request.speed_tier not in {t.value for t in SpeedTier}:
            errors["speed_tier"] = ["Speed tier must be standard or express"]

        address = request.address or {}
        if not address.get("street"):
            errors.setdefault("address", []).append("Street is required")
        if not address.get("borough"):
            errors.setdefault("address", []).append("Borough is required")

        if not request.customer_id and not request.guest_reference:
            errors["guest_reference"] = ["Guest checkout requires a guest reference"]

        if errors:
            raise ValidationError(errors)

    def _begin(self, key: str, customer_key: str) -> tuple[Order | None, _Attempt | None]:
        """Replay a finished order or claim the key for this attempt.

        Raises OrderInProgress while another live attempt owns the key.
        """
        attempt = _Attempt(key=key, token=new_attempt_token(), order_id=str(uuid4()))
        record = self.idempotency.find(key)
        if record is None:
            if self.idempotency.start(key, customer_key, attempt.order_id, attempt.token) is None:
                logger.info("lost race to open idempotency key", idempotency_key=key)
                raise OrderInProgress()
            return None, attempt

        if record.status == IdempotencyStatus.COMPLETED.value:
            try:
                order = self.orders.get(record.order_id)
            except ObjectNotFoundError:
                # Key completed, order write still in flight
                raise OrderInProgress(order_id=str(record.order_id))
            logger.info("replaying completed order", idempotency_key=key, order_id=str(record.order_id))
            return order, None

        if record.status == IdempotencyStatus.IN_PROGRESS.value:
            if record.age_seconds() < self.settings.order_creation_budget_seconds:
                raise OrderInProgress(order_id=str(record.order_id))
            if not self.idempotency.take_over(record, attempt.order_id, attempt.token):
                raise OrderInProgress(order_id=str(record.order_id))
            logger.warning(
                "took over stalled order attempt",
                idempotency_key=key,
                stalled_order_id=str(record.order_id),
                order_id=attempt.order_id,
            )
            self._release_stalled(str(record.order_id))
            return None, attempt

        if not self.idempotency.take_over(record, attempt.order_id, attempt.token):
            raise OrderInProgress(order_id=str(record.order_id))
        return None, attempt

    def _release_stalled(self, stalled_order_id: str) -> None:
        """Give back whatever a stalled attempt reserved under its own order id."""
        compensations = [
            _Compensation("rollback_quota", lambda: QuotaLedger().rollback(stalled_order_id)),
            _Compensation("release_stock", lambda: InventoryReservations().release_order(stalled_order_id)),
        ]
        self._compensate(stalled_order_id, compensations, None)

    def _check_eligibility(self, request: PlacementRequest) -> None:
        if request.customer_id:
            eligible = self.gate.is_eligible(request.customer_id)
        else:
            eligible = self.gate.is_guest_attested(request.guest_reference)
        if not eligible:
            logger.warning("buyer not eligible", customer_key=request.customer_key)
            raise NotEligible()

    def _check_region(self, request: PlacementRequest) -> None:
        borough = request.address.get("borough")
        if not current_jurisdiction().serves(borough):
            logger.warning("unserved region", borough=borough)
            raise UnservedRegion(borough=borough)

    def _price_lines(self, request: PlacementRequest) -> tuple[list[dict], str | None]:
        products = current_domain.repository_for(Product)
        lines = []
        merchant_id = None
        for product_id, quantity in normalise_cart(request.lines):
            try:
                product = products.get(product_id)
            except ObjectNotFoundError:
                raise ValidationError({"items": [f"Unknown product {product_id}"]})
            if not product.is_active:
                raise ValidationError({"items": [f"{product.name} is no longer available"]})
            if merchant_id is None:
                merchant_id = str(product.merchant_id)

            regulated_class = product.regulated_class
            lines.append(
                {
                    "product_id": product_id,
                    "product_name": product.name,
                    "unit_price": product.price,
                    "quantity": quantity,
                    "weight_grams": product.weight_grams if regulated_class != RegulatedClass.NONE else 0.0,
                    "regulated_class": regulated_class.value,
                    "line_total": round(product.price * quantity, 2),
                }
            )
        return lines, merchant_id

    def _delivery_fee(self, request: PlacementRequest, lines: list[dict]) -> float:
        subtotal = round(sum(line["line_total"] for line in lines), 2)
        online = current_domain.repository_for(Courier).count_online()
        fee = delivery_fee(subtotal, request.address["borough"], request.speed_tier, online)
        if request.client_delivery_fee is not None and abs(request.client_delivery_fee - fee) > 0.005:
            logger.warning(
                "client delivery fee ignored",
                client_fee=request.client_delivery_fee,
                server_fee=fee,
                online_couriers=online,
            )
        return fee

    def _persist(self, order: Order) -> None:
        self.orders.add(order)

    def _written(self, order_id: str) -> Order | None:
        try:
            return self.orders.get(order_id)
        except ObjectNotFoundError:
            return None

    def _check_deadline(self, started: float, step: str) -> None:
        elapsed = self.clock() - started
        if elapsed > self.settings.order_creation_budget_seconds:
            logger.error("order creation budget exceeded", step=step, elapsed_seconds=round(elapsed, 3))
            raise CreationTimedOut("Order creation took too long. Please retry.", step=step)

    # -------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------
    def _abandon(
        self,
        attempt: _Attempt,
        compensations: list[_Compensation],
        completed: bool,
        error_code: str,
        cause: Exception,
    ) -> None:
        """Undo this attempt's side effects and fail its key if it still owns it.

        The order id is private to the attempt and no order was written under
        it, so compensating is safe even when a newer attempt owns the key.
        """
        self._compensate(attempt.order_id, compensations, cause)
        current = IdempotencyStatus.COMPLETED if completed else IdempotencyStatus.IN_PROGRESS
        if not self.idempotency.transition(attempt.key, attempt.token, current, IdempotencyStatus.FAILED, error_code):
            logger.warning(
                "attempt superseded, key left to newer attempt",
                idempotency_key=attempt.key,
                order_id=attempt.order_id,
                error_code=error_code,
            )

    def _compensate(self, order_id: str, compensations: list[_Compensation], cause: Exception | None) -> None:
        for compensation in reversed(compensations):
            try:
                compensation.action()
            except Exception as exc:
                self._record_compensation_failure(order_id, compensation, exc, cause)
        if compensations:
            logger.info("compensations complete", order_id=order_id, steps=len(compensations))

    def _record_compensation_failure(
        self,
        order_id: str,
        compensation: _Compensation,
        exc: Exception,
        cause: Exception | None,
    ) -> None:
        context = dict(compensation.context, cause=repr(cause) if cause else None)
        logger.critical(
            "compensation failed, manual reconciliation required",
            order_id=order_id,
            step=compensation.step,
            error=repr(exc),
            **compensation.context,
        )
        try:
            current_domain.repository_for(CompensationFailure).add(
                CompensationFailure.record(order_id, compensation.step, repr(exc), json.dumps(context))
            )
        except Exception as record_exc:
            logger.critical(
                "could not record compensation failure",
                order_id=order_id,
                step=compensation.step,
                error=repr(record_exc),
            )
