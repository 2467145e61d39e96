"""FastAPI routes for the Delivery domain.

Thin adapters that translate HTTP requests into domain commands and
services. No business logic — just schema→command→response translation.
"""

from fastapi import APIRouter, Header, HTTPException, Request
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from delivery.api.schemas import (
    AcceptOrderRequest,
    AdvanceStatusRequest,
    AuditEntryResponse,
    AvailableOrderResponse,
    CancelOrderRequest,
    CompensationFailureResponse,
    CourierAvailabilityRequest,
    CourierLocationRequest,
    FlagOrderRequest,
    IdResponse,
    InventoryResponse,
    OrderItemResponse,
    OrderResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    QuoteRequest,
    QuoteResponse,
    QuotaResponse,
    ReassignCourierRequest,
    RegisterCourierRequest,
    RegisterProductRequest,
    ResolveCompensationRequest,
    RestockRequest,
    StatusResponse,
    TrackingResponse,
    UnflagOrderRequest,
)
from delivery.catalog.registration import DeactivateProduct, RegisterProduct
from delivery.courier.courier import Courier
from delivery.courier.management import RecordCourierLocation, RegisterCourier, SetCourierAvailability
from delivery.inventory.record import InventoryRecord
from delivery.inventory.restocking import RestockProduct
from delivery.order.acceptance import AcceptOrder
from delivery.order.cancellation import CancelOrder
from delivery.order.claim import ClaimOrder
from delivery.order.flagging import FlagOrder, UnflagOrder
from delivery.order.order import Order
from delivery.order.placement import OrderPlacement, PlacementRequest
from delivery.order.progress import AdvanceOrderStatus
from delivery.order.reassignment import ReassignCourier
from delivery.order.reconciliation import CompensationFailure, ResolveCompensationFailure
from delivery.pricing.fee import quote
from delivery.projections.audit_log import AuditLogEntry
from delivery.quota.ledger import QuotaLedgerEntry, ledger_entry_id, quota_day
from delivery.quota.service import QuotaLedger
from delivery.tracking.service import TrackingService


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        tracking_code=order.tracking_code,
        status=order.status,
        subtotal=order.subtotal,
        delivery_fee=order.delivery_fee,
        discount_total=order.discount_total or 0.0,
        total=order.total,
        payment_method=order.payment_method,
        speed_tier=order.speed_tier,
        courier_id=str(order.courier_id) if order.courier_id else None,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                product_name=item.product_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
            )
            for item in order.items
        ],
        created_at=order.created_at,
        flagged_reason=order.flagged_reason,
        flagged_at=order.flagged_at,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=PlaceOrderResponse)
async def place_order(
    body: PlaceOrderRequest,
    x_customer_id: str | None = Header(default=None),
    idempotency_key: str | None = Header(default=None),
) -> PlaceOrderResponse:
    """Convert a cart into an order. Guests omit X-Customer-Id."""
    result = OrderPlacement().place(
        PlacementRequest(
            lines=[line.model_dump() for line in body.items],
            address=body.address.model_dump(),
            payment_method=body.payment_method,
            speed_tier=body.speed_tier,
            customer_id=x_customer_id,
            guest_reference=body.guest_reference,
            idempotency_key=idempotency_key,
            client_delivery_fee=body.delivery_fee,
            scheduled_delivery_at=body.scheduled_delivery_at,
        )
    )
    return PlaceOrderResponse(
        order=_order_response(result.order),
        order_number=result.order.order_number,
        replayed=result.replayed,
    )


@order_router.get("/available", response_model=list[AvailableOrderResponse])
async def available_orders() -> list[AvailableOrderResponse]:
    """Unassigned orders couriers can claim, oldest first."""
    orders = current_domain.repository_for(Order).available_for_couriers()
    return [
        AvailableOrderResponse(
            order_id=str(order.id),
            order_number=order.order_number,
            status=order.status,
            borough=order.address.borough,
            total=order.total,
            item_count=sum(item.quantity for item in order.items),
            created_at=order.created_at,
        )
        for order in orders
    ]


@order_router.get("/flagged", response_model=list[OrderResponse])
async def flagged_orders() -> list[OrderResponse]:
    """Orders awaiting operator review."""
    return [_order_response(order) for order in current_domain.repository_for(Order).flagged()]


@order_router.post("/status", response_model=StatusResponse)
async def advance_status(body: AdvanceStatusRequest, x_courier_id: str = Header()) -> StatusResponse:
    """Courier reports progress on an order assigned to them."""
    status = current_domain.process(
        AdvanceOrderStatus(
            order_id=body.order_id,
            courier_id=x_courier_id,
            new_status=body.new_status,
            lat=body.lat,
            lng=body.lng,
        ),
        asynchronous=False,
    )
    return StatusResponse(status=status)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _order_response(current_domain.repository_for(Order).get(order_id))


@order_router.post("/{order_id}/claim", response_model=StatusResponse)
async def claim_order(order_id: str, x_courier_id: str = Header()) -> StatusResponse:
    status = current_domain.process(ClaimOrder(order_id=order_id, courier_id=x_courier_id), asynchronous=False)
    return StatusResponse(status=status)


@order_router.post("/{order_id}/accept", response_model=StatusResponse)
async def accept_order(order_id: str, body: AcceptOrderRequest) -> StatusResponse:
    status = current_domain.process(AcceptOrder(order_id=order_id, merchant_id=body.merchant_id), asynchronous=False)
    return StatusResponse(status=status)


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> StatusResponse:
    current_domain.process(
        CancelOrder(order_id=order_id, reason=body.reason, cancelled_by=body.cancelled_by),
        asynchronous=False,
    )
    return StatusResponse(status="cancelled")


@order_router.post("/{order_id}/reassign", response_model=StatusResponse)
async def reassign_courier(order_id: str, body: ReassignCourierRequest) -> StatusResponse:
    current_domain.process(
        ReassignCourier(
            order_id=order_id,
            new_courier_id=body.new_courier_id,
            reassigned_by=body.reassigned_by,
            admin_override=body.admin_override,
            reason=body.reason,
        ),
        asynchronous=False,
    )
    return StatusResponse(status="reassigned")


@order_router.post("/{order_id}/flag", response_model=StatusResponse)
async def flag_order(order_id: str, body: FlagOrderRequest) -> StatusResponse:
    current_domain.process(
        FlagOrder(order_id=order_id, reason=body.reason, flagged_by=body.flagged_by),
        asynchronous=False,
    )
    return StatusResponse(status="flagged")


@order_router.post("/{order_id}/unflag", response_model=StatusResponse)
async def unflag_order(order_id: str, body: UnflagOrderRequest) -> StatusResponse:
    current_domain.process(
        UnflagOrder(order_id=order_id, unflagged_by=body.unflagged_by, reason=body.reason),
        asynchronous=False,
    )
    return StatusResponse(status="unflagged")


@order_router.get("/{order_id}/audit", response_model=list[AuditEntryResponse])
async def order_audit_trail(order_id: str) -> list[AuditEntryResponse]:
    entries = current_domain.repository_for(AuditLogEntry)._dao.query.filter(order_id=order_id).all().items
    return [
        AuditEntryResponse(
            action=entry.action,
            actor=entry.actor,
            description=entry.description,
            override=entry.override,
            occurred_at=entry.occurred_at,
        )
        for entry in sorted(entries, key=lambda e: e.occurred_at)
    ]


# ---------------------------------------------------------------------------
# Public tracking
# ---------------------------------------------------------------------------
tracking_router = APIRouter(prefix="/track", tags=["tracking"])


@tracking_router.get("/{tracking_code}", response_model=TrackingResponse)
async def track_order(tracking_code: str, request: Request) -> TrackingResponse:
    """Unauthenticated; the tracking code is the credential."""
    caller = request.client.host if request.client else None
    snapshot = TrackingService().get_status(tracking_code, caller=caller)
    return TrackingResponse.model_validate(snapshot.as_dict())


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------
pricing_router = APIRouter(prefix="/pricing", tags=["pricing"])


@pricing_router.post("/quote", response_model=QuoteResponse)
async def delivery_quote(body: QuoteRequest) -> QuoteResponse:
    """Pre-checkout fee preview. Order creation recomputes it server-side."""
    online = current_domain.repository_for(Courier).count_online()
    try:
        breakdown = quote(body.subtotal, body.borough, body.speed_tier, online)
    except ValueError:
        raise HTTPException(status_code=400, detail="speed_tier must be standard or express")
    return QuoteResponse(**breakdown.as_dict(), online_couriers=online)


# ---------------------------------------------------------------------------
# Catalog & inventory
# ---------------------------------------------------------------------------
product_router = APIRouter(prefix="/products", tags=["products"])


@product_router.post("", status_code=201, response_model=IdResponse)
async def register_product(body: RegisterProductRequest) -> IdResponse:
    product_id = current_domain.process(RegisterProduct(**body.model_dump()), asynchronous=False)
    return IdResponse(id=product_id)


@product_router.delete("/{product_id}", response_model=StatusResponse)
async def deactivate_product(product_id: str) -> StatusResponse:
    current_domain.process(DeactivateProduct(product_id=product_id), asynchronous=False)
    return StatusResponse(status="deactivated")


inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.get("/{product_id}", response_model=InventoryResponse)
async def get_inventory(product_id: str) -> InventoryResponse:
    record = current_domain.repository_for(InventoryRecord).get(product_id)
    return InventoryResponse(
        product_id=str(record.product_id),
        stock=record.stock,
        low_stock_threshold=record.low_stock_threshold,
    )


@inventory_router.post("/{product_id}/restock", response_model=InventoryResponse)
async def restock(product_id: str, body: RestockRequest) -> InventoryResponse:
    current_domain.process(RestockProduct(product_id=product_id, quantity=body.quantity), asynchronous=False)
    return await get_inventory(product_id)


# ---------------------------------------------------------------------------
# Couriers
# ---------------------------------------------------------------------------
courier_router = APIRouter(prefix="/couriers", tags=["couriers"])


@courier_router.post("", status_code=201, response_model=IdResponse)
async def register_courier(body: RegisterCourierRequest) -> IdResponse:
    courier_id = current_domain.process(RegisterCourier(**body.model_dump()), asynchronous=False)
    return IdResponse(id=courier_id)


@courier_router.put("/{courier_id}/online", response_model=StatusResponse)
async def set_availability(courier_id: str, body: CourierAvailabilityRequest) -> StatusResponse:
    current_domain.process(
        SetCourierAvailability(courier_id=courier_id, is_online=body.is_online),
        asynchronous=False,
    )
    return StatusResponse(status="online" if body.is_online else "offline")


@courier_router.post("/{courier_id}/location", response_model=StatusResponse)
async def record_location(courier_id: str, body: CourierLocationRequest) -> StatusResponse:
    """Location feed push. Pushes older than the stored position are ignored."""
    accepted = current_domain.process(
        RecordCourierLocation(courier_id=courier_id, lat=body.lat, lng=body.lng, recorded_at=body.recorded_at),
        asynchronous=False,
    )
    return StatusResponse(status="recorded" if accepted else "stale")


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------
quota_router = APIRouter(prefix="/quota", tags=["quota"])


@quota_router.get("/{customer_id}", response_model=QuotaResponse)
async def get_quota(customer_id: str) -> QuotaResponse:
    """Today's usage and remaining allowance for a customer."""
    day = quota_day()
    try:
        entry = current_domain.repository_for(QuotaLedgerEntry).get(ledger_entry_id(customer_id, day))
        used_flower, used_concentrate = entry.flower_grams, entry.concentrate_grams
    except ObjectNotFoundError:
        used_flower, used_concentrate = 0.0, 0.0
    remaining_flower, remaining_concentrate = QuotaLedger().remaining(customer_id, day)
    return QuotaResponse(
        customer_id=customer_id,
        day=day.isoformat(),
        flower_grams_used=used_flower,
        concentrate_grams_used=used_concentrate,
        flower_grams_remaining=remaining_flower,
        concentrate_grams_remaining=remaining_concentrate,
    )


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------
reconciliation_router = APIRouter(prefix="/admin/compensation-failures", tags=["admin"])


@reconciliation_router.get("", response_model=list[CompensationFailureResponse])
async def list_compensation_failures() -> list[CompensationFailureResponse]:
    failures = current_domain.repository_for(CompensationFailure)._dao.query.filter(resolved=False).all().items
    return [
        CompensationFailureResponse(
            failure_id=str(failure.id),
            order_id=str(failure.order_id),
            step=failure.step,
            error=failure.error,
            context=failure.context,
            recorded_at=failure.recorded_at,
            resolved=failure.resolved,
        )
        for failure in failures
    ]


@reconciliation_router.post("/{failure_id}/resolve", response_model=StatusResponse)
async def resolve_compensation_failure(failure_id: str, body: ResolveCompensationRequest) -> StatusResponse:
    current_domain.process(
        ResolveCompensationFailure(failure_id=failure_id, resolved_by=body.resolved_by),
        asynchronous=False,
    )
    return StatusResponse(status="resolved")
