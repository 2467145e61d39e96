"""Pydantic API schemas for the Delivery domain.

These are the external API contracts — separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class CartLineRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)


class DeliveryAddressRequest(BaseModel):
    street: str
    borough: str
    apartment: str | None = None
    notes: str | None = None
    lat: float | None = None
    lng: float | None = None


class PlaceOrderRequest(BaseModel):
    items: list[CartLineRequest]
    address: DeliveryAddressRequest
    payment_method: str
    speed_tier: str = "standard"
    guest_reference: str | None = None
    delivery_fee: float | None = None
    scheduled_delivery_at: datetime | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": "prod-123", "quantity": 2}],
                    "address": {"street": "123 Bedford Ave", "borough": "Brooklyn", "lat": 40.717, "lng": -73.957},
                    "payment_method": "cash",
                    "speed_tier": "standard",
                }
            ]
        }
    }


class AdvanceStatusRequest(BaseModel):
    order_id: str
    new_status: str
    lat: float | None = None
    lng: float | None = None


class AcceptOrderRequest(BaseModel):
    merchant_id: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str
    cancelled_by: str = "admin"


class ReassignCourierRequest(BaseModel):
    new_courier_id: str
    reassigned_by: str
    admin_override: bool = False
    reason: str | None = None


class QuoteRequest(BaseModel):
    subtotal: float = Field(ge=0)
    borough: str
    speed_tier: str = "standard"


class RegisterProductRequest(BaseModel):
    name: str
    price: float = Field(ge=0)
    weight_grams: float = Field(default=0.0, ge=0)
    category: str | None = None
    is_concentrate: bool = False
    merchant_id: str
    initial_stock: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=5, ge=0)


class RestockRequest(BaseModel):
    quantity: int = Field(ge=1)


class RegisterCourierRequest(BaseModel):
    full_name: str
    vehicle_type: str | None = None
    phone: str | None = None


class CourierAvailabilityRequest(BaseModel):
    is_online: bool


class CourierLocationRequest(BaseModel):
    lat: float
    lng: float
    recorded_at: datetime | None = None


class ResolveCompensationRequest(BaseModel):
    resolved_by: str


class FlagOrderRequest(BaseModel):
    reason: str = Field(min_length=1)
    flagged_by: str


class UnflagOrderRequest(BaseModel):
    unflagged_by: str
    reason: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class IdResponse(BaseModel):
    id: str


class OrderItemResponse(BaseModel):
    product_id: str
    product_name: str
    unit_price: float
    quantity: int
    line_total: float


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    tracking_code: str
    status: str
    subtotal: float
    delivery_fee: float
    discount_total: float
    total: float
    payment_method: str
    speed_tier: str
    courier_id: str | None = None
    items: list[OrderItemResponse]
    created_at: datetime | None = None
    flagged_reason: str | None = None
    flagged_at: datetime | None = None


class PlaceOrderResponse(BaseModel):
    order: OrderResponse
    order_number: str
    replayed: bool = False


class AvailableOrderResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    borough: str
    total: float
    item_count: int
    created_at: datetime | None = None


class QuoteResponse(BaseModel):
    subtotal: float
    base: float
    borough_surcharge: float
    express_multiplier: float
    demand_multiplier: float
    fee: float
    free_reason: str | None = None
    online_couriers: int


class InventoryResponse(BaseModel):
    product_id: str
    stock: int
    low_stock_threshold: int


class QuotaResponse(BaseModel):
    customer_id: str
    day: str
    flower_grams_used: float
    concentrate_grams_used: float
    flower_grams_remaining: float
    concentrate_grams_remaining: float


class AuditEntryResponse(BaseModel):
    action: str
    actor: str | None = None
    description: str
    override: bool = False
    occurred_at: datetime


class CompensationFailureResponse(BaseModel):
    failure_id: str
    order_id: str
    step: str
    error: str
    context: str | None = None
    recorded_at: datetime | None = None
    resolved: bool = False


class EtaResponse(BaseModel):
    min_minutes: int
    max_minutes: int
    source: str
    text: str


class CourierPublicInfoResponse(BaseModel):
    first_name: str
    vehicle_type: str | None = None
    lat: float | None = None
    lng: float | None = None
    location_updated_at: datetime | None = None


class TrackingItemResponse(BaseModel):
    name: str
    quantity: int


class TrackingEventResponse(BaseModel):
    status: str
    message: str | None = None
    lat: float | None = None
    lng: float | None = None
    occurred_at: datetime


class TrackingResponse(BaseModel):
    """Public view of one order. Carries no customer or address data."""

    order_number: str
    status: str
    status_message: str
    eta: EtaResponse | None = None
    courier_public_info: CourierPublicInfoResponse | None = None
    items: list[TrackingItemResponse]
    subtotal: float
    delivery_fee: float
    total: float
    placed_at: datetime | None = None
    delivered_at: datetime | None = None
    timeline: list[TrackingEventResponse]
