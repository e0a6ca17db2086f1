"""API request and response models."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from orderflow.models.order import (
    CheckoutItem,
    Order,
    OrderState,
    PaymentMethod,
    ShippingAddress,
)
from orderflow.models.otp import DeliveryMethod, OTPPurpose


class CheckoutRequest(BaseModel):
    """Checkout request model."""

    items: list[CheckoutItem] = Field(default_factory=list)
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[PaymentMethod] = None
    note: Optional[str] = Field(None, max_length=500)

    model_config = {
        "json_schema_extra": {
            "example": {
                "items": [
                    {"product_id": "prod_001", "quantity": 2},
                    {"product_id": "prod_002", "quantity": 1},
                ],
                "shipping_address": {"street": "Main St", "number": "12", "city": "Springfield"},
                "payment_method": "cash",
                "note": "Ring twice",
            }
        }
    }


class StatusUpdateRequest(BaseModel):
    """Requested state change."""

    state: OrderState


class AssignCourierRequest(BaseModel):
    """Explicit courier assignment."""

    courier_id: str = Field(..., min_length=1)


class RateRequest(BaseModel):
    """Customer rating request."""

    score: int
    comment: Optional[str] = Field(None, max_length=500)


class OrderPage(BaseModel):
    """Paginated order listing."""

    orders: list[Order]
    page: int
    total_pages: int
    total: int
    per_page: int


class OTPSendRequest(BaseModel):
    """Code issuance request."""

    phone: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    purpose: OTPPurpose = OTPPurpose.VERIFICATION
    method: DeliveryMethod = DeliveryMethod.SMS
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "example": {
                "phone": "+5491111111111",
                "email": "store@example.com",
                "purpose": "registration",
                "method": "both",
            }
        }
    }


class OTPVerifyRequest(BaseModel):
    """Code verification request."""

    phone: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    purpose: OTPPurpose = OTPPurpose.VERIFICATION


class CleanupResponse(BaseModel):
    """Result of the maintenance sweep."""

    purged_count: int


class ErrorResponse(BaseModel):
    """Error response model. Typed rejections add their structured fields."""

    error: str
    message: str
    kind: Optional[str] = None

    model_config = {"extra": "allow"}


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    services: dict[str, str]
