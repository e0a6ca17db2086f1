"""Data models package."""

from orderflow.models.order import (
    CheckoutItem,
    LineItem,
    Order,
    OrderState,
    PaymentMethod,
    Rating,
    ShippingAddress,
)
from orderflow.models.otp import (
    Channel,
    DeliveryMethod,
    IssuanceRecord,
    IssueResult,
    OTPPurpose,
    OTPStats,
    PurposeStats,
    VerificationCode,
    VerifyResult,
)
from orderflow.models.product import Product
from orderflow.models.request import (
    AssignCourierRequest,
    CheckoutRequest,
    CleanupResponse,
    ErrorResponse,
    HealthResponse,
    OrderPage,
    OTPSendRequest,
    OTPVerifyRequest,
    RateRequest,
    StatusUpdateRequest,
)
from orderflow.models.user import ApprovalState, Role, UserRecord

__all__ = [
    # User models
    "UserRecord",
    "Role",
    "ApprovalState",
    # Product models
    "Product",
    # Order models
    "Order",
    "OrderState",
    "LineItem",
    "CheckoutItem",
    "Rating",
    "ShippingAddress",
    "PaymentMethod",
    # Verification code models
    "VerificationCode",
    "IssuanceRecord",
    "IssueResult",
    "VerifyResult",
    "OTPPurpose",
    "OTPStats",
    "PurposeStats",
    "Channel",
    "DeliveryMethod",
    # Request/Response models
    "CheckoutRequest",
    "StatusUpdateRequest",
    "AssignCourierRequest",
    "RateRequest",
    "OrderPage",
    "OTPSendRequest",
    "OTPVerifyRequest",
    "CleanupResponse",
    "HealthResponse",
    "ErrorResponse",
]
