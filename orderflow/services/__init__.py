"""Services package."""

from orderflow.services.notifier import EmailChannel, Message, Notifier, SmsChannel
from orderflow.services.order_service import OrderService
from orderflow.services.order_state import ROLE_TRANSITIONS, TRANSITIONS, check_transition
from orderflow.services.otp_service import OTPService
from orderflow.services.pricing import FlatRateShipping, ShippingPolicy, estimate_minutes

__all__ = [
    "OrderService",
    "OTPService",
    "Notifier",
    "EmailChannel",
    "SmsChannel",
    "Message",
    "TRANSITIONS",
    "ROLE_TRANSITIONS",
    "check_transition",
    "FlatRateShipping",
    "ShippingPolicy",
    "estimate_minutes",
]
