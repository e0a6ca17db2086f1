"""Typed outcomes raised by the order engine and the one-time code service."""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Broad category of a rejected operation."""

    VALIDATION = "validation"
    AUTHORIZATION_DENIED = "authorization_denied"
    CONFLICT = "conflict"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    NOT_FOUND = "not_found"
    DELIVERY_FAILURE = "delivery_failure"


class OrderflowError(Exception):
    """Base exception for all orderflow errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def details(self) -> dict[str, Any]:
        """Structured fields exposed to callers alongside the message."""
        return {}


# Validation


class InvalidInputError(OrderflowError):
    """Raised when input is missing or malformed."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


class InvalidCourierError(OrderflowError):
    """Raised when the user chosen as courier cannot take deliveries."""

    def __init__(self, courier_id: str, reason: str):
        self.courier_id = courier_id
        self.reason = reason
        super().__init__(f"Courier {courier_id} is not available: {reason}")

    def details(self) -> dict[str, Any]:
        return {"courier_id": self.courier_id, "reason": self.reason}


class IncorrectCodeError(OrderflowError):
    """Raised when a verification code does not match."""

    def __init__(self, remaining_attempts: int):
        self.remaining_attempts = remaining_attempts
        super().__init__(f"Incorrect code. Remaining attempts: {remaining_attempts}")

    def details(self) -> dict[str, Any]:
        return {"remaining_attempts": self.remaining_attempts}


# Authorization


class TransitionNotPermittedError(OrderflowError):
    """Raised when the caller's role may not request the target state."""

    kind = ErrorKind.AUTHORIZATION_DENIED

    def __init__(self, to_state: str):
        self.to_state = to_state
        super().__init__(f"Not permitted to move order to '{to_state}'")

    def details(self) -> dict[str, Any]:
        return {"to_state": self.to_state}


class ActionNotPermittedError(OrderflowError):
    """Raised when the caller's role may not perform an action."""

    kind = ErrorKind.AUTHORIZATION_DENIED

    def __init__(self, action: str, role: str):
        self.action = action
        self.role = role
        super().__init__(f"Role '{role}' may not {action}")

    def details(self) -> dict[str, Any]:
        return {"action": self.action, "role": self.role}


class NotOwnerError(OrderflowError):
    """Raised when the caller is not a party allowed to act on the order."""

    kind = ErrorKind.AUTHORIZATION_DENIED

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Not authorized for order {order_id}")


# Conflict


class InvalidTransitionError(OrderflowError):
    """Raised when the requested state is not reachable from the current one."""

    kind = ErrorKind.CONFLICT

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid state transition: {from_state} -> {to_state}")

    def details(self) -> dict[str, Any]:
        return {"from_state": self.from_state, "to_state": self.to_state}


class OrderClosedError(OrderflowError):
    """Raised when changing an order that is delivered or cancelled."""

    kind = ErrorKind.CONFLICT

    def __init__(self, order_id: str, state: str):
        self.order_id = order_id
        self.state = state
        super().__init__(f"Order {order_id} is '{state}' and can no longer change")

    def details(self) -> dict[str, Any]:
        return {"state": self.state}


class AlreadyClaimedError(OrderflowError):
    """Raised when an order already has a courier."""

    kind = ErrorKind.CONFLICT

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} already has a courier")


class NotClaimableError(OrderflowError):
    """Raised when an order is not in a state couriers may claim."""

    kind = ErrorKind.CONFLICT

    def __init__(self, order_id: str, state: str):
        self.order_id = order_id
        self.state = state
        super().__init__(f"Order {order_id} cannot be claimed in state '{state}'")

    def details(self) -> dict[str, Any]:
        return {"state": self.state}


class CrossStoreOrderError(OrderflowError):
    """Raised when line items belong to more than one store."""

    kind = ErrorKind.CONFLICT

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} belongs to a different store")

    def details(self) -> dict[str, Any]:
        return {"product_id": self.product_id}


class NotDeliverableError(OrderflowError):
    """Raised when rating an order that has not been delivered."""

    kind = ErrorKind.CONFLICT

    def __init__(self, order_id: str, state: str):
        self.order_id = order_id
        self.state = state
        super().__init__(f"Order {order_id} is '{state}', only delivered orders can be rated")

    def details(self) -> dict[str, Any]:
        return {"state": self.state}


class RatingAlreadySetError(OrderflowError):
    """Raised when an order has already been rated."""

    kind = ErrorKind.CONFLICT

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has already been rated")


# Resource exhausted


class InsufficientStockError(OrderflowError):
    """Raised when a product is unavailable or has too little stock."""

    kind = ErrorKind.RESOURCE_EXHAUSTED

    def __init__(self, product_id: str, requested: int):
        self.product_id = product_id
        self.requested = requested
        super().__init__(f"Insufficient stock for product {product_id} (requested {requested})")

    def details(self) -> dict[str, Any]:
        return {"product_id": self.product_id, "requested": self.requested}


class RateLimitedError(OrderflowError):
    """Raised when too many codes were issued in the trailing window."""

    kind = ErrorKind.RESOURCE_EXHAUSTED

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Hourly code limit reached. Retry in {retry_after} seconds")

    def details(self) -> dict[str, Any]:
        return {"retry_after": self.retry_after}


class TooSoonError(OrderflowError):
    """Raised when a resend is requested before the minimum interval."""

    kind = ErrorKind.RESOURCE_EXHAUSTED

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Wait {retry_after} seconds before requesting another code")

    def details(self) -> dict[str, Any]:
        return {"retry_after": self.retry_after}


class AttemptsExhaustedError(OrderflowError):
    """Raised when a code has no verification attempts left."""

    kind = ErrorKind.RESOURCE_EXHAUSTED

    def __init__(self) -> None:
        super().__init__("Maximum number of verification attempts reached")


# Not found


class OrderNotFoundError(OrderflowError):
    """Raised when an order does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ProductNotFoundError(OrderflowError):
    """Raised when a product does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")

    def details(self) -> dict[str, Any]:
        return {"product_id": self.product_id}


class NotFoundOrExpiredError(OrderflowError):
    """Raised when no live code exists for the subject and purpose."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self) -> None:
        super().__init__("Verification code not found or expired")


# Delivery


class DeliveryFailedError(OrderflowError):
    """Raised when every requested notification channel failed."""

    kind = ErrorKind.DELIVERY_FAILURE

    def __init__(self, channels: list[str]):
        self.channels = channels
        super().__init__(f"Could not deliver the code via {', '.join(channels)}")

    def details(self) -> dict[str, Any]:
        return {"channels": self.channels}
