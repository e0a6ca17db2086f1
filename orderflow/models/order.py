"""Order data models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class OrderState(str, Enum):
    """Lifecycle states of an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    EN_ROUTE = "en_route"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """Accepted payment methods."""

    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


class ShippingAddress(BaseModel):
    """Delivery address for an order."""

    street: str = Field(..., min_length=1)
    number: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postalCode: Optional[str] = None
    references: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class CheckoutItem(BaseModel):
    """Product and quantity requested at checkout."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class LineItem(BaseModel):
    """Line item in an order, priced at checkout time."""

    productId: str = Field(..., description="Product identifier")
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    unitPrice: float = Field(..., ge=0, description="Catalog price when the order was placed")
    subtotal: float = Field(..., ge=0, description="quantity x unitPrice, frozen at checkout")
    prepMinutes: int = Field(0, ge=0, description="Preparation time of the product")


class Rating(BaseModel):
    """Customer rating of a delivered order."""

    score: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=500)


class Order(BaseModel):
    """Order model as stored in database."""

    orderNumber: str = Field(..., description="Human readable sequence number")
    customerId: str
    storeId: str
    courierId: Optional[str] = None
    lineItems: list[LineItem] = Field(..., min_length=1)
    subtotal: float = Field(..., ge=0)
    shippingCost: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    state: OrderState = OrderState.PENDING
    shippingAddress: ShippingAddress
    paymentMethod: PaymentMethod
    note: str = Field("", max_length=500)
    estimatedMinutes: int = Field(..., ge=0)
    estimatedDeliveryAt: datetime
    deliveredAt: Optional[datetime] = None
    rating: Optional[Rating] = None
    createdAt: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updatedAt: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {
        "json_schema_extra": {
            "example": {
                "orderNumber": "ORD-000042",
                "customerId": "user_001",
                "storeId": "store_001",
                "courierId": None,
                "lineItems": [
                    {
                        "productId": "prod_001",
                        "quantity": 2,
                        "unitPrice": 10.0,
                        "subtotal": 20.0,
                        "prepMinutes": 15,
                    }
                ],
                "subtotal": 20.0,
                "shippingCost": 5.0,
                "total": 25.0,
                "state": "pending",
                "shippingAddress": {"street": "Main St", "number": "12", "city": "Springfield"},
                "paymentMethod": "cash",
                "note": "",
                "estimatedMinutes": 30,
                "estimatedDeliveryAt": "2024-02-22T00:30:00Z",
                "createdAt": "2024-02-22T00:00:00Z",
                "updatedAt": "2024-02-22T00:00:00Z",
            }
        }
    }

    @property
    def is_terminal(self) -> bool:
        """True once the order is delivered or cancelled."""
        return self.state in (OrderState.DELIVERED, OrderState.CANCELLED)
