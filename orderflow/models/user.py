"""User data models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class Role(str, Enum):
    """Roles resolved by the authorization layer."""

    CUSTOMER = "customer"
    STORE = "store"
    COURIER = "courier"
    ADMIN = "admin"


class ApprovalState(str, Enum):
    """Approval state of non-customer accounts."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRecord(BaseModel):
    """User model as stored in database."""

    userId: str = Field(..., description="Unique user identifier")
    name: str = Field("", max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=r"^\+?[1-9]\d{1,14}$")
    role: Role = Role.CUSTOMER
    approvalState: ApprovalState = ApprovalState.PENDING
    active: bool = True
    createdAt: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updatedAt: datetime = Field(default_factory=lambda: datetime.now(UTC))

    class Config:
        """Pydantic config."""

        json_schema_extra = {
            "example": {
                "userId": "courier_001",
                "name": "Ana Courier",
                "email": "ana@example.com",
                "phone": "+5491111111111",
                "role": "courier",
                "approvalState": "approved",
                "active": True,
                "createdAt": "2024-01-01T00:00:00",
                "updatedAt": "2024-01-01T00:00:00",
            }
        }
