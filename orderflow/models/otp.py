"""One-time verification code models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class OTPPurpose(str, Enum):
    """What a verification code is issued for."""

    REGISTRATION = "registration"
    LOGIN = "login"
    RECOVERY = "recovery"
    VERIFICATION = "verification"


class Channel(str, Enum):
    """Notification channels."""

    SMS = "sms"
    EMAIL = "email"


class DeliveryMethod(str, Enum):
    """Requested delivery method for a code."""

    SMS = "sms"
    EMAIL = "email"
    BOTH = "both"

    @property
    def channels(self) -> list[Channel]:
        """Channels covered by this method, in dispatch order."""
        if self is DeliveryMethod.BOTH:
            return [Channel.SMS, Channel.EMAIL]
        return [Channel(self.value)]


class VerificationCode(BaseModel):
    """Verification code as stored in database."""

    codeId: str = Field(..., description="Random identifier")
    phone: str
    email: str
    purpose: OTPPurpose
    code: str = Field(..., pattern=r"^\d+$")
    attempts: int = Field(0, ge=0)
    verified: bool = False
    expiresAt: datetime
    ipAddress: Optional[str] = None
    userAgent: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    createdAt: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_expired(self, now: datetime) -> bool:
        """True once the expiry instant has passed."""
        return now > self.expiresAt

    def remaining_seconds(self, now: datetime) -> int:
        """Seconds until expiry, never negative."""
        return max(0, int((self.expiresAt - now).total_seconds()))


class IssuanceRecord(BaseModel):
    """Issuance timestamp used for sliding-window rate limiting."""

    codeId: str
    phone: str
    purpose: OTPPurpose
    issuedAt: datetime


class IssueResult(BaseModel):
    """Outcome of a successful issuance."""

    code_id: str
    expires_at: datetime
    remaining_seconds: int
    channels: list[Channel] = Field(..., description="Channels that accepted the code")
    results: dict[str, bool] = Field(..., description="Success flag per requested channel")


class VerifyResult(BaseModel):
    """Outcome of a successful verification."""

    code_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class PurposeStats(BaseModel):
    """Aggregated counters for one purpose."""

    purpose: OTPPurpose
    total: int
    verified: int
    expired: int
    avg_attempts: float


class OTPStats(BaseModel):
    """Aggregated counters across purposes."""

    by_purpose: list[PurposeStats]
    total: int
