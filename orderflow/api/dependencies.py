"""Request-scoped dependencies: caller identity and service handles."""

from dataclasses import dataclass

from fastapi import Header, HTTPException, Request, status

from orderflow.errors import ActionNotPermittedError
from orderflow.models.user import Role
from orderflow.services.order_service import OrderService
from orderflow.services.otp_service import OTPService


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, as resolved by the authorization layer."""

    user_id: str
    role: Role

    def require(self, action: str, *roles: Role) -> None:
        """Raise unless the caller has one of ``roles``."""
        if self.role not in roles:
            raise ActionNotPermittedError(action, self.role.value)


async def get_identity(
    user_id: str = Header(..., alias="X-User-ID"),
    role: str = Header(..., alias="X-User-Role"),
) -> Identity:
    """Resolve the caller from the identity headers."""
    try:
        parsed_role = Role(role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {role}",
        )
    return Identity(user_id=user_id, role=parsed_role)


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_otp_service(request: Request) -> OTPService:
    return request.app.state.otp_service
