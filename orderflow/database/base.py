"""Storage contracts consumed by the order engine and the code service.

Every method that guards a cross-request invariant is a single conditional
operation on the backing store. Callers never read, decide and then write
without a guard.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

from orderflow.models.order import Order, OrderState
from orderflow.models.otp import IssuanceRecord, OTPPurpose, PurposeStats, VerificationCode
from orderflow.models.product import Product
from orderflow.models.user import UserRecord


@dataclass
class OrderCriteria:
    """Filters for order listings. Unset fields do not filter."""

    customer_id: Optional[str] = None
    store_id: Optional[str] = None
    courier_id: Optional[str] = None
    state: Optional[OrderState] = None
    order_number: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    unclaimed: bool = False


class OrderRepository(Protocol):
    """Persistence of orders."""

    async def insert(self, order: Order) -> Order:
        """Store a new order. Order numbers are unique."""
        ...

    async def get(self, order_id: str) -> Optional[Order]:
        """Return the order with this number, or None."""
        ...

    async def update_if(
        self, order_id: str, expected: dict[str, Any], changes: dict[str, Any]
    ) -> Optional[Order]:
        """Apply ``changes`` only if every field in ``expected`` still matches.

        A ``None`` in ``expected`` matches an unset field. Returns the updated
        order, or None when the guard did not match.
        """
        ...

    async def search(
        self, criteria: OrderCriteria, skip: int = 0, limit: int = 10
    ) -> tuple[list[Order], int]:
        """Return one page of matching orders (newest first) and the total count."""
        ...


class OrderSequence(Protocol):
    """Atomic counters for human readable identifiers."""

    async def next_value(self, name: str) -> int:
        """Increment the named counter and return its new value."""
        ...


class Catalog(Protocol):
    """Product price and stock."""

    async def get_product(self, product_id: str) -> Optional[Product]:
        ...

    async def decrement_stock(self, product_id: str, quantity: int) -> Optional[Product]:
        """Decrement stock by ``quantity`` where the product is available and
        ``stock >= quantity``. Returns the product after the decrement, or None.
        """
        ...

    async def increment_stock(self, product_id: str, quantity: int) -> None:
        ...


class UserDirectory(Protocol):
    """Read access to user records."""

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...


class CodeStore(Protocol):
    """Persistence of verification codes and their issuance log."""

    async def insert(self, code: VerificationCode) -> None:
        ...

    async def log_issuance(self, record: IssuanceRecord) -> None:
        ...

    async def issuances_since(
        self, phone: str, purpose: OTPPurpose, since: datetime
    ) -> list[datetime]:
        """Issuance times at or after ``since``, oldest first."""
        ...

    async def latest_issuance(self, phone: str, purpose: OTPPurpose) -> Optional[datetime]:
        ...

    async def supersede(self, phone: str, purpose: OTPPurpose) -> int:
        """Mark as used every unconsumed code for the pair that sorts before the
        newest stored one by ``(createdAt, codeId)``. Returns the count.

        Run after inserting a new code: whichever issuer inserts last sees every
        record, so exactly one code per pair stays live.
        """
        ...

    async def find_live(
        self, phone: str, purpose: OTPPurpose, now: datetime
    ) -> Optional[VerificationCode]:
        """Newest code by ``(createdAt, codeId)`` that is neither verified nor expired."""
        ...

    async def increment_attempts(
        self, code_id: str, max_attempts: int, now: datetime
    ) -> Optional[VerificationCode]:
        """Add one attempt where the code is unverified, unexpired and below
        ``max_attempts``. Returns the code after the increment, or None.
        """
        ...

    async def mark_verified(self, code_id: str) -> bool:
        """Flip ``verified`` from False to True. False if it was already set."""
        ...

    async def delete(self, code_id: str) -> None:
        """Remove a code together with its issuance log entry."""
        ...

    async def purge(self, now: datetime, max_attempts: int, log_cutoff: datetime) -> int:
        """Delete expired, verified or exhausted codes and issuance entries
        older than ``log_cutoff``. Returns the number of codes deleted.
        """
        ...

    async def stats(
        self,
        now: datetime,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        purpose: Optional[OTPPurpose] = None,
    ) -> list[PurposeStats]:
        """Counters per purpose over codes created in the given range."""
        ...
