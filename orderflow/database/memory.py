"""In-process storage backend.

Each store keeps plain documents and serialises its conditional operations
behind an ``asyncio.Lock``, giving the same all-or-nothing behaviour as the
MongoDB backend within a single process. Used by the test suite and for
local runs with ``storage_backend=memory``.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Optional

from orderflow.database.base import OrderCriteria
from orderflow.models.order import Order
from orderflow.models.otp import IssuanceRecord, OTPPurpose, PurposeStats, VerificationCode
from orderflow.models.product import Product
from orderflow.models.user import UserRecord

logger = logging.getLogger(__name__)


def _matches(doc: dict[str, Any], expected: dict[str, Any]) -> bool:
    return all(doc.get(field) == value for field, value in expected.items())


def _issue_order(code: VerificationCode) -> tuple[datetime, str]:
    return code.createdAt, code.codeId


class MemoryOrderRepository:
    """Orders keyed by order number."""

    def __init__(self) -> None:
        self._orders: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def insert(self, order: Order) -> Order:
        async with self._lock:
            if order.orderNumber in self._orders:
                raise ValueError(f"Order '{order.orderNumber}' already exists")
            self._orders[order.orderNumber] = order.model_dump()
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        doc = self._orders.get(order_id)
        return Order(**doc) if doc else None

    async def update_if(
        self, order_id: str, expected: dict[str, Any], changes: dict[str, Any]
    ) -> Optional[Order]:
        async with self._lock:
            doc = self._orders.get(order_id)
            if doc is None or not _matches(doc, expected):
                return None
            updated = {**doc, **changes, "updatedAt": datetime.now(UTC)}
            # Validate before committing so a bad change never lands
            order = Order(**updated)
            self._orders[order_id] = order.model_dump()
            return order

    async def search(
        self, criteria: OrderCriteria, skip: int = 0, limit: int = 10
    ) -> tuple[list[Order], int]:
        orders = [Order(**doc) for doc in self._orders.values()]
        matched = [o for o in orders if self._meets(o, criteria)]
        matched.sort(key=lambda o: (o.createdAt, o.orderNumber), reverse=True)
        return matched[skip : skip + limit], len(matched)

    @staticmethod
    def _meets(order: Order, criteria: OrderCriteria) -> bool:
        if criteria.customer_id and order.customerId != criteria.customer_id:
            return False
        if criteria.store_id and order.storeId != criteria.store_id:
            return False
        if criteria.courier_id and order.courierId != criteria.courier_id:
            return False
        if criteria.state and order.state != criteria.state:
            return False
        if criteria.order_number and order.orderNumber != criteria.order_number:
            return False
        if criteria.created_from and order.createdAt < criteria.created_from:
            return False
        if criteria.created_to and order.createdAt > criteria.created_to:
            return False
        if criteria.unclaimed and order.courierId is not None:
            return False
        return True


class MemorySequence:
    """Named counters."""

    def __init__(self) -> None:
        self._values: dict[str, int] = defaultdict(int)
        self._lock = asyncio.Lock()

    async def next_value(self, name: str) -> int:
        async with self._lock:
            self._values[name] += 1
            return self._values[name]


class MemoryCatalog:
    """Products keyed by product id."""

    def __init__(self, products: Optional[list[Product]] = None) -> None:
        self._products: dict[str, Product] = {}
        self._lock = asyncio.Lock()
        for product in products or []:
            self.add_product(product)

    def add_product(self, product: Product) -> None:
        self._products[product.productId] = product.model_copy()

    async def get_product(self, product_id: str) -> Optional[Product]:
        product = self._products.get(product_id)
        return product.model_copy() if product else None

    async def decrement_stock(self, product_id: str, quantity: int) -> Optional[Product]:
        async with self._lock:
            product = self._products.get(product_id)
            if product is None or not product.available or product.stock < quantity:
                return None
            product.stock -= quantity
            return product.model_copy()

    async def increment_stock(self, product_id: str, quantity: int) -> None:
        async with self._lock:
            product = self._products.get(product_id)
            if product is None:
                logger.warning("Cannot restock missing product %s", product_id)
                return
            product.stock += quantity


class MemoryUserDirectory:
    """Users keyed by user id."""

    def __init__(self, users: Optional[list[UserRecord]] = None) -> None:
        self._users: dict[str, UserRecord] = {}
        for user in users or []:
            self.add_user(user)

    def add_user(self, user: UserRecord) -> None:
        self._users[user.userId] = user

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)


class MemoryCodeStore:
    """Verification codes and their issuance log."""

    def __init__(self) -> None:
        self._codes: dict[str, VerificationCode] = {}
        self._issuances: dict[str, IssuanceRecord] = {}
        self._lock = asyncio.Lock()

    async def insert(self, code: VerificationCode) -> None:
        async with self._lock:
            self._codes[code.codeId] = code.model_copy()

    async def log_issuance(self, record: IssuanceRecord) -> None:
        async with self._lock:
            self._issuances[record.codeId] = record

    async def issuances_since(
        self, phone: str, purpose: OTPPurpose, since: datetime
    ) -> list[datetime]:
        return sorted(
            r.issuedAt
            for r in self._issuances.values()
            if r.phone == phone and r.purpose == purpose and r.issuedAt >= since
        )

    async def latest_issuance(self, phone: str, purpose: OTPPurpose) -> Optional[datetime]:
        times = [
            r.issuedAt
            for r in self._issuances.values()
            if r.phone == phone and r.purpose == purpose
        ]
        return max(times) if times else None

    async def supersede(self, phone: str, purpose: OTPPurpose) -> int:
        async with self._lock:
            pair = [c for c in self._codes.values() if c.phone == phone and c.purpose == purpose]
            if not pair:
                return 0
            newest = max(_issue_order(c) for c in pair)
            count = 0
            for code in pair:
                if not code.verified and _issue_order(code) < newest:
                    code.verified = True
                    count += 1
            return count

    async def find_live(
        self, phone: str, purpose: OTPPurpose, now: datetime
    ) -> Optional[VerificationCode]:
        live = [
            c
            for c in self._codes.values()
            if c.phone == phone and c.purpose == purpose and not c.verified and c.expiresAt > now
        ]
        if not live:
            return None
        return max(live, key=_issue_order).model_copy()

    async def increment_attempts(
        self, code_id: str, max_attempts: int, now: datetime
    ) -> Optional[VerificationCode]:
        async with self._lock:
            code = self._codes.get(code_id)
            if code is None or code.verified or code.expiresAt <= now:
                return None
            if code.attempts >= max_attempts:
                return None
            code.attempts += 1
            return code.model_copy()

    async def mark_verified(self, code_id: str) -> bool:
        async with self._lock:
            code = self._codes.get(code_id)
            if code is None or code.verified:
                return False
            code.verified = True
            return True

    async def delete(self, code_id: str) -> None:
        async with self._lock:
            self._codes.pop(code_id, None)
            self._issuances.pop(code_id, None)

    async def get(self, code_id: str) -> Optional[VerificationCode]:
        code = self._codes.get(code_id)
        return code.model_copy() if code else None

    async def purge(self, now: datetime, max_attempts: int, log_cutoff: datetime) -> int:
        async with self._lock:
            doomed = [
                c.codeId
                for c in self._codes.values()
                if c.expiresAt < now or c.verified or c.attempts >= max_attempts
            ]
            for code_id in doomed:
                del self._codes[code_id]
            stale = [k for k, r in self._issuances.items() if r.issuedAt < log_cutoff]
            for key in stale:
                del self._issuances[key]
            return len(doomed)

    async def stats(
        self,
        now: datetime,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        purpose: Optional[OTPPurpose] = None,
    ) -> list[PurposeStats]:
        grouped: dict[OTPPurpose, list[VerificationCode]] = defaultdict(list)
        for code in self._codes.values():
            if created_from and code.createdAt < created_from:
                continue
            if created_to and code.createdAt > created_to:
                continue
            if purpose and code.purpose != purpose:
                continue
            grouped[code.purpose].append(code)
        return [
            PurposeStats(
                purpose=key,
                total=len(codes),
                verified=sum(1 for c in codes if c.verified),
                expired=sum(1 for c in codes if c.expiresAt < now),
                avg_attempts=sum(c.attempts for c in codes) / len(codes),
            )
            for key, codes in grouped.items()
        ]
