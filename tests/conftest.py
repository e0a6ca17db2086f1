"""Pytest fixtures for orderflow tests."""

from datetime import UTC, datetime, timedelta

import pytest

from orderflow.config import Settings
from orderflow.database.memory import (
    MemoryCatalog,
    MemoryCodeStore,
    MemoryOrderRepository,
    MemorySequence,
    MemoryUserDirectory,
)
from orderflow.models.order import PaymentMethod, ShippingAddress
from orderflow.models.product import Product
from orderflow.models.user import ApprovalState, Role, UserRecord
from orderflow.services.order_service import OrderService
from orderflow.services.otp_service import OTPService


class FakeClock:
    """Settable clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeNotifier:
    """Records messages; per-channel outcome is configurable."""

    def __init__(self) -> None:
        self.outcomes: dict[str, bool] = {}
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, channel, address, message) -> bool:
        ok = self.outcomes.get(channel.value, True)
        if ok:
            self.sent.append((channel.value, address, message.text))
        return ok


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(_env_file=None, storage_backend="memory", simulate_delivery=False)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def catalog():
    return MemoryCatalog(
        [
            Product(productId="prod_a", storeId="store_1", name="Product A", price=10.0, stock=5, prepMinutes=15),
            Product(productId="prod_b", storeId="store_1", name="Product B", price=5.0, stock=3, prepMinutes=10),
            Product(productId="prod_c", storeId="store_2", name="Product C", price=7.0, stock=10),
            Product(productId="prod_off", storeId="store_1", name="Retired", price=3.0, stock=10, available=False),
        ]
    )


@pytest.fixture
def users():
    return MemoryUserDirectory(
        [
            UserRecord(userId="customer_1", role=Role.CUSTOMER, approvalState=ApprovalState.APPROVED),
            UserRecord(userId="courier_1", role=Role.COURIER, approvalState=ApprovalState.APPROVED),
            UserRecord(userId="courier_2", role=Role.COURIER, approvalState=ApprovalState.APPROVED),
            UserRecord(userId="courier_pending", role=Role.COURIER),
            UserRecord(
                userId="courier_inactive",
                role=Role.COURIER,
                approvalState=ApprovalState.APPROVED,
                active=False,
            ),
            UserRecord(userId="store_1", role=Role.STORE, approvalState=ApprovalState.APPROVED),
        ]
    )


@pytest.fixture
def order_repo():
    return MemoryOrderRepository()


@pytest.fixture
def order_service(order_repo, catalog, users, settings, clock):
    return OrderService(order_repo, MemorySequence(), catalog, users, settings=settings, clock=clock)


@pytest.fixture
def address():
    return ShippingAddress(street="Main St", number="12", city="Springfield")


@pytest.fixture
def payment():
    return PaymentMethod.CASH


@pytest.fixture
def code_store():
    return MemoryCodeStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def otp_service(code_store, notifier, settings, clock):
    return OTPService(code_store, notifier, settings=settings, clock=clock)
