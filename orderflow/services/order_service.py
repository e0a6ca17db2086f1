"""Order lifecycle: checkout, state transitions, courier assignment and rating."""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from orderflow.config import Settings, get_settings
from orderflow.database.base import Catalog, OrderCriteria, OrderRepository, OrderSequence, UserDirectory
from orderflow.errors import (
    ActionNotPermittedError,
    AlreadyClaimedError,
    CrossStoreOrderError,
    InsufficientStockError,
    InvalidCourierError,
    InvalidInputError,
    InvalidTransitionError,
    NotClaimableError,
    NotDeliverableError,
    NotOwnerError,
    OrderClosedError,
    OrderNotFoundError,
    ProductNotFoundError,
    RatingAlreadySetError,
)
from orderflow.models.order import (
    CheckoutItem,
    LineItem,
    Order,
    OrderState,
    PaymentMethod,
    Rating,
    ShippingAddress,
)
from orderflow.models.product import Product
from orderflow.models.user import ApprovalState, Role
from orderflow.services.order_state import check_transition
from orderflow.services.pricing import FlatRateShipping, ShippingPolicy, estimate_minutes, money
from orderflow.utils.helpers import Clock, format_sequence_number, utcnow

logger = logging.getLogger(__name__)

ORDER_COUNTER = "order_number"

# A guarded write that loses a race is re-evaluated against the fresh order.
# States only move forward, so a handful of rounds is always enough.
MAX_WRITE_ROUNDS = 3

ASSIGNING_ROLES = frozenset({Role.STORE, Role.ADMIN})


class OrderService:
    """Order lifecycle engine."""

    def __init__(
        self,
        orders: OrderRepository,
        sequence: OrderSequence,
        catalog: Catalog,
        users: UserDirectory,
        settings: Optional[Settings] = None,
        shipping_policy: Optional[ShippingPolicy] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.orders = orders
        self.sequence = sequence
        self.catalog = catalog
        self.users = users
        self.settings = settings or get_settings()
        self.shipping_policy = shipping_policy or FlatRateShipping(
            free_threshold=self.settings.free_shipping_threshold,
            flat_fee=self.settings.flat_shipping_fee,
        )
        self.clock = clock

    async def checkout(
        self,
        customer_id: str,
        items: list[CheckoutItem],
        shipping_address: Optional[ShippingAddress],
        payment_method: Optional[PaymentMethod],
        note: Optional[str] = None,
    ) -> Order:
        """Create a pending order, reserving stock for every line item.

        Stock is decremented item by item; if any later step fails, every
        decrement already made is restored before the error propagates.

        Raises:
            InvalidInputError: No items, or address or payment method missing.
            ProductNotFoundError: A product does not exist.
            CrossStoreOrderError: Items come from more than one store.
            InsufficientStockError: A product is unavailable or short on stock.
        """
        if not items:
            raise InvalidInputError("At least one item is required", field="items")
        if shipping_address is None:
            raise InvalidInputError("Shipping address is required", field="shipping_address")
        if payment_method is None:
            raise InvalidInputError("Payment method is required", field="payment_method")

        store_id = await self._resolve_store(items)

        reserved: list[CheckoutItem] = []
        try:
            line_items = []
            for item in items:
                product = await self.catalog.decrement_stock(item.product_id, item.quantity)
                if product is None:
                    raise InsufficientStockError(item.product_id, item.quantity)
                reserved.append(item)
                line_items.append(
                    LineItem(
                        productId=product.productId,
                        quantity=item.quantity,
                        unitPrice=product.price,
                        subtotal=money(product.price * item.quantity),
                        prepMinutes=(
                            product.prepMinutes
                            if product.prepMinutes is not None
                            else self.settings.default_prep_minutes
                        ),
                    )
                )

            subtotal = money(sum(line.subtotal for line in line_items))
            shipping_cost = money(self.shipping_policy(subtotal, shipping_address))
            minutes = estimate_minutes(
                line_items,
                floor_minutes=self.settings.eta_floor_minutes,
                buffer_minutes=self.settings.delivery_buffer_minutes,
            )
            now = self.clock()
            number = await self.sequence.next_value(ORDER_COUNTER)

            order = Order(
                orderNumber=format_sequence_number(
                    self.settings.order_number_prefix, number, self.settings.order_number_width
                ),
                customerId=customer_id,
                storeId=store_id,
                lineItems=line_items,
                subtotal=subtotal,
                shippingCost=shipping_cost,
                total=money(subtotal + shipping_cost),
                state=OrderState.PENDING,
                shippingAddress=shipping_address,
                paymentMethod=payment_method,
                note=note or "",
                estimatedMinutes=minutes,
                estimatedDeliveryAt=now + timedelta(minutes=minutes),
                createdAt=now,
                updatedAt=now,
            )
            await self.orders.insert(order)

        except BaseException:
            # Cancellation included; the release itself must not be cut short
            await asyncio.shield(self._release(reserved))
            raise

        logger.info(
            "Order %s created for customer %s (store %s, total %.2f)",
            order.orderNumber,
            customer_id,
            store_id,
            order.total,
        )
        return order

    async def _resolve_store(self, items: list[CheckoutItem]) -> str:
        """Store of the first item; every other item must share it."""
        store_id = (await self._get_product(items[0].product_id)).storeId
        for item in items[1:]:
            product = await self._get_product(item.product_id)
            if product.storeId != store_id:
                logger.info("Checkout rejected: product %s is from another store", item.product_id)
                raise CrossStoreOrderError(item.product_id)
        return store_id

    async def _get_product(self, product_id: str) -> Product:
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def _release(self, reserved: list[CheckoutItem]) -> None:
        """Give back stock taken by an aborted checkout."""
        for item in reversed(reserved):
            await self.catalog.increment_stock(item.product_id, item.quantity)
        if reserved:
            logger.info("Released stock for %d line items of an aborted checkout", len(reserved))

    async def get_order(self, order_id: str) -> Order:
        """Fetch an order or raise OrderNotFoundError."""
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def transition(
        self,
        order_id: str,
        requested_state: OrderState,
        allowed_states: Optional[frozenset[OrderState]] = None,
    ) -> Order:
        """Move an order to ``requested_state``.

        ``allowed_states`` are the targets the caller's role may request;
        ``None`` lifts the restriction. The write only lands if the order is
        still in the state the check was made against.
        """
        for _ in range(MAX_WRITE_ROUNDS):
            order = await self.get_order(order_id)
            check_transition(order.state, requested_state, allowed_states)

            changes: dict = {"state": requested_state.value}
            if requested_state is OrderState.DELIVERED:
                changes["deliveredAt"] = self.clock()

            updated = await self.orders.update_if(
                order_id, {"state": order.state.value}, changes
            )
            if updated is not None:
                logger.info(
                    "Order %s moved %s -> %s",
                    order_id,
                    order.state.value,
                    requested_state.value,
                )
                return updated

            logger.info("Order %s changed concurrently, re-checking transition", order_id)

        order = await self.get_order(order_id)
        raise InvalidTransitionError(order.state.value, requested_state.value)

    async def claim(self, order_id: str, courier_id: str) -> Order:
        """Assign the calling courier to a ready, unclaimed order.

        Exactly one of any number of concurrent claims succeeds.
        """
        updated = await self.orders.update_if(
            order_id,
            {"state": OrderState.READY.value, "courierId": None},
            {"courierId": courier_id},
        )
        if updated is not None:
            logger.info("Order %s claimed by courier %s", order_id, courier_id)
            return updated

        order = await self.get_order(order_id)
        if order.courierId is not None:
            logger.info("Claim of order %s by %s lost: already claimed", order_id, courier_id)
            raise AlreadyClaimedError(order_id)
        raise NotClaimableError(order_id, order.state.value)

    async def assign_courier(self, order_id: str, courier_id: str, by_role: Role) -> Order:
        """Set the courier of an order directly.

        A ready order moves to en_route in the same write. The courier must
        be an approved, active courier at the time of the call.
        """
        if by_role not in ASSIGNING_ROLES:
            raise ActionNotPermittedError("assign couriers", by_role.value)

        await self._check_courier(courier_id)

        for _ in range(MAX_WRITE_ROUNDS):
            order = await self.get_order(order_id)
            if order.is_terminal:
                raise OrderClosedError(order_id, order.state.value)

            changes: dict = {"courierId": courier_id}
            if order.state is OrderState.READY:
                changes["state"] = OrderState.EN_ROUTE.value

            updated = await self.orders.update_if(
                order_id,
                {"state": order.state.value, "courierId": order.courierId},
                changes,
            )
            if updated is not None:
                logger.info(
                    "Courier %s assigned to order %s by %s", courier_id, order_id, by_role.value
                )
                return updated

        order = await self.get_order(order_id)
        raise OrderClosedError(order_id, order.state.value)

    async def _check_courier(self, courier_id: str) -> None:
        user = await self.users.get_user(courier_id)
        if user is None:
            raise InvalidCourierError(courier_id, "user not found")
        if user.role is not Role.COURIER:
            raise InvalidCourierError(courier_id, "user is not a courier")
        if user.approvalState is not ApprovalState.APPROVED:
            raise InvalidCourierError(courier_id, "courier is not approved")
        if not user.active:
            raise InvalidCourierError(courier_id, "courier account is inactive")

    async def rate(
        self, order_id: str, customer_id: str, score: int, comment: Optional[str] = None
    ) -> Order:
        """Record the customer's one-time rating of a delivered order."""
        if isinstance(score, bool) or not isinstance(score, int) or not 1 <= score <= 5:
            raise InvalidInputError("Score must be an integer between 1 and 5", field="score")

        order = await self.get_order(order_id)
        if order.customerId != customer_id:
            raise NotOwnerError(order_id)
        if order.state is not OrderState.DELIVERED:
            raise NotDeliverableError(order_id, order.state.value)
        if order.rating is not None:
            raise RatingAlreadySetError(order_id)

        rating = Rating(score=score, comment=comment or "")
        updated = await self.orders.update_if(
            order_id,
            {"state": OrderState.DELIVERED.value, "rating": None},
            {"rating": rating.model_dump()},
        )
        if updated is None:
            raise RatingAlreadySetError(order_id)

        logger.info("Order %s rated %d by customer %s", order_id, score, customer_id)
        return updated

    async def list_orders(
        self, criteria: OrderCriteria, page: int = 1, limit: int = 10
    ) -> tuple[list[Order], int]:
        """One page of orders matching ``criteria`` and the total match count."""
        page = max(page, 1)
        limit = max(limit, 1)
        return await self.orders.search(criteria, skip=(page - 1) * limit, limit=limit)

    async def list_available(self, page: int = 1, limit: int = 10) -> tuple[list[Order], int]:
        """Ready orders without a courier."""
        criteria = OrderCriteria(state=OrderState.READY, unclaimed=True)
        return await self.list_orders(criteria, page, limit)
