"""Order state machine and role permissions.

``TRANSITIONS`` is the only description of how an order's state may move.
``ROLE_TRANSITIONS`` lists the target states each role may request; ``None``
means unrestricted.
"""

from typing import Iterable, Optional

from orderflow.errors import InvalidTransitionError, TransitionNotPermittedError
from orderflow.models.order import OrderState
from orderflow.models.user import Role

TRANSITIONS: dict[OrderState, frozenset[OrderState]] = {
    OrderState.PENDING: frozenset({OrderState.CONFIRMED, OrderState.CANCELLED}),
    OrderState.CONFIRMED: frozenset({OrderState.PREPARING, OrderState.CANCELLED}),
    OrderState.PREPARING: frozenset({OrderState.READY, OrderState.CANCELLED}),
    OrderState.READY: frozenset({OrderState.EN_ROUTE, OrderState.CANCELLED}),
    OrderState.EN_ROUTE: frozenset({OrderState.DELIVERED, OrderState.CANCELLED}),
    OrderState.DELIVERED: frozenset(),
    OrderState.CANCELLED: frozenset(),
}

ROLE_TRANSITIONS: dict[Role, Optional[frozenset[OrderState]]] = {
    Role.CUSTOMER: frozenset(),
    Role.STORE: frozenset(
        {OrderState.CONFIRMED, OrderState.PREPARING, OrderState.READY, OrderState.CANCELLED}
    ),
    Role.COURIER: frozenset({OrderState.EN_ROUTE, OrderState.DELIVERED}),
    Role.ADMIN: None,
}

TERMINAL_STATES = frozenset(state for state, targets in TRANSITIONS.items() if not targets)


def allowed_targets(
    current: OrderState, permitted: Optional[Iterable[OrderState]] = None
) -> frozenset[OrderState]:
    """States reachable from ``current`` that the caller may request."""
    targets = TRANSITIONS[current]
    if permitted is None:
        return targets
    return targets & frozenset(permitted)


def check_transition(
    current: OrderState,
    requested: OrderState,
    permitted: Optional[Iterable[OrderState]] = None,
) -> None:
    """Raise unless ``current -> requested`` is in the table and permitted."""
    if permitted is not None and requested not in frozenset(permitted):
        raise TransitionNotPermittedError(requested.value)
    if requested not in TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, requested.value)


def permitted_for(role: Role) -> Optional[frozenset[OrderState]]:
    """Target states a role may request."""
    return ROLE_TRANSITIONS[role]
