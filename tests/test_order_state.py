"""Tests for the order state table and role permissions."""

import pytest

from orderflow.errors import InvalidTransitionError, TransitionNotPermittedError
from orderflow.models.order import OrderState
from orderflow.models.user import Role
from orderflow.services.order_state import (
    ROLE_TRANSITIONS,
    TERMINAL_STATES,
    TRANSITIONS,
    allowed_targets,
    check_transition,
)

FORWARD = [
    (OrderState.PENDING, OrderState.CONFIRMED),
    (OrderState.CONFIRMED, OrderState.PREPARING),
    (OrderState.PREPARING, OrderState.READY),
    (OrderState.READY, OrderState.EN_ROUTE),
    (OrderState.EN_ROUTE, OrderState.DELIVERED),
]


class TestTransitionTable:
    def test_every_state_has_an_entry(self):
        assert set(TRANSITIONS) == set(OrderState)

    def test_terminal_states(self):
        assert TERMINAL_STATES == {OrderState.DELIVERED, OrderState.CANCELLED}

    @pytest.mark.parametrize("current,target", FORWARD)
    def test_forward_steps_allowed(self, current, target):
        check_transition(current, target)

    @pytest.mark.parametrize("current", [s for s in OrderState if s not in TERMINAL_STATES])
    def test_cancel_reachable_from_non_terminal(self, current):
        check_transition(current, OrderState.CANCELLED)

    def test_skipping_a_state_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition(OrderState.PENDING, OrderState.READY)
        assert exc_info.value.from_state == "pending"
        assert exc_info.value.to_state == "ready"

    def test_backwards_rejected(self):
        with pytest.raises(InvalidTransitionError):
            check_transition(OrderState.READY, OrderState.PREPARING)

    @pytest.mark.parametrize("terminal", [OrderState.DELIVERED, OrderState.CANCELLED])
    def test_nothing_leaves_terminal_states(self, terminal):
        for target in OrderState:
            with pytest.raises(InvalidTransitionError):
                check_transition(terminal, target)


class TestRolePermissions:
    def test_courier_cannot_confirm(self):
        with pytest.raises(TransitionNotPermittedError):
            check_transition(
                OrderState.PENDING, OrderState.CONFIRMED, ROLE_TRANSITIONS[Role.COURIER]
            )

    def test_store_can_confirm(self):
        check_transition(OrderState.PENDING, OrderState.CONFIRMED, ROLE_TRANSITIONS[Role.STORE])

    def test_customer_has_no_direct_transitions(self):
        with pytest.raises(TransitionNotPermittedError):
            check_transition(
                OrderState.PENDING, OrderState.CANCELLED, ROLE_TRANSITIONS[Role.CUSTOMER]
            )

    def test_admin_unrestricted(self):
        assert ROLE_TRANSITIONS[Role.ADMIN] is None
        check_transition(OrderState.EN_ROUTE, OrderState.DELIVERED, ROLE_TRANSITIONS[Role.ADMIN])

    def test_allowed_targets_intersects_table_and_role(self):
        targets = allowed_targets(OrderState.READY, ROLE_TRANSITIONS[Role.STORE])
        assert targets == {OrderState.CANCELLED}
        assert allowed_targets(OrderState.READY) == {OrderState.EN_ROUTE, OrderState.CANCELLED}
