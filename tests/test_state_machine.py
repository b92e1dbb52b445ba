from __future__ import annotations

import itertools

import pytest

from authstore.core.errors import InvalidTransitionError
from authstore.models import AuthenticationStatus, LifecycleStatus
from authstore.services.state_machine import (
    TERMINAL_STATUSES,
    LifecycleStateMachine,
    is_terminal,
)

EDGES = {
    (AuthenticationStatus.STARTED, AuthenticationStatus.PENDING),
    (AuthenticationStatus.STARTED, AuthenticationStatus.SUCCESS),
    (AuthenticationStatus.STARTED, AuthenticationStatus.FAILED),
    (AuthenticationStatus.STARTED, AuthenticationStatus.ERROR),
    (AuthenticationStatus.PENDING, AuthenticationStatus.SUCCESS),
    (AuthenticationStatus.PENDING, AuthenticationStatus.FAILED),
    (AuthenticationStatus.PENDING, AuthenticationStatus.ERROR),
}

machine = LifecycleStateMachine()


@pytest.mark.parametrize(
    "current,target", list(itertools.product(AuthenticationStatus, repeat=2))
)
def test_only_table_edges_are_permitted(current, target) -> None:
    expected = (current, target) in EDGES
    assert machine.can_transition(current, target) is expected
    if expected:
        machine.validate_transition(current, target)
    else:
        with pytest.raises(InvalidTransitionError) as excinfo:
            machine.validate_transition(current, target)
        assert excinfo.value.current == current.value
        assert excinfo.value.target == target.value


def test_terminal_statuses_have_no_outgoing_edges() -> None:
    for status in AuthenticationStatus:
        assert machine.is_terminal(status) is (status in TERMINAL_STATUSES)
        assert is_terminal(status) is machine.is_terminal(status)
    assert TERMINAL_STATUSES == {
        AuthenticationStatus.SUCCESS,
        AuthenticationStatus.FAILED,
        AuthenticationStatus.ERROR,
    }


def test_accepts_plain_string_values() -> None:
    assert machine.can_transition("started", "pending")
    with pytest.raises(ValueError):
        machine.validate_transition("started", "authorized")


def test_terminal_rejection_names_the_terminal_state() -> None:
    with pytest.raises(InvalidTransitionError, match="success is terminal"):
        machine.validate_transition(AuthenticationStatus.SUCCESS, AuthenticationStatus.FAILED)


def test_records_must_start_in_initial_states() -> None:
    machine.validate_initial(AuthenticationStatus.STARTED, LifecycleStatus.ACTIVE)
    with pytest.raises(InvalidTransitionError):
        machine.validate_initial(AuthenticationStatus.SUCCESS, LifecycleStatus.ACTIVE)
    with pytest.raises(InvalidTransitionError):
        machine.validate_initial(AuthenticationStatus.STARTED, LifecycleStatus.EXPIRED)


@pytest.mark.parametrize("target", [LifecycleStatus.SUPERSEDED, LifecycleStatus.EXPIRED])
def test_leaving_active_is_one_way(target) -> None:
    assert machine.validate_lifecycle_transition(LifecycleStatus.ACTIVE, target) is True
    assert machine.validate_lifecycle_transition(target, target) is False
    with pytest.raises(InvalidTransitionError):
        machine.validate_lifecycle_transition(target, LifecycleStatus.ACTIVE)


def test_superseded_and_expired_do_not_interchange() -> None:
    with pytest.raises(InvalidTransitionError):
        machine.validate_lifecycle_transition(
            LifecycleStatus.SUPERSEDED, LifecycleStatus.EXPIRED
        )
    with pytest.raises(InvalidTransitionError):
        machine.validate_lifecycle_transition(
            LifecycleStatus.EXPIRED, LifecycleStatus.SUPERSEDED
        )
    with pytest.raises(InvalidTransitionError):
        machine.validate_lifecycle_transition(LifecycleStatus.ACTIVE, LifecycleStatus.ACTIVE)
