"""
Transition rules for authentication records.

Two independent axes are tracked. ``authentication_status`` follows the
connector's progress and ends in one of the terminal outcomes;
``lifecycle_status`` says whether the record is still the authoritative
attempt for its payment method.
"""

from __future__ import annotations

from typing import Dict, FrozenSet

from authstore.core.errors import InvalidTransitionError
from authstore.models import AuthenticationStatus, LifecycleStatus

INITIAL_STATUS = AuthenticationStatus.STARTED
INITIAL_LIFECYCLE = LifecycleStatus.ACTIVE

TERMINAL_STATUSES: FrozenSet[AuthenticationStatus] = frozenset(
    {
        AuthenticationStatus.SUCCESS,
        AuthenticationStatus.FAILED,
        AuthenticationStatus.ERROR,
    }
)

TRANSITIONS: Dict[AuthenticationStatus, FrozenSet[AuthenticationStatus]] = {
    AuthenticationStatus.STARTED: frozenset(
        {
            AuthenticationStatus.PENDING,
            AuthenticationStatus.SUCCESS,
            AuthenticationStatus.FAILED,
            AuthenticationStatus.ERROR,
        }
    ),
    AuthenticationStatus.PENDING: frozenset(
        {
            AuthenticationStatus.SUCCESS,
            AuthenticationStatus.FAILED,
            AuthenticationStatus.ERROR,
        }
    ),
    AuthenticationStatus.SUCCESS: frozenset(),
    AuthenticationStatus.FAILED: frozenset(),
    AuthenticationStatus.ERROR: frozenset(),
}


class LifecycleStateMachine:
    """Validate status changes against the transition table."""

    def __init__(
        self,
        transitions: Dict[AuthenticationStatus, FrozenSet[AuthenticationStatus]] | None = None,
    ) -> None:
        self._transitions = transitions if transitions is not None else TRANSITIONS

    def allowed_transitions(self, status: AuthenticationStatus) -> FrozenSet[AuthenticationStatus]:
        return self._transitions.get(AuthenticationStatus(status), frozenset())

    def is_terminal(self, status: AuthenticationStatus) -> bool:
        return not self.allowed_transitions(status)

    def can_transition(
        self, current: AuthenticationStatus, target: AuthenticationStatus
    ) -> bool:
        return AuthenticationStatus(target) in self.allowed_transitions(current)

    def validate_transition(
        self, current: AuthenticationStatus, target: AuthenticationStatus
    ) -> None:
        """Raise ``InvalidTransitionError`` unless ``current -> target`` is an edge."""
        current = AuthenticationStatus(current)
        target = AuthenticationStatus(target)
        if self.can_transition(current, target):
            return
        if self.is_terminal(current):
            reason = f"{current.value} is terminal"
        else:
            reason = f"{current.value} -> {target.value} is not a permitted transition"
        raise InvalidTransitionError(
            f"Cannot move authentication status to {target.value}: {reason}.",
            current=current.value,
            target=target.value,
        )

    @staticmethod
    def validate_initial(
        authentication_status: AuthenticationStatus,
        lifecycle_status: LifecycleStatus,
    ) -> None:
        """New records must enter the machine at its initial states."""
        if AuthenticationStatus(authentication_status) is not INITIAL_STATUS:
            raise InvalidTransitionError(
                f"Authentication records must be created in {INITIAL_STATUS.value}, "
                f"not {AuthenticationStatus(authentication_status).value}.",
                target=AuthenticationStatus(authentication_status).value,
            )
        if LifecycleStatus(lifecycle_status) is not INITIAL_LIFECYCLE:
            raise InvalidTransitionError(
                f"Authentication records must be created {INITIAL_LIFECYCLE.value}, "
                f"not {LifecycleStatus(lifecycle_status).value}.",
                target=LifecycleStatus(lifecycle_status).value,
            )

    @staticmethod
    def validate_lifecycle_transition(
        current: LifecycleStatus, target: LifecycleStatus
    ) -> bool:
        """
        Check a lifecycle change.

        Returns ``True`` when the record must be written, ``False`` when the
        record already carries ``target``. Leaving ``active`` is allowed from
        any authentication status and can never be undone.
        """
        current = LifecycleStatus(current)
        target = LifecycleStatus(target)
        if current is target and target is not LifecycleStatus.ACTIVE:
            return False
        if current is LifecycleStatus.ACTIVE and target is not LifecycleStatus.ACTIVE:
            return True
        raise InvalidTransitionError(
            f"Cannot move lifecycle status from {current.value} to {target.value}.",
            current=current.value,
            target=target.value,
        )


default_state_machine = LifecycleStateMachine()


def is_terminal(status: AuthenticationStatus) -> bool:
    """Return whether no further status transition is possible."""
    return AuthenticationStatus(status) in TERMINAL_STATUSES


__all__ = [
    "INITIAL_LIFECYCLE",
    "INITIAL_STATUS",
    "LifecycleStateMachine",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "default_state_machine",
    "is_terminal",
]
