"""Service layer exports."""

from .authentication_store import AuthenticationStore
from .state_machine import LifecycleStateMachine, is_terminal

__all__ = [
    "AuthenticationStore",
    "LifecycleStateMachine",
    "is_terminal",
]
