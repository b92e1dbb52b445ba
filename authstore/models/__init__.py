"""Public model exports."""

from .authentication import (
    Authentication,
    AuthenticationStatus,
    AuthenticationType,
    Connector,
    LifecycleStatus,
    NewAuthentication,
    generate_authentication_id,
)

__all__ = [
    "Authentication",
    "AuthenticationStatus",
    "AuthenticationType",
    "Connector",
    "LifecycleStatus",
    "NewAuthentication",
    "generate_authentication_id",
]
