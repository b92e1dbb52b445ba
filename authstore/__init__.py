"""Durable records of payment authentication attempts."""

from authstore.core.errors import (
    ActiveAuthenticationExistsError,
    AlreadyExistsError,
    AlreadySetError,
    AuthenticationStoreError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageUnavailableError,
)
from authstore.models import (
    Authentication,
    AuthenticationStatus,
    AuthenticationType,
    Connector,
    LifecycleStatus,
    NewAuthentication,
)
from authstore.services import AuthenticationStore

__version__ = "0.1.0"

__all__ = [
    "ActiveAuthenticationExistsError",
    "AlreadyExistsError",
    "AlreadySetError",
    "Authentication",
    "AuthenticationStatus",
    "AuthenticationStore",
    "AuthenticationStoreError",
    "AuthenticationType",
    "ConflictError",
    "Connector",
    "InvalidTransitionError",
    "LifecycleStatus",
    "NewAuthentication",
    "NotFoundError",
    "StorageUnavailableError",
]
