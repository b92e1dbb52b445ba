"""Configuration, logging and error types."""

from .errors import (
    ActiveAuthenticationExistsError,
    AlreadyExistsError,
    AlreadySetError,
    AuthenticationStoreError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageUnavailableError,
)

__all__ = [
    "ActiveAuthenticationExistsError",
    "AlreadyExistsError",
    "AlreadySetError",
    "AuthenticationStoreError",
    "ConflictError",
    "InvalidTransitionError",
    "NotFoundError",
    "StorageUnavailableError",
]
