"""
Exceptions raised by the authentication store.

Every failure leaves stored state unchanged, so callers can branch on the
exception type and retry or give up without cleanup.
"""

from __future__ import annotations

from typing import Optional


class AuthenticationStoreError(Exception):
    """Base class for all store failures."""

    def __init__(self, message: str, *, authentication_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.authentication_id = authentication_id


class NotFoundError(AuthenticationStoreError):
    """Raised when no record matches the requested id or query key."""


class AlreadyExistsError(AuthenticationStoreError):
    """Raised when a create collides with an existing identifier."""


class AlreadySetError(AuthenticationStoreError):
    """Raised when a write-once field is already populated."""


class InvalidTransitionError(AuthenticationStoreError):
    """Raised when a requested status change is not a permitted edge."""

    def __init__(
        self,
        message: str,
        *,
        current: Optional[str] = None,
        target: Optional[str] = None,
        authentication_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, authentication_id=authentication_id)
        self.current = current
        self.target = target


class ConflictError(AuthenticationStoreError):
    """Raised when a concurrent writer changed the record first."""


class ActiveAuthenticationExistsError(ConflictError):
    """Raised when a merchant/payment method pair already has an active record."""

    def __init__(
        self,
        message: str,
        *,
        merchant_id: str,
        payment_method_id: str,
        authentication_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, authentication_id=authentication_id)
        self.merchant_id = merchant_id
        self.payment_method_id = payment_method_id


class StorageUnavailableError(AuthenticationStoreError):
    """Raised when the storage backend fails for reasons outside the domain."""


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
