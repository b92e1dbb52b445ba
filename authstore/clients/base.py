"""Contract shared by the authentication repository backends."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, runtime_checkable

from authstore.models import Authentication, Connector


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as fixed-width UTC ISO-8601 so stored values sort and compare."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class RecordChange:
    """
    A compare-and-swap write.

    ``updated`` is persisted only if the stored record still carries
    ``previous.modified_at``.
    """

    previous: Authentication
    updated: Authentication

    @property
    def releases_active_slot(self) -> bool:
        return self.previous.is_active and not self.updated.is_active

    @property
    def assigns_connector_id(self) -> bool:
        return (
            self.previous.connector_authentication_id is None
            and self.updated.connector_authentication_id is not None
        )


@runtime_checkable
class AuthenticationRepository(Protocol):
    """
    Persistence operations the store builds on.

    Implementations raise the domain errors from ``authstore.core.errors``:
    ``AlreadyExistsError`` and ``ActiveAuthenticationExistsError`` on insert
    collisions, ``ConflictError`` when a compare-and-swap loses, and
    ``StorageUnavailableError`` for backend failures.
    """

    def insert(
        self, record: Authentication, *, supersede: Optional[RecordChange] = None
    ) -> None:
        ...

    def replace(self, change: RecordChange) -> None:
        ...

    def get(self, authentication_id: str) -> Optional[Authentication]:
        ...

    def get_active(
        self, merchant_id: str, payment_method_id: str
    ) -> Optional[Authentication]:
        ...

    def get_by_connector_authentication_id(
        self,
        merchant_id: str,
        connector: Connector,
        connector_authentication_id: str,
    ) -> Optional[Authentication]:
        ...

    def list_by_payment_method(
        self, merchant_id: str, payment_method_id: str
    ) -> List[Authentication]:
        ...


__all__ = ["AuthenticationRepository", "RecordChange", "format_timestamp"]
