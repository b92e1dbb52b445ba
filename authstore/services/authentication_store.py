"""
Access layer for payment authentication records.

The store is the only path through which records are created or changed.
Every mutation reads the current record, validates the change with the
lifecycle state machine, and writes it back with a compare-and-swap on
``modified_at``; a writer that loses the race gets ``ConflictError`` and the
winner's record stays in place.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import JsonValue, TypeAdapter

from authstore.clients.base import AuthenticationRepository, RecordChange
from authstore.core.errors import (
    AlreadySetError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from authstore.models import (
    Authentication,
    AuthenticationStatus,
    AuthenticationType,
    Connector,
    LifecycleStatus,
    NewAuthentication,
)
from authstore.services.state_machine import LifecycleStateMachine, default_state_machine

logger = logging.getLogger(__name__)

_TICK = timedelta(microseconds=1)
_PAYLOAD = TypeAdapter(JsonValue)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthenticationStore:
    """Create, query and transition authentication records."""

    def __init__(
        self,
        repository: AuthenticationRepository,
        *,
        state_machine: Optional[LifecycleStateMachine] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._machine = state_machine or default_state_machine
        self._clock = clock

    def create(
        self, new: NewAuthentication, *, supersede_existing: bool = False
    ) -> Authentication:
        """
        Persist a new authentication attempt.

        Raises ``AlreadyExistsError`` when the id is taken and
        ``ActiveAuthenticationExistsError`` when the merchant/payment method
        pair already has an active record. With ``supersede_existing`` the
        current active record is superseded in the same write instead.
        """
        self._machine.validate_initial(new.authentication_status, new.lifecycle_status)

        supersede: Optional[RecordChange] = None
        now = self._now()
        if supersede_existing:
            current = self._repository.get_active(new.merchant_id, new.payment_method_id)
            if current is not None:
                supersede = RecordChange(
                    previous=current,
                    updated=current.model_copy(
                        update={
                            "lifecycle_status": LifecycleStatus.SUPERSEDED,
                            "modified_at": self._advance(current),
                        }
                    ),
                )
                now = max(now, supersede.updated.modified_at)

        record = Authentication.from_new(new, now=now)
        try:
            self._repository.insert(record, supersede=supersede)
        except ConflictError:
            logger.warning(
                "Create of authentication %s for merchant %s payment method %s lost a race",
                record.authentication_id,
                record.merchant_id,
                record.payment_method_id,
            )
            raise

        if supersede is not None:
            logger.info(
                "Authentication %s superseded by %s",
                supersede.previous.authentication_id,
                record.authentication_id,
            )
        logger.info(
            "Created authentication %s for merchant %s via %s",
            record.authentication_id,
            record.merchant_id,
            record.connector.value,
        )
        return record

    def get_by_id(self, authentication_id: str) -> Authentication:
        record = self._repository.get(authentication_id)
        if record is None:
            raise NotFoundError(
                f"No authentication found with id {authentication_id}.",
                authentication_id=authentication_id,
            )
        return record

    def get_active_by_payment_method(
        self, merchant_id: str, payment_method_id: str
    ) -> Authentication:
        record = self._repository.get_active(merchant_id, payment_method_id)
        if record is None:
            raise NotFoundError(
                (
                    f"No active authentication for merchant {merchant_id} "
                    f"and payment method {payment_method_id}."
                )
            )
        return record

    def get_by_connector_authentication_id(
        self,
        merchant_id: str,
        connector: Connector,
        connector_authentication_id: str,
    ) -> Authentication:
        """Resolve a record from the identifier a connector assigned to it."""
        record = self._repository.get_by_connector_authentication_id(
            merchant_id, Connector(connector), connector_authentication_id
        )
        if record is None:
            raise NotFoundError(
                (
                    f"No {Connector(connector).value} authentication with connector id "
                    f"{connector_authentication_id} for merchant {merchant_id}."
                )
            )
        return record

    def list_by_payment_method(
        self, merchant_id: str, payment_method_id: str
    ) -> List[Authentication]:
        """Return every attempt for the pair, oldest first."""
        return self._repository.list_by_payment_method(merchant_id, payment_method_id)

    def update_status(
        self,
        authentication_id: str,
        new_status: AuthenticationStatus,
        *,
        authentication_type: Optional[AuthenticationType] = None,
        authentication_data: JsonValue = None,
    ) -> Authentication:
        """
        Move a record to ``new_status``.

        ``authentication_type`` and ``authentication_data`` reported with the
        outcome are written in the same update when given.
        A payload that is not JSON raises pydantic's ``ValidationError``
        before anything is written.
        """
        new_status = AuthenticationStatus(new_status)
        current = self.get_by_id(authentication_id)
        try:
            self._machine.validate_transition(current.authentication_status, new_status)
        except InvalidTransitionError as exc:
            exc.authentication_id = authentication_id
            logger.info("Rejected transition for %s: %s", authentication_id, exc)
            raise

        changes: Dict[str, Any] = {"authentication_status": new_status}
        if authentication_type is not None:
            changes["authentication_type"] = AuthenticationType(authentication_type)
        if authentication_data is not None:
            changes["authentication_data"] = _PAYLOAD.validate_python(authentication_data)
        updated = self._write(current, changes)
        logger.info(
            "Authentication %s moved %s -> %s",
            authentication_id,
            current.authentication_status.value,
            new_status.value,
        )
        return updated

    def update_authentication_data(
        self,
        authentication_id: str,
        authentication_data: JsonValue,
        *,
        authentication_type: Optional[AuthenticationType] = None,
    ) -> Authentication:
        """Replace the connector payload of a record that is still in progress."""
        current = self.get_by_id(authentication_id)
        if self._machine.is_terminal(current.authentication_status):
            raise InvalidTransitionError(
                (
                    f"Authentication {authentication_id} is "
                    f"{current.authentication_status.value}; its data can no longer change."
                ),
                current=current.authentication_status.value,
                authentication_id=authentication_id,
            )
        changes: Dict[str, Any] = {
            "authentication_data": _PAYLOAD.validate_python(authentication_data)
        }
        if authentication_type is not None:
            changes["authentication_type"] = AuthenticationType(authentication_type)
        updated = self._write(current, changes)
        logger.info("Updated authentication data for %s", authentication_id)
        return updated

    def attach_connector_id(
        self, authentication_id: str, connector_authentication_id: str
    ) -> Authentication:
        """Record the connector's identifier; it can be set only once."""
        if not connector_authentication_id:
            raise ValueError("connector_authentication_id must be a non-empty string.")
        current = self.get_by_id(authentication_id)
        if current.connector_authentication_id is not None:
            raise AlreadySetError(
                (
                    f"Authentication {authentication_id} already has connector id "
                    f"{current.connector_authentication_id}."
                ),
                authentication_id=authentication_id,
            )
        updated = self._write(
            current, {"connector_authentication_id": connector_authentication_id}
        )
        logger.info(
            "Attached %s connector id to authentication %s",
            current.connector.value,
            authentication_id,
        )
        return updated

    def supersede(self, authentication_id: str) -> Authentication:
        """Mark a record as replaced by a newer attempt. Idempotent."""
        return self._retire(authentication_id, LifecycleStatus.SUPERSEDED)

    def expire(self, authentication_id: str) -> Authentication:
        """Mark a record as aged out. Idempotent."""
        return self._retire(authentication_id, LifecycleStatus.EXPIRED)

    def _retire(self, authentication_id: str, target: LifecycleStatus) -> Authentication:
        current = self.get_by_id(authentication_id)
        try:
            changed = self._machine.validate_lifecycle_transition(
                current.lifecycle_status, target
            )
        except InvalidTransitionError as exc:
            exc.authentication_id = authentication_id
            raise
        if not changed:
            return current
        updated = self._write(current, {"lifecycle_status": target})
        logger.info("Authentication %s is now %s", authentication_id, target.value)
        return updated

    def _write(self, current: Authentication, changes: Dict[str, Any]) -> Authentication:
        updated = current.model_copy(
            update={**changes, "modified_at": self._advance(current)}
        )
        try:
            self._repository.replace(RecordChange(previous=current, updated=updated))
        except ConflictError:
            logger.warning(
                "Concurrent modification of authentication %s; update discarded",
                current.authentication_id,
            )
            raise
        return updated

    def _advance(self, current: Authentication) -> datetime:
        """Return a modification time strictly after the record's last one."""
        return max(self._now(), current.modified_at + _TICK)

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)


__all__ = ["AuthenticationStore"]
