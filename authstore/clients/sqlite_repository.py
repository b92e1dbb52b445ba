"""SQLite-backed storage for authentication records."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

from authstore.clients.base import RecordChange, format_timestamp
from authstore.core.data_cipher import AuthenticationDataCodec
from authstore.core.errors import (
    ActiveAuthenticationExistsError,
    AlreadyExistsError,
    ConflictError,
    StorageUnavailableError,
)
from authstore.models import (
    Authentication,
    AuthenticationStatus,
    AuthenticationType,
    Connector,
    LifecycleStatus,
)

logger = logging.getLogger(__name__)

_COLUMNS = (
    "authentication_id",
    "merchant_id",
    "connector",
    "connector_authentication_id",
    "authentication_data",
    "payment_method_id",
    "authentication_type",
    "authentication_status",
    "lifecycle_status",
    "created_at",
    "modified_at",
)

SCHEMA_OBJECTS = (
    "authentication",
    "authentication_active_payment_method",
    "authentication_connector_reference",
    "authentication_payment_method_history",
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS authentication (
        authentication_id TEXT NOT NULL PRIMARY KEY,
        merchant_id TEXT NOT NULL,
        connector TEXT NOT NULL,
        connector_authentication_id TEXT,
        authentication_data TEXT,
        payment_method_id TEXT NOT NULL,
        authentication_type TEXT,
        authentication_status TEXT NOT NULL,
        lifecycle_status TEXT NOT NULL,
        created_at TEXT NOT NULL,
        modified_at TEXT NOT NULL
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS authentication_active_payment_method
    ON authentication (merchant_id, payment_method_id)
    WHERE lifecycle_status = 'active'
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS authentication_connector_reference
    ON authentication (merchant_id, connector, connector_authentication_id)
    WHERE connector_authentication_id IS NOT NULL
    """,
    """
    CREATE INDEX IF NOT EXISTS authentication_payment_method_history
    ON authentication (merchant_id, payment_method_id, created_at)
    """,
)


def _ensure_directory(db_path: Path) -> None:
    if db_path.parent and not db_path.parent.exists():
        db_path.parent.mkdir(parents=True, exist_ok=True)


class SQLiteAuthenticationRepository:
    """Authentication table stored in a local SQLite database."""

    def __init__(
        self,
        db_path: str,
        *,
        codec: Optional[AuthenticationDataCodec] = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._db_path = Path(db_path)
        self._codec = codec or AuthenticationDataCodec()
        self._timeout = timeout_seconds
        _ensure_directory(self._db_path)
        self._ensure_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection and run the block inside one transaction."""
        try:
            conn = sqlite3.connect(
                self._db_path,
                timeout=self._timeout,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise StorageUnavailableError(
                f"Unable to open authentication database {self._db_path}: {exc}"
            ) from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            logger.error("SQLite failure on %s: %s", self._db_path, exc)
            raise StorageUnavailableError(f"Authentication database error: {exc}") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    def insert(
        self, record: Authentication, *, supersede: Optional[RecordChange] = None
    ) -> None:
        columns = ", ".join(_COLUMNS)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            with self._connect() as conn:
                if supersede is not None:
                    self._compare_and_swap(conn, supersede)
                conn.execute(
                    f"INSERT INTO authentication ({columns}) VALUES ({placeholders})",
                    self._record_to_row(record),
                )
        except sqlite3.IntegrityError as exc:
            if self._exists(record.authentication_id):
                raise AlreadyExistsError(
                    f"Authentication {record.authentication_id} already exists.",
                    authentication_id=record.authentication_id,
                ) from exc
            raise self._translate_integrity_error(exc, record) from exc

    def _exists(self, authentication_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM authentication WHERE authentication_id = ?",
                (authentication_id,),
            ).fetchone()
        return row is not None

    def replace(self, change: RecordChange) -> None:
        try:
            with self._connect() as conn:
                self._compare_and_swap(conn, change)
        except sqlite3.IntegrityError as exc:
            raise self._translate_integrity_error(exc, change.updated) from exc

    def get(self, authentication_id: str) -> Optional[Authentication]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM authentication WHERE authentication_id = ?",
                (authentication_id,),
            ).fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def get_active(
        self, merchant_id: str, payment_method_id: str
    ) -> Optional[Authentication]:
        with self._connect() as conn:
            row = conn.execute(
                (
                    "SELECT * FROM authentication "
                    "WHERE merchant_id = ? AND payment_method_id = ? "
                    "AND lifecycle_status = ?"
                ),
                (merchant_id, payment_method_id, LifecycleStatus.ACTIVE.value),
            ).fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def get_by_connector_authentication_id(
        self,
        merchant_id: str,
        connector: Connector,
        connector_authentication_id: str,
    ) -> Optional[Authentication]:
        with self._connect() as conn:
            row = conn.execute(
                (
                    "SELECT * FROM authentication "
                    "WHERE merchant_id = ? AND connector = ? "
                    "AND connector_authentication_id = ?"
                ),
                (merchant_id, Connector(connector).value, connector_authentication_id),
            ).fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def list_by_payment_method(
        self, merchant_id: str, payment_method_id: str
    ) -> List[Authentication]:
        with self._connect() as conn:
            rows = conn.execute(
                (
                    "SELECT * FROM authentication "
                    "WHERE merchant_id = ? AND payment_method_id = ? "
                    "ORDER BY created_at, authentication_id"
                ),
                (merchant_id, payment_method_id),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def _compare_and_swap(self, conn: sqlite3.Connection, change: RecordChange) -> None:
        updated = change.updated
        cursor = conn.execute(
            """
            UPDATE authentication SET
                connector_authentication_id = ?,
                authentication_data = ?,
                authentication_type = ?,
                authentication_status = ?,
                lifecycle_status = ?,
                modified_at = ?
            WHERE authentication_id = ? AND modified_at = ?
            """,
            (
                updated.connector_authentication_id,
                self._codec.encode(updated.authentication_data),
                updated.authentication_type.value if updated.authentication_type else None,
                updated.authentication_status.value,
                updated.lifecycle_status.value,
                format_timestamp(updated.modified_at),
                updated.authentication_id,
                format_timestamp(change.previous.modified_at),
            ),
        )
        if cursor.rowcount == 0:
            raise ConflictError(
                f"Authentication {updated.authentication_id} was modified concurrently.",
                authentication_id=updated.authentication_id,
            )

    @staticmethod
    def _translate_integrity_error(
        exc: sqlite3.IntegrityError, record: Authentication
    ) -> Exception:
        message = str(exc)
        if "payment_method_id" in message:
            return ActiveAuthenticationExistsError(
                (
                    f"Merchant {record.merchant_id} already has an active "
                    f"authentication for payment method {record.payment_method_id}."
                ),
                merchant_id=record.merchant_id,
                payment_method_id=record.payment_method_id,
                authentication_id=record.authentication_id,
            )
        if "connector_authentication_id" in message:
            return AlreadyExistsError(
                (
                    f"Connector authentication id {record.connector_authentication_id} "
                    f"is already attached to another {record.connector.value} "
                    "authentication."
                ),
                authentication_id=record.authentication_id,
            )
        if "authentication_id" in message:
            return AlreadyExistsError(
                f"Authentication {record.authentication_id} already exists.",
                authentication_id=record.authentication_id,
            )
        return StorageUnavailableError(f"Authentication database error: {exc}")

    def _record_to_row(self, record: Authentication) -> Tuple[Any, ...]:
        return (
            record.authentication_id,
            record.merchant_id,
            record.connector.value,
            record.connector_authentication_id,
            self._codec.encode(record.authentication_data),
            record.payment_method_id,
            record.authentication_type.value if record.authentication_type else None,
            record.authentication_status.value,
            record.lifecycle_status.value,
            format_timestamp(record.created_at),
            format_timestamp(record.modified_at),
        )

    def _row_to_record(self, row: sqlite3.Row) -> Authentication:
        authentication_type = (
            AuthenticationType(row["authentication_type"])
            if row["authentication_type"]
            else None
        )
        return Authentication(
            authentication_id=row["authentication_id"],
            merchant_id=row["merchant_id"],
            connector=Connector(row["connector"]),
            connector_authentication_id=row["connector_authentication_id"],
            authentication_data=self._codec.decode(row["authentication_data"]),
            payment_method_id=row["payment_method_id"],
            authentication_type=authentication_type,
            authentication_status=AuthenticationStatus(row["authentication_status"]),
            lifecycle_status=LifecycleStatus(row["lifecycle_status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            modified_at=datetime.fromisoformat(row["modified_at"]),
        )


__all__ = ["SCHEMA_OBJECTS", "SQLiteAuthenticationRepository"]
