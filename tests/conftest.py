"""Pytest configuration shared across the suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from authstore.clients import SQLiteAuthenticationRepository
from authstore.models import Connector, NewAuthentication
from authstore.services import AuthenticationStore


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 22, 9, 14, 31, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "authentication.db")


@pytest.fixture
def repository(db_path: str) -> SQLiteAuthenticationRepository:
    return SQLiteAuthenticationRepository(db_path)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(repository: SQLiteAuthenticationRepository) -> AuthenticationStore:
    return AuthenticationStore(repository)


@pytest.fixture
def make_new():
    """Build create requests for merchant ``m1`` / payment method ``pm1``."""

    def _make(**overrides) -> NewAuthentication:
        values = {
            "authentication_id": "auth_1",
            "merchant_id": "m1",
            "connector": Connector.STRIPE,
            "payment_method_id": "pm1",
        }
        values.update(overrides)
        return NewAuthentication(**values)

    return _make
