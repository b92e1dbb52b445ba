from __future__ import annotations

import pytest
from pydantic import ValidationError

from authstore.clients import (
    AuthenticationRepository,
    DynamoDBAuthenticationRepository,
    SQLiteAuthenticationRepository,
)
from authstore.core.config import AppSettings, AWSSettings, SecuritySettings, StoreSettings
from authstore.dependencies import build_authentication_store, build_data_codec, build_repository


def _settings(**store) -> AppSettings:
    return AppSettings(
        store=StoreSettings(**store),
        aws=AWSSettings(region_name="us-east-1", dynamodb_table_name="authentication"),
    )


def test_store_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_STORE_BACKEND", " DynamoDB ")
    monkeypatch.setenv("AUTH_STORE_SQLITE_TIMEOUT", "2.5")

    settings = StoreSettings()

    assert settings.backend == "dynamodb"
    assert settings.sqlite_timeout_seconds == 2.5


def test_unknown_backend_is_rejected() -> None:
    with pytest.raises(ValidationError):
        StoreSettings(backend="postgres")


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        StoreSettings(sqlite_timeout_seconds=0)


def test_dynamodb_backend_requires_table_name() -> None:
    with pytest.raises(ValidationError):
        AppSettings(
            store=StoreSettings(backend="dynamodb"),
            aws=AWSSettings(dynamodb_table_name=None),
        )


def test_builds_sqlite_store(tmp_path) -> None:
    settings = _settings(sqlite_path=str(tmp_path / "store.db"))

    repository = build_repository(settings)

    assert isinstance(repository, SQLiteAuthenticationRepository)
    assert isinstance(repository, AuthenticationRepository)
    store = build_authentication_store(settings)
    assert store.list_by_payment_method("m1", "pm1") == []


def test_builds_dynamodb_repository() -> None:
    settings = _settings(backend="dynamodb")
    repository = build_repository(settings)
    assert isinstance(repository, DynamoDBAuthenticationRepository)


def test_codec_encrypts_only_with_secret() -> None:
    settings = _settings()
    assert not build_data_codec(settings).encrypts

    encrypted = AppSettings(
        store=settings.store,
        aws=settings.aws,
        security=SecuritySettings(authentication_data_secret="s3cret"),
    )
    assert build_data_codec(encrypted).encrypts
