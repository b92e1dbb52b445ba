from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from authstore.clients import SQLiteAuthenticationRepository
from authstore.core.data_cipher import AuthenticationDataCodec
from authstore.core.errors import StorageUnavailableError
from authstore.services import AuthenticationStore


def _raw_data(db_path: str, authentication_id: str) -> str | None:
    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            "SELECT authentication_data FROM authentication WHERE authentication_id = ?",
            (authentication_id,),
        ).fetchone()
    return row[0]


def test_creates_parent_directories(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "dir" / "authentication.db"
    SQLiteAuthenticationRepository(str(db_path))
    assert db_path.exists()


def test_directory_path_is_reported_as_unavailable(tmp_path: Path) -> None:
    with pytest.raises(StorageUnavailableError):
        SQLiteAuthenticationRepository(str(tmp_path))


def test_corrupt_database_is_reported_as_unavailable(tmp_path: Path) -> None:
    db_path = tmp_path / "authentication.db"
    db_path.write_bytes(b"definitely not a sqlite database" * 64)
    with pytest.raises(StorageUnavailableError):
        SQLiteAuthenticationRepository(str(db_path))


def test_authentication_data_is_stored_as_json_by_default(db_path, store, make_new) -> None:
    store.create(make_new(authentication_data={"acs_url": "https://acs.example/challenge"}))
    assert _raw_data(db_path, "auth_1") == '{"acs_url":"https://acs.example/challenge"}'


def test_authentication_data_is_encrypted_at_rest(db_path, make_new) -> None:
    codec = AuthenticationDataCodec("at-rest-secret")
    store = AuthenticationStore(SQLiteAuthenticationRepository(db_path, codec=codec))

    store.create(make_new(authentication_data={"cavv": "AAABBBCCC"}))

    raw = _raw_data(db_path, "auth_1")
    assert raw.startswith("fernet:")
    assert "AAABBBCCC" not in raw
    assert store.get_by_id("auth_1").authentication_data == {"cavv": "AAABBBCCC"}


def test_plaintext_rows_remain_readable_after_enabling_encryption(db_path, make_new) -> None:
    AuthenticationStore(SQLiteAuthenticationRepository(db_path)).create(
        make_new(authentication_data=["legacy"])
    )
    codec = AuthenticationDataCodec("at-rest-secret")
    store = AuthenticationStore(SQLiteAuthenticationRepository(db_path, codec=codec))

    assert store.get_by_id("auth_1").authentication_data == ["legacy"]


def test_encrypted_rows_need_the_secret(db_path, make_new) -> None:
    codec = AuthenticationDataCodec("at-rest-secret")
    AuthenticationStore(SQLiteAuthenticationRepository(db_path, codec=codec)).create(
        make_new(authentication_data={"eci": "05"})
    )

    without_secret = AuthenticationStore(SQLiteAuthenticationRepository(db_path))
    with pytest.raises(StorageUnavailableError):
        without_secret.get_by_id("auth_1")

    wrong = AuthenticationDataCodec("rotated")
    with pytest.raises(StorageUnavailableError):
        AuthenticationStore(SQLiteAuthenticationRepository(db_path, codec=wrong)).get_by_id(
            "auth_1"
        )


def test_timestamps_are_stored_as_sortable_utc_text(db_path, store, make_new) -> None:
    created = store.create(make_new())
    with sqlite3.connect(db_path) as conn:
        created_at, modified_at = conn.execute(
            "SELECT created_at, modified_at FROM authentication"
        ).fetchone()
    assert created_at == modified_at
    assert created_at.endswith("+00:00")
    assert len(created_at) == len("2024-01-22T09:14:31.000000+00:00")
    assert created.created_at.isoformat(timespec="microseconds") == created_at
