"""Tests for the store environment check script."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from authstore.clients import SQLiteAuthenticationRepository
from scripts import check_env

STORE_ENV_KEYS = [
    "AUTH_STORE_BACKEND",
    "AUTH_STORE_SQLITE_PATH",
    "DYNAMODB_TABLE_NAME",
    "AUTH_DATA_ENCRYPTION_SECRET",
]


@pytest.fixture(autouse=True)
def isolated_store_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Registered with setenv so values loaded from test .env files are undone.
    for key in STORE_ENV_KEYS:
        monkeypatch.setenv(key, "unset")
        monkeypatch.delenv(key)


class FakeDescribeClient:
    def __init__(self, table: dict | None = None) -> None:
        self.table = table

    def describe_table(self, *, TableName: str) -> dict:
        if self.table is None:
            raise ClientError(
                {"Error": {"Code": "ResourceNotFoundException", "Message": TableName}},
                "DescribeTable",
            )
        return {"Table": self.table}


def _env(tmp_path: Path, **values: str) -> Path:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "".join(f"{key}={value}\n" for key, value in values.items()), encoding="utf-8"
    )
    return env_file


def _dynamodb_env(tmp_path: Path, secret: str = "secret") -> Path:
    return _env(
        tmp_path,
        AUTH_STORE_BACKEND="dynamodb",
        DYNAMODB_TABLE_NAME="authentication",
        AUTH_DATA_ENCRYPTION_SECRET=secret,
    )


@pytest.mark.parametrize("command", ["record", "verify", "check"])
def test_missing_env_file_is_a_runtime_error(tmp_path: Path, command: str) -> None:
    argv = [command, "--env-file", str(tmp_path / ".missing-env")]
    if command != "check":
        argv += ["--hash-file", str(tmp_path / ".env.sha256")]

    assert check_env.main(argv) == check_env.EXIT_RUNTIME_ERROR


def test_dynamodb_without_table_fails_validation(tmp_path: Path) -> None:
    env_file = _env(tmp_path, AUTH_STORE_BACKEND="dynamodb")
    hash_file = tmp_path / ".env.sha256"

    exit_code = check_env.main(
        ["record", "--offline", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )

    assert exit_code == check_env.EXIT_VALIDATION_ERROR
    assert not hash_file.exists()


def test_recorded_checksum_detects_edits(tmp_path: Path) -> None:
    env_file = _dynamodb_env(tmp_path)
    hash_file = tmp_path / ".env.sha256"
    argv = ["--offline", "--env-file", str(env_file), "--hash-file", str(hash_file)]

    assert check_env.main(["record", *argv]) == check_env.EXIT_OK
    assert hash_file.read_text(encoding="utf-8").strip() == check_env.file_digest(env_file)
    assert check_env.main(["verify", *argv]) == check_env.EXIT_OK

    _dynamodb_env(tmp_path, secret="rotated")
    assert check_env.main(["verify", *argv]) == check_env.EXIT_CHECKSUM_ERROR


def test_verify_without_baseline_is_a_runtime_error(tmp_path: Path) -> None:
    env_file = _dynamodb_env(tmp_path)
    exit_code = check_env.main(
        ["verify", "--offline", "--env-file", str(env_file), "--hash-file", str(tmp_path / "none")]
    )
    assert exit_code == check_env.EXIT_RUNTIME_ERROR


def test_check_confirms_initialized_sqlite_schema(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    db_path = tmp_path / "auth.db"
    SQLiteAuthenticationRepository(str(db_path))
    env_file = _env(tmp_path, AUTH_STORE_SQLITE_PATH=str(db_path))

    assert check_env.main(["check", "--env-file", str(env_file)]) == check_env.EXIT_OK
    output = capsys.readouterr().out
    assert f"sqlite database {db_path}" in output
    assert "plaintext" in output
    assert "SQLite schema present" in output


def test_check_does_not_create_a_missing_database(tmp_path: Path) -> None:
    db_path = tmp_path / "absent.db"
    env_file = _env(tmp_path, AUTH_STORE_SQLITE_PATH=str(db_path))

    assert check_env.main(["check", "--env-file", str(env_file)]) == check_env.EXIT_STORAGE_ERROR
    assert not db_path.exists()


def test_check_reports_missing_schema_objects(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    db_path = tmp_path / "other.db"
    with sqlite3.connect(db_path) as conn:
        conn.execute("CREATE TABLE authentication (authentication_id TEXT PRIMARY KEY)")
    env_file = _env(tmp_path, AUTH_STORE_SQLITE_PATH=str(db_path))

    assert check_env.main(["check", "--env-file", str(env_file)]) == check_env.EXIT_STORAGE_ERROR
    assert "authentication_active_payment_method" in capsys.readouterr().err


@pytest.mark.parametrize(
    "table, expected",
    [
        (
            {
                "TableStatus": "ACTIVE",
                "GlobalSecondaryIndexes": [{"IndexName": "gsi1", "IndexStatus": "ACTIVE"}],
            },
            check_env.EXIT_OK,
        ),
        (
            {
                "TableStatus": "ACTIVE",
                "GlobalSecondaryIndexes": [{"IndexName": "gsi1", "IndexStatus": "CREATING"}],
            },
            check_env.EXIT_STORAGE_ERROR,
        ),
        ({"TableStatus": "CREATING"}, check_env.EXIT_STORAGE_ERROR),
        (None, check_env.EXIT_STORAGE_ERROR),
    ],
)
def test_check_inspects_the_dynamodb_table(tmp_path: Path, table, expected: int) -> None:
    env_file = _dynamodb_env(tmp_path)
    exit_code = check_env.main(
        ["check", "--env-file", str(env_file)], dynamodb_client=FakeDescribeClient(table)
    )
    assert exit_code == expected
