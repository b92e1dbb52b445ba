"""Check that a deployment's ``.env`` still describes a usable authentication store.

``check`` validates the settings and confirms the configured storage answers:
the SQLite database opens read-only and carries the authentication schema, or
the DynamoDB table and its history index are ACTIVE. ``record`` and ``verify``
do the same and also pin the file's SHA-256 so later edits are noticed::

    python -m scripts.check_env check --env-file /opt/authstore/.env
    python -m scripts.check_env record --env-file /opt/authstore/.env \
        --hash-file /opt/authstore/.env.sha256
    python -m scripts.check_env verify --env-file /opt/authstore/.env \
        --hash-file /opt/authstore/.env.sha256

Pass ``--offline`` to skip the storage round trip.
"""

from __future__ import annotations

import argparse
import hashlib
import sqlite3
import sys
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from authstore.clients.sqlite_repository import SCHEMA_OBJECTS
from authstore.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_STORAGE_ERROR = 4
EXIT_RUNTIME_ERROR = 5


class CheckFailed(Exception):
    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


def load_settings(env_file: Path) -> AppSettings:
    if not env_file.is_file():
        raise CheckFailed(f"Environment file {env_file} does not exist.", EXIT_RUNTIME_ERROR)
    _load_env_file(str(env_file))
    try:
        return AppSettings(_env_file=env_file)  # type: ignore[call-arg]
    except ValidationError as exc:
        raise CheckFailed(
            f"Settings validation failed:\n{exc.json(indent=2)}", EXIT_VALIDATION_ERROR
        ) from exc


def describe(settings: AppSettings) -> str:
    if settings.store.backend == "dynamodb":
        target = f"dynamodb table {settings.aws.dynamodb_table_name} ({settings.aws.region_name})"
    else:
        target = f"sqlite database {settings.store.sqlite_path}"
    encryption = "encrypted" if settings.security.authentication_data_secret else "plaintext"
    return f"Store backend: {target}; authentication data stored {encryption}."


def sqlite_status(settings: AppSettings) -> str:
    """Inspect the database without creating it."""
    path = Path(settings.store.sqlite_path)
    if not path.is_file():
        raise CheckFailed(
            f"SQLite database {path} does not exist; run scripts.init_store first.",
            EXIT_STORAGE_ERROR,
        )
    try:
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
        try:
            present = {
                row[0]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type IN ('table', 'index')"
                )
            }
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise CheckFailed(f"SQLite database {path} is unreadable: {exc}", EXIT_STORAGE_ERROR) from exc

    missing = [name for name in SCHEMA_OBJECTS if name not in present]
    if missing:
        raise CheckFailed(
            f"SQLite database {path} is missing {', '.join(missing)}.", EXIT_STORAGE_ERROR
        )
    return f"SQLite schema present in {path}."


def dynamodb_status(settings: AppSettings, *, client: Any = None) -> str:
    aws = settings.aws
    client = client or boto3.client(
        "dynamodb", region_name=aws.region_name, endpoint_url=aws.dynamodb_endpoint_url
    )
    try:
        table = client.describe_table(TableName=aws.dynamodb_table_name)["Table"]
    except (BotoCoreError, ClientError) as exc:
        raise CheckFailed(
            f"DynamoDB table {aws.dynamodb_table_name} is not reachable: {exc}",
            EXIT_STORAGE_ERROR,
        ) from exc

    if table.get("TableStatus") != "ACTIVE":
        raise CheckFailed(
            f"DynamoDB table {aws.dynamodb_table_name} is {table.get('TableStatus')}.",
            EXIT_STORAGE_ERROR,
        )
    indexes = {
        index["IndexName"]: index.get("IndexStatus")
        for index in table.get("GlobalSecondaryIndexes", [])
    }
    if indexes.get(aws.dynamodb_history_index) != "ACTIVE":
        raise CheckFailed(
            f"History index {aws.dynamodb_history_index} on {aws.dynamodb_table_name} "
            "is missing or not ACTIVE.",
            EXIT_STORAGE_ERROR,
        )
    return f"DynamoDB table {aws.dynamodb_table_name} and index {aws.dynamodb_history_index} are ACTIVE."


def file_digest(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def verify_baseline(env_file: Path, hash_file: Path) -> None:
    if not hash_file.is_file():
        raise CheckFailed(
            f"No checksum baseline at {hash_file}; run the 'record' command first.",
            EXIT_RUNTIME_ERROR,
        )
    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = file_digest(env_file)
    if expected != actual:
        raise CheckFailed(
            f"Environment checksum mismatch for {env_file}: "
            f"expected {expected}, found {actual}.",
            EXIT_CHECKSUM_ERROR,
        )


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--env-file", type=Path, default=Path(".env"))
    common.add_argument(
        "--offline",
        action="store_true",
        help="Validate settings only; do not contact the configured storage.",
    )

    parser = argparse.ArgumentParser(description="Check authentication store settings.")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("check", parents=[common], help="Validate settings and storage.")
    for name in ("record", "verify"):
        command = commands.add_parser(
            name, parents=[common], help=f"Check, then {name} the .env checksum."
        )
        command.add_argument("--hash-file", type=Path, required=True)
    return parser


def main(argv: list[str] | None = None, *, dynamodb_client: Any = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = load_settings(args.env_file)
        print(describe(settings))
        if not args.offline:
            if settings.store.backend == "dynamodb":
                print(dynamodb_status(settings, client=dynamodb_client))
            else:
                print(sqlite_status(settings))
        if args.command == "record":
            digest = file_digest(args.env_file)
            args.hash_file.write_text(f"{digest}\n", encoding="utf-8")
            print(f"Recorded checksum {digest} to {args.hash_file}.")
        elif args.command == "verify":
            verify_baseline(args.env_file, args.hash_file)
            print("Environment checksum OK.")
    except CheckFailed as exc:
        print(str(exc), file=sys.stderr)
        return exc.exit_code
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
