"""Provision storage for the configured authentication store backend.

SQLite databases are created on first use, so for that backend the command
only opens the database and reports the schema location. For DynamoDB it
creates the table and its history index when they do not exist yet::

    python -m scripts.init_store
    python -m scripts.init_store --backend dynamodb --wait
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from authstore.clients import SQLiteAuthenticationRepository
from authstore.core.config import AppSettings, AWSSettings, get_settings
from authstore.core.errors import StorageUnavailableError
from authstore.core.logging import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 5


def table_definition(settings: AWSSettings) -> dict[str, Any]:
    """Return ``create_table`` arguments for the single-table layout."""
    return {
        "TableName": settings.dynamodb_table_name,
        "BillingMode": "PAY_PER_REQUEST",
        "AttributeDefinitions": [
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
            {"AttributeName": "gsi1pk", "AttributeType": "S"},
            {"AttributeName": "gsi1sk", "AttributeType": "S"},
        ],
        "KeySchema": [
            {"AttributeName": "pk", "KeyType": "HASH"},
            {"AttributeName": "sk", "KeyType": "RANGE"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": settings.dynamodb_history_index,
                "KeySchema": [
                    {"AttributeName": "gsi1pk", "KeyType": "HASH"},
                    {"AttributeName": "gsi1sk", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
    }


def create_dynamodb_table(settings: AWSSettings, *, client: Any = None, wait: bool = False) -> bool:
    """Create the table; returns ``False`` when it already exists."""
    client = client or boto3.client(
        "dynamodb",
        region_name=settings.region_name,
        endpoint_url=settings.dynamodb_endpoint_url,
    )
    try:
        client.create_table(**table_definition(settings))
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") == "ResourceInUseException":
            logger.info("DynamoDB table %s already exists", settings.dynamodb_table_name)
            return False
        raise
    logger.info("Created DynamoDB table %s", settings.dynamodb_table_name)
    if wait:
        client.get_waiter("table_exists").wait(TableName=settings.dynamodb_table_name)
    return True


def init_sqlite(settings: AppSettings) -> None:
    SQLiteAuthenticationRepository(
        settings.store.sqlite_path,
        timeout_seconds=settings.store.sqlite_timeout_seconds,
    )
    logger.info("SQLite schema ready at %s", settings.store.sqlite_path)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provision authentication storage.")
    parser.add_argument(
        "--backend",
        choices=("sqlite", "dynamodb"),
        default=None,
        help="Override AUTH_STORE_BACKEND for this run.",
    )
    parser.add_argument(
        "--wait",
        action="store_true",
        help="Block until a newly created DynamoDB table is active.",
    )
    return parser


def main(argv: list[str] | None = None, *, settings: AppSettings | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    backend = args.backend or settings.store.backend

    try:
        if backend == "dynamodb":
            if not settings.aws.dynamodb_table_name:
                print("DYNAMODB_TABLE_NAME must be set for the dynamodb backend.", file=sys.stderr)
                return EXIT_RUNTIME_ERROR
            create_dynamodb_table(settings.aws, wait=args.wait)
        else:
            init_sqlite(settings)
    except (BotoCoreError, ClientError) as exc:
        print(f"DynamoDB provisioning failed: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except StorageUnavailableError as exc:
        print(f"SQLite provisioning failed: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
