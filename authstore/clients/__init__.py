"""Expose repository backends."""

from .base import AuthenticationRepository, RecordChange
from .dynamodb_repository import DynamoDBAuthenticationRepository
from .sqlite_repository import SQLiteAuthenticationRepository

__all__ = [
    "AuthenticationRepository",
    "DynamoDBAuthenticationRepository",
    "RecordChange",
    "SQLiteAuthenticationRepository",
]
