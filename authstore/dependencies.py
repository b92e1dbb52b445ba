"""
Factory functions that build the store and its collaborators from settings.
"""

from __future__ import annotations

from functools import lru_cache

from authstore.clients import (
    AuthenticationRepository,
    DynamoDBAuthenticationRepository,
    SQLiteAuthenticationRepository,
)
from authstore.core.config import AppSettings, get_settings
from authstore.core.data_cipher import AuthenticationDataCodec
from authstore.services import AuthenticationStore


def build_data_codec(settings: AppSettings) -> AuthenticationDataCodec:
    """Encrypt stored authentication data when a secret is configured."""
    return AuthenticationDataCodec(settings.security.authentication_data_secret or None)


def build_repository(settings: AppSettings) -> AuthenticationRepository:
    """Instantiate the configured repository backend."""
    codec = build_data_codec(settings)
    if settings.store.backend == "dynamodb":
        return DynamoDBAuthenticationRepository(settings.aws, codec=codec)
    return SQLiteAuthenticationRepository(
        settings.store.sqlite_path,
        codec=codec,
        timeout_seconds=settings.store.sqlite_timeout_seconds,
    )


def build_authentication_store(settings: AppSettings) -> AuthenticationStore:
    return AuthenticationStore(build_repository(settings))


@lru_cache()
def get_authentication_store() -> AuthenticationStore:
    """Provide a process-wide store built from environment settings."""
    return build_authentication_store(get_settings())


__all__ = [
    "build_authentication_store",
    "build_data_codec",
    "build_repository",
    "get_authentication_store",
]
