"""
Domain models for payment authentication records.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, JsonValue


class AuthenticationStatus(str, Enum):
    """Progress of an authentication attempt with its connector."""

    STARTED = "started"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    ERROR = "error"


class LifecycleStatus(str, Enum):
    """Whether a record is the authoritative attempt for its payment method."""

    ACTIVE = "active"
    SUPERSEDED = "superseded"
    EXPIRED = "expired"


class AuthenticationType(str, Enum):
    """How the cardholder was authenticated."""

    CHALLENGE = "challenge"
    FRICTIONLESS = "frictionless"


class Connector(str, Enum):
    """External authentication providers known to the orchestrator."""

    ADYEN = "adyen"
    CHECKOUT = "checkout"
    CYBERSOURCE = "cybersource"
    GPAYMENTS = "gpayments"
    NETCETERA = "netcetera"
    STRIPE = "stripe"
    THREEDSECUREIO = "threedsecureio"


def generate_authentication_id() -> str:
    """Return a fresh opaque authentication identifier."""
    return f"auth_{uuid4().hex}"


class NewAuthentication(BaseModel):
    """Input for creating an authentication record."""

    model_config = ConfigDict(frozen=True)

    authentication_id: str = Field(
        default_factory=generate_authentication_id,
        min_length=1,
        max_length=64,
        description="Caller-generated identifier; generated when omitted.",
    )
    merchant_id: str = Field(..., min_length=1, max_length=64)
    connector: Connector
    payment_method_id: str = Field(..., min_length=1, max_length=64)
    connector_authentication_id: Optional[str] = Field(
        None,
        min_length=1,
        max_length=64,
        description="Identifier assigned by the connector, if already known.",
    )
    authentication_data: JsonValue = Field(
        None,
        description="Connector-specific context; stored and returned unchanged.",
    )
    authentication_type: Optional[AuthenticationType] = None
    authentication_status: AuthenticationStatus = AuthenticationStatus.STARTED
    lifecycle_status: LifecycleStatus = LifecycleStatus.ACTIVE


class Authentication(BaseModel):
    """A persisted authentication attempt."""

    model_config = ConfigDict(frozen=True)

    authentication_id: str
    merchant_id: str
    connector: Connector
    connector_authentication_id: Optional[str] = None
    authentication_data: JsonValue = None
    payment_method_id: str
    authentication_type: Optional[AuthenticationType] = None
    authentication_status: AuthenticationStatus
    lifecycle_status: LifecycleStatus
    created_at: datetime
    modified_at: datetime

    @property
    def is_active(self) -> bool:
        return self.lifecycle_status is LifecycleStatus.ACTIVE

    @classmethod
    def from_new(cls, new: NewAuthentication, *, now: datetime) -> "Authentication":
        """Build the record persisted for a create request."""
        return cls(
            authentication_id=new.authentication_id,
            merchant_id=new.merchant_id,
            connector=new.connector,
            connector_authentication_id=new.connector_authentication_id,
            authentication_data=new.authentication_data,
            payment_method_id=new.payment_method_id,
            authentication_type=new.authentication_type,
            authentication_status=new.authentication_status,
            lifecycle_status=new.lifecycle_status,
            created_at=now,
            modified_at=now,
        )


__all__ = [
    "Authentication",
    "AuthenticationStatus",
    "AuthenticationType",
    "Connector",
    "LifecycleStatus",
    "NewAuthentication",
    "generate_authentication_id",
]
