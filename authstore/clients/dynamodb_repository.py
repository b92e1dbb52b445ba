"""
DynamoDB storage for authentication records.

Records live in a single table keyed by ``pk``/``sk``. Two kinds of guard
items back the uniqueness rules and are written in the same transaction as
the record they protect:

* ``active#<merchant>#<payment_method>`` names the active record of a pair.
* ``connector#<merchant>#<connector>#<connector_id>`` maps a connector's own
  identifier back to the record.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from authstore.clients.base import RecordChange, format_timestamp
from authstore.core.config import AWSSettings
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

RECORD_SORT_KEY = "record"
GUARD_SORT_KEY = "guard"
LOOKUP_SORT_KEY = "lookup"


def record_key(authentication_id: str) -> Dict[str, str]:
    return {"pk": f"authentication#{authentication_id}", "sk": RECORD_SORT_KEY}


def active_guard_key(merchant_id: str, payment_method_id: str) -> Dict[str, str]:
    return {"pk": f"active#{merchant_id}#{payment_method_id}", "sk": GUARD_SORT_KEY}


def connector_lookup_key(
    merchant_id: str, connector: Connector, connector_authentication_id: str
) -> Dict[str, str]:
    return {
        "pk": (
            f"connector#{merchant_id}#{Connector(connector).value}"
            f"#{connector_authentication_id}"
        ),
        "sk": LOOKUP_SORT_KEY,
    }


def history_partition(merchant_id: str, payment_method_id: str) -> str:
    return f"pair#{merchant_id}#{payment_method_id}"


class DynamoDBAuthenticationRepository:
    """Conditional-write repository over a single DynamoDB table."""

    def __init__(
        self,
        settings: AWSSettings,
        *,
        client: Any = None,
        codec: Optional[AuthenticationDataCodec] = None,
    ) -> None:
        self._settings = settings
        self._table_name = settings.dynamodb_table_name
        self._history_index = settings.dynamodb_history_index
        self._client = client or boto3.client(
            "dynamodb",
            region_name=settings.region_name,
            endpoint_url=settings.dynamodb_endpoint_url,
        )
        self._codec = codec or AuthenticationDataCodec()
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def insert(
        self, record: Authentication, *, supersede: Optional[RecordChange] = None
    ) -> None:
        if supersede is not None and (
            supersede.previous.authentication_id == record.authentication_id
        ):
            # A transaction may not touch the same item twice.
            raise AlreadyExistsError(
                f"Authentication {record.authentication_id} already exists.",
                authentication_id=record.authentication_id,
            )
        actions: List[Dict[str, Any]] = []
        failures: List[Exception] = []

        actions.append(
            {
                "Put": {
                    "TableName": self._table_name,
                    "Item": self._serialize(self._record_to_item(record)),
                    "ConditionExpression": "attribute_not_exists(pk)",
                }
            }
        )
        failures.append(
            AlreadyExistsError(
                f"Authentication {record.authentication_id} already exists.",
                authentication_id=record.authentication_id,
            )
        )

        if supersede is not None:
            actions.append(self._conditional_put(supersede))
            failures.append(self._conflict(supersede.updated))

        if record.is_active:
            guard: Dict[str, Any] = {
                "TableName": self._table_name,
                "Item": self._serialize(
                    {
                        **active_guard_key(record.merchant_id, record.payment_method_id),
                        "authentication_id": record.authentication_id,
                    }
                ),
            }
            if supersede is not None and supersede.releases_active_slot:
                guard["ConditionExpression"] = "authentication_id = :previous"
                guard["ExpressionAttributeValues"] = self._serialize(
                    {":previous": supersede.previous.authentication_id}
                )
            else:
                guard["ConditionExpression"] = "attribute_not_exists(pk)"
            actions.append({"Put": guard})
            failures.append(
                ActiveAuthenticationExistsError(
                    (
                        f"Merchant {record.merchant_id} already has an active "
                        f"authentication for payment method {record.payment_method_id}."
                    ),
                    merchant_id=record.merchant_id,
                    payment_method_id=record.payment_method_id,
                    authentication_id=record.authentication_id,
                )
            )

        if record.connector_authentication_id is not None:
            actions.append(self._lookup_put(record))
            failures.append(self._connector_id_taken(record))

        self._transact(actions, failures)

    def replace(self, change: RecordChange) -> None:
        updated = change.updated
        actions: List[Dict[str, Any]] = [self._conditional_put(change)]
        failures: List[Exception] = [self._conflict(updated)]

        if change.releases_active_slot:
            actions.append(
                {
                    "Delete": {
                        "TableName": self._table_name,
                        "Key": self._serialize(
                            active_guard_key(updated.merchant_id, updated.payment_method_id)
                        ),
                        "ConditionExpression": "authentication_id = :id",
                        "ExpressionAttributeValues": self._serialize(
                            {":id": updated.authentication_id}
                        ),
                    }
                }
            )
            failures.append(self._conflict(updated))

        if change.assigns_connector_id:
            actions.append(self._lookup_put(updated))
            failures.append(self._connector_id_taken(updated))

        if len(actions) == 1:
            try:
                self._client.put_item(**actions[0]["Put"])
            except ClientError as exc:
                if _error_code(exc) == "ConditionalCheckFailedException":
                    raise failures[0] from exc
                raise self._unavailable(exc) from exc
            except BotoCoreError as exc:
                raise self._unavailable(exc) from exc
            return

        self._transact(actions, failures)

    def get(self, authentication_id: str) -> Optional[Authentication]:
        item = self._get_item(record_key(authentication_id))
        if item is None:
            return None
        return self._item_to_record(item)

    def get_active(
        self, merchant_id: str, payment_method_id: str
    ) -> Optional[Authentication]:
        guard = self._get_item(active_guard_key(merchant_id, payment_method_id))
        if guard is None:
            return None
        record = self.get(guard["authentication_id"])
        if record is None or not record.is_active:
            return None
        return record

    def get_by_connector_authentication_id(
        self,
        merchant_id: str,
        connector: Connector,
        connector_authentication_id: str,
    ) -> Optional[Authentication]:
        lookup = self._get_item(
            connector_lookup_key(merchant_id, connector, connector_authentication_id)
        )
        if lookup is None:
            return None
        return self.get(lookup["authentication_id"])

    def list_by_payment_method(
        self, merchant_id: str, payment_method_id: str
    ) -> List[Authentication]:
        """Return the pair's history; served by an eventually consistent index."""
        request: Dict[str, Any] = {
            "TableName": self._table_name,
            "IndexName": self._history_index,
            "KeyConditionExpression": "gsi1pk = :pair",
            "ExpressionAttributeValues": self._serialize(
                {":pair": history_partition(merchant_id, payment_method_id)}
            ),
            "ScanIndexForward": True,
        }
        records: List[Authentication] = []
        while True:
            try:
                response = self._client.query(**request)
            except (BotoCoreError, ClientError) as exc:
                raise self._unavailable(exc) from exc
            records.extend(
                self._item_to_record(self._deserialize(item))
                for item in response.get("Items", [])
            )
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            request["ExclusiveStartKey"] = last_key
        return records

    def _conditional_put(self, change: RecordChange) -> Dict[str, Any]:
        return {
            "Put": {
                "TableName": self._table_name,
                "Item": self._serialize(self._record_to_item(change.updated)),
                "ConditionExpression": "modified_at = :expected",
                "ExpressionAttributeValues": self._serialize(
                    {":expected": format_timestamp(change.previous.modified_at)}
                ),
            }
        }

    def _lookup_put(self, record: Authentication) -> Dict[str, Any]:
        return {
            "Put": {
                "TableName": self._table_name,
                "Item": self._serialize(
                    {
                        **connector_lookup_key(
                            record.merchant_id,
                            record.connector,
                            record.connector_authentication_id,
                        ),
                        "authentication_id": record.authentication_id,
                    }
                ),
                "ConditionExpression": "attribute_not_exists(pk)",
            }
        }

    def _transact(self, actions: List[Dict[str, Any]], failures: List[Exception]) -> None:
        try:
            self._client.transact_write_items(TransactItems=actions)
        except ClientError as exc:
            if _error_code(exc) != "TransactionCanceledException":
                raise self._unavailable(exc) from exc
            reasons = exc.response.get("CancellationReasons") or []
            for index, reason in enumerate(reasons):
                code = reason.get("Code")
                if code == "ConditionalCheckFailed" and index < len(failures):
                    raise failures[index] from exc
            if any(reason.get("Code") == "TransactionConflict" for reason in reasons):
                raise ConflictError(
                    "Authentication write collided with a concurrent transaction."
                ) from exc
            raise self._unavailable(exc) from exc
        except BotoCoreError as exc:
            raise self._unavailable(exc) from exc

    def _get_item(self, key: Dict[str, str]) -> Optional[Dict[str, Any]]:
        try:
            response = self._client.get_item(
                TableName=self._table_name,
                Key=self._serialize(key),
                ConsistentRead=True,
            )
        except (BotoCoreError, ClientError) as exc:
            raise self._unavailable(exc) from exc
        item = response.get("Item")
        if not item:
            return None
        return self._deserialize(item)

    def _record_to_item(self, record: Authentication) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            **record_key(record.authentication_id),
            "gsi1pk": history_partition(record.merchant_id, record.payment_method_id),
            "gsi1sk": format_timestamp(record.created_at),
            "authentication_id": record.authentication_id,
            "merchant_id": record.merchant_id,
            "connector": record.connector.value,
            "payment_method_id": record.payment_method_id,
            "authentication_status": record.authentication_status.value,
            "lifecycle_status": record.lifecycle_status.value,
            "created_at": format_timestamp(record.created_at),
            "modified_at": format_timestamp(record.modified_at),
        }
        # DynamoDB rejects empty attributes, so optional fields are omitted.
        if record.connector_authentication_id is not None:
            item["connector_authentication_id"] = record.connector_authentication_id
        if record.authentication_data is not None:
            item["authentication_data"] = self._codec.encode(record.authentication_data)
        if record.authentication_type is not None:
            item["authentication_type"] = record.authentication_type.value
        return item

    def _item_to_record(self, item: Dict[str, Any]) -> Authentication:
        authentication_type = item.get("authentication_type")
        return Authentication(
            authentication_id=item["authentication_id"],
            merchant_id=item["merchant_id"],
            connector=Connector(item["connector"]),
            connector_authentication_id=item.get("connector_authentication_id"),
            authentication_data=self._codec.decode(item.get("authentication_data")),
            payment_method_id=item["payment_method_id"],
            authentication_type=(
                AuthenticationType(authentication_type) if authentication_type else None
            ),
            authentication_status=AuthenticationStatus(item["authentication_status"]),
            lifecycle_status=LifecycleStatus(item["lifecycle_status"]),
            created_at=datetime.fromisoformat(item["created_at"]),
            modified_at=datetime.fromisoformat(item["modified_at"]),
        )

    def _serialize(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return {key: self._serializer.serialize(value) for key, value in values.items()}

    def _deserialize(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return {key: self._deserializer.deserialize(value) for key, value in item.items()}

    @staticmethod
    def _conflict(record: Authentication) -> ConflictError:
        return ConflictError(
            f"Authentication {record.authentication_id} was modified concurrently.",
            authentication_id=record.authentication_id,
        )

    @staticmethod
    def _connector_id_taken(record: Authentication) -> AlreadyExistsError:
        return AlreadyExistsError(
            (
                f"Connector authentication id {record.connector_authentication_id} "
                f"is already attached to another {record.connector.value} "
                "authentication."
            ),
            authentication_id=record.authentication_id,
        )

    def _unavailable(self, exc: Exception) -> StorageUnavailableError:
        logger.error("DynamoDB failure on table %s: %s", self._table_name, exc)
        return StorageUnavailableError(f"DynamoDB request failed: {exc}")


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


__all__ = [
    "DynamoDBAuthenticationRepository",
    "active_guard_key",
    "connector_lookup_key",
    "history_partition",
    "record_key",
]
