"""DynamoDB order store.

Session orders live in a table keyed by device_id; placed orders in a
table keyed by (device_id, order_id). A counter item in the orders table
(order_id 0) hands out sequential order ids.

Writes to a session record are serialized per device with an asyncio lock
and guarded by a version condition so that writers in other processes
cannot cause lost updates. Checkout is a single DynamoDB transaction.
"""

import asyncio
import logging
import weakref
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from order_chatbot.exceptions import OrderStoreError
from order_chatbot.models.order_models import (
    OrderLine,
    OrderStatusEnum,
    PlacedOrder,
    SessionOrder,
    merge_line,
)
from order_chatbot.observability import traced
from order_chatbot.repositories.base_store import DEFAULT_HISTORY_LIMIT, OrderStore

logger = logging.getLogger(__name__)

ORDER_SEQUENCE_KEY = "#order-sequence"
CONDITION_FAILED = "ConditionalCheckFailedException"
TRANSACTION_CANCELED = "TransactionCanceledException"


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class _VersionConflict(Exception):
    """Session record changed between read and conditional write."""


class DynamoDBOrderStore(OrderStore):
    """Order store backed by two DynamoDB tables."""

    def __init__(
        self,
        dynamodb_resource: DynamoDBServiceResource,
        sessions_table_name: str,
        orders_table_name: str,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        max_write_attempts: int = 3,
    ) -> None:
        """Initialize store.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            sessions_table_name: Name of the session-order table
            orders_table_name: Name of the placed-order table
            history_limit: Maximum number of placed orders listed per device
            max_write_attempts: Attempts per write when a version conflict occurs
        """
        super().__init__(history_limit=history_limit)
        self.dynamodb = dynamodb_resource
        self.sessions_table_name = sessions_table_name
        self.orders_table_name = orders_table_name
        self.sessions_table: Table = dynamodb_resource.Table(sessions_table_name)
        self.orders_table: Table = dynamodb_resource.Table(orders_table_name)
        self.max_write_attempts = max_write_attempts
        self._serializer = TypeSerializer()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, device_id: str) -> asyncio.Lock:
        lock = self._locks.get(device_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[device_id] = lock
        return lock

    async def ensure_session(self, device_id: str) -> None:
        session = SessionOrder(device_id=device_id, created_at=datetime.now(UTC))
        try:
            await asyncio.to_thread(
                self.sessions_table.put_item,
                Item=session.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(device_id)",
            )
            logger.info(f"Created session record for device {device_id}")
        except ClientError as e:
            if _error_code(e) == CONDITION_FAILED:
                return
            logger.error(f"Failed to ensure session for {device_id}: {e}")
            raise OrderStoreError(f"Failed to ensure session for {device_id}") from e

    async def session_exists(self, device_id: str) -> bool:
        try:
            response = await asyncio.to_thread(
                self.sessions_table.get_item,
                Key={"device_id": device_id},
                ProjectionExpression="device_id",
            )
        except ClientError as e:
            logger.error(f"Failed to check session for {device_id}: {e}")
            raise OrderStoreError(f"Failed to check session for {device_id}") from e
        return "Item" in response

    async def get_current_order(self, device_id: str) -> list[OrderLine]:
        session = await asyncio.to_thread(self._read_session, device_id)
        return list(session.lines) if session else []

    @traced("order_store.add_line", service_name="order-chatbot")
    async def add_line(
        self, device_id: str, item_id: int, name: str, price: Decimal
    ) -> list[OrderLine]:
        lock = self._lock_for(device_id)
        async with lock:
            for attempt in range(1, self.max_write_attempts + 1):
                session = await asyncio.to_thread(self._read_session, device_id)
                expected_version = session.version if session else None
                if session is None:
                    session = SessionOrder(device_id=device_id, created_at=datetime.now(UTC))

                updated = session.model_copy(
                    update={
                        "lines": merge_line(session.lines, item_id, name, price),
                        "version": session.version + 1,
                    }
                )
                try:
                    await asyncio.to_thread(self._write_session, updated, expected_version)
                    return list(updated.lines)
                except _VersionConflict:
                    logger.warning(
                        f"Version conflict adding line for {device_id} (attempt {attempt})"
                    )

        raise OrderStoreError(f"Could not add line for {device_id} after concurrent updates")

    async def clear_current_order(self, device_id: str) -> None:
        lock = self._lock_for(device_id)
        async with lock:
            for attempt in range(1, self.max_write_attempts + 1):
                session = await asyncio.to_thread(self._read_session, device_id)
                if session is None or not session.lines:
                    return

                cleared = session.model_copy(update={"lines": [], "version": session.version + 1})
                try:
                    await asyncio.to_thread(self._write_session, cleared, session.version)
                    return
                except _VersionConflict:
                    logger.warning(
                        f"Version conflict clearing order for {device_id} (attempt {attempt})"
                    )

        raise OrderStoreError(f"Could not clear order for {device_id} after concurrent updates")

    @traced("order_store.place_order", service_name="order-chatbot")
    async def place_order(self, device_id: str) -> PlacedOrder | None:
        lock = self._lock_for(device_id)
        async with lock:
            for attempt in range(1, self.max_write_attempts + 1):
                session = await asyncio.to_thread(self._read_session, device_id)
                if session is None or not session.lines:
                    return None

                order_id = await asyncio.to_thread(self._next_order_id)
                order = PlacedOrder(
                    order_id=order_id,
                    device_id=device_id,
                    lines=tuple(session.lines),
                    status=OrderStatusEnum.PLACED,
                    created_at=datetime.now(UTC),
                )
                try:
                    await asyncio.to_thread(self._write_checkout, order, session.version)
                    logger.info(f"Placed order {order_id} for device {device_id}")
                    return order
                except _VersionConflict:
                    logger.warning(
                        f"Version conflict placing order for {device_id} (attempt {attempt})"
                    )

        raise OrderStoreError(f"Could not place order for {device_id} after concurrent updates")

    async def list_placed_orders(self, device_id: str) -> list[PlacedOrder]:
        try:
            response = await asyncio.to_thread(
                self.orders_table.query,
                KeyConditionExpression="device_id = :did AND order_id > :zero",
                ExpressionAttributeValues={":did": device_id, ":zero": 0},
                ScanIndexForward=False,  # Most recent first
                Limit=self.history_limit,
            )
        except ClientError as e:
            logger.error(f"Failed to list placed orders for {device_id}: {e}")
            raise OrderStoreError(f"Failed to list placed orders for {device_id}") from e

        return [PlacedOrder.from_dynamodb_item(item) for item in response.get("Items", [])]

    async def purge_expired_sessions(self, cutoff: datetime) -> int:
        return await asyncio.to_thread(self._purge_sessions, cutoff)

    def _read_session(self, device_id: str) -> SessionOrder | None:
        try:
            response = self.sessions_table.get_item(
                Key={"device_id": device_id}, ConsistentRead=True
            )
        except ClientError as e:
            logger.error(f"Failed to read session for {device_id}: {e}")
            raise OrderStoreError(f"Failed to read session for {device_id}") from e

        if "Item" not in response:
            return None
        return SessionOrder.from_dynamodb_item(response["Item"])

    def _write_session(self, session: SessionOrder, expected_version: int | None) -> None:
        if expected_version is None:
            condition: dict[str, Any] = {
                "ConditionExpression": "attribute_not_exists(device_id)",
            }
        else:
            condition = {
                "ConditionExpression": "#version = :expected",
                "ExpressionAttributeNames": {"#version": "version"},
                "ExpressionAttributeValues": {":expected": expected_version},
            }

        try:
            self.sessions_table.put_item(Item=session.to_dynamodb_item(), **condition)
        except ClientError as e:
            if _error_code(e) == CONDITION_FAILED:
                raise _VersionConflict() from e
            logger.error(f"Failed to write session for {session.device_id}: {e}")
            raise OrderStoreError(f"Failed to write session for {session.device_id}") from e

    def _next_order_id(self) -> int:
        try:
            response = self.orders_table.update_item(
                Key={"device_id": ORDER_SEQUENCE_KEY, "order_id": 0},
                UpdateExpression="ADD last_order_id :one",
                ExpressionAttributeValues={":one": 1},
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as e:
            logger.error(f"Failed to allocate order id: {e}")
            raise OrderStoreError("Failed to allocate order id") from e

        return int(response["Attributes"]["last_order_id"])

    def _write_checkout(self, order: PlacedOrder, expected_version: int) -> None:
        serialize = self._serializer.serialize
        transact_items = [
            {
                "Put": {
                    "TableName": self.orders_table_name,
                    "Item": {k: serialize(v) for k, v in order.to_dynamodb_item().items()},
                    "ConditionExpression": "attribute_not_exists(order_id)",
                }
            },
            {
                "Update": {
                    "TableName": self.sessions_table_name,
                    "Key": {"device_id": serialize(order.device_id)},
                    "UpdateExpression": "SET #lines = :empty, #version = :next",
                    "ConditionExpression": "#version = :expected",
                    "ExpressionAttributeNames": {"#lines": "lines", "#version": "version"},
                    "ExpressionAttributeValues": {
                        ":empty": serialize([]),
                        ":next": serialize(expected_version + 1),
                        ":expected": serialize(expected_version),
                    },
                }
            },
        ]

        try:
            self.dynamodb.meta.client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if _error_code(e) == TRANSACTION_CANCELED:
                raise _VersionConflict() from e
            logger.error(f"Failed to place order for {order.device_id}: {e}")
            raise OrderStoreError(f"Failed to place order for {order.device_id}") from e

    def _purge_sessions(self, cutoff: datetime) -> int:
        scan_kwargs: dict[str, Any] = {
            "FilterExpression": "created_at < :cutoff",
            "ExpressionAttributeValues": {":cutoff": cutoff.isoformat()},
            "ProjectionExpression": "device_id",
        }
        purged = 0
        try:
            with self.sessions_table.batch_writer() as batch:
                while True:
                    response = self.sessions_table.scan(**scan_kwargs)
                    for item in response.get("Items", []):
                        batch.delete_item(Key={"device_id": item["device_id"]})
                        purged += 1

                    last_key = response.get("LastEvaluatedKey")
                    if not last_key:
                        break
                    scan_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            logger.error(f"Failed to purge expired sessions: {e}")
            raise OrderStoreError("Failed to purge expired sessions") from e

        return purged
