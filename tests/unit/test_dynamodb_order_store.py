"""Unit tests for DynamoDBOrderStore."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from order_chatbot.exceptions import OrderStoreError
from order_chatbot.models.order_models import OrderLine, OrderStatusEnum
from order_chatbot.repositories.dynamodb_order_store import ORDER_SEQUENCE_KEY, DynamoDBOrderStore


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def session_item(device_id: str, lines: list[dict], version: int) -> dict:
    return {
        "device_id": device_id,
        "lines": lines,
        "version": Decimal(version),
        "created_at": "2024-01-15T10:30:00+00:00",
    }


BURGER = {"item_id": Decimal("2"), "name": "Burger", "price": Decimal("8"), "quantity": Decimal("1")}


@pytest.mark.unit
class TestDynamoDBOrderStore:
    """Test suite for DynamoDBOrderStore."""

    @pytest.fixture
    def sessions_table(self) -> MagicMock:
        """Create a mock session-order table."""
        return MagicMock()

    @pytest.fixture
    def orders_table(self) -> MagicMock:
        """Create a mock placed-order table."""
        return MagicMock()

    @pytest.fixture
    def mock_dynamodb(self, sessions_table: MagicMock, orders_table: MagicMock) -> MagicMock:
        """Create a mock DynamoDB resource returning the two tables."""
        resource = MagicMock()
        tables = {"test-sessions": sessions_table, "test-orders": orders_table}
        resource.Table.side_effect = lambda name: tables[name]
        return resource

    @pytest.fixture
    def store(self, mock_dynamodb: MagicMock) -> DynamoDBOrderStore:
        """Create a store with mocked DynamoDB."""
        return DynamoDBOrderStore(
            dynamodb_resource=mock_dynamodb,
            sessions_table_name="test-sessions",
            orders_table_name="test-orders",
        )

    def test_store_initialization(self, store: DynamoDBOrderStore, mock_dynamodb: MagicMock) -> None:
        """Test that store initializes both tables."""
        assert store.sessions_table_name == "test-sessions"
        assert store.orders_table_name == "test-orders"
        assert store.history_limit == 5
        mock_dynamodb.Table.assert_any_call("test-sessions")
        mock_dynamodb.Table.assert_any_call("test-orders")

    @pytest.mark.asyncio
    async def test_ensure_session_creates_record(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that ensure_session writes an empty session conditionally."""
        await store.ensure_session("device-1")

        kwargs = sessions_table.put_item.call_args.kwargs
        assert kwargs["Item"]["device_id"] == "device-1"
        assert kwargs["Item"]["lines"] == []
        assert kwargs["ConditionExpression"] == "attribute_not_exists(device_id)"

    @pytest.mark.asyncio
    async def test_ensure_session_existing_record(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that an existing session is left untouched without error."""
        sessions_table.put_item.side_effect = client_error(
            "ConditionalCheckFailedException", "PutItem"
        )

        await store.ensure_session("device-1")

    @pytest.mark.asyncio
    async def test_ensure_session_dynamodb_error(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that unexpected DynamoDB errors raise OrderStoreError."""
        sessions_table.put_item.side_effect = client_error("InternalServerError", "PutItem")

        with pytest.raises(OrderStoreError):
            await store.ensure_session("device-1")

    @pytest.mark.asyncio
    async def test_session_exists(self, store: DynamoDBOrderStore, sessions_table: MagicMock) -> None:
        """Test session existence checks."""
        sessions_table.get_item.return_value = {"Item": {"device_id": "device-1"}}
        assert await store.session_exists("device-1") is True

        sessions_table.get_item.return_value = {}
        assert await store.session_exists("device-1") is False

    @pytest.mark.asyncio
    async def test_get_current_order(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that the stored lines are parsed."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [BURGER], 1)}

        lines = await store.get_current_order("device-1")

        assert lines == [OrderLine(item_id=2, name="Burger", price=Decimal("8"), quantity=1)]
        assert sessions_table.get_item.call_args.kwargs["ConsistentRead"] is True

    @pytest.mark.asyncio
    async def test_get_current_order_missing(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that a missing session reads as an empty order."""
        sessions_table.get_item.return_value = {}

        assert await store.get_current_order("device-1") == []

    @pytest.mark.asyncio
    async def test_get_current_order_dynamodb_error(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that read failures raise OrderStoreError."""
        sessions_table.get_item.side_effect = client_error("InternalServerError", "GetItem")

        with pytest.raises(OrderStoreError):
            await store.get_current_order("device-1")

    @pytest.mark.asyncio
    async def test_add_line_merges_and_checks_version(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that add_line merges quantities and writes conditionally on version."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [BURGER], 2)}

        lines = await store.add_line("device-1", 2, "Burger", Decimal("8"))

        assert lines[0].quantity == 2
        kwargs = sessions_table.put_item.call_args.kwargs
        assert kwargs["Item"]["version"] == 3
        assert kwargs["Item"]["lines"][0]["quantity"] == 2
        assert kwargs["ConditionExpression"] == "#version = :expected"
        assert kwargs["ExpressionAttributeValues"] == {":expected": 2}

    @pytest.mark.asyncio
    async def test_add_line_without_session_creates_it(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that add_line on a missing record creates it conditionally."""
        sessions_table.get_item.return_value = {}

        lines = await store.add_line("device-1", 5, "Soda", Decimal("3"))

        assert lines == [OrderLine(item_id=5, name="Soda", price=Decimal("3"))]
        kwargs = sessions_table.put_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "attribute_not_exists(device_id)"

    @pytest.mark.asyncio
    async def test_add_line_retries_on_version_conflict(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that a version conflict re-reads the record and retries."""
        sessions_table.get_item.side_effect = [
            {"Item": session_item("device-1", [], 1)},
            {"Item": session_item("device-1", [BURGER], 2)},
        ]
        sessions_table.put_item.side_effect = [
            client_error("ConditionalCheckFailedException", "PutItem"),
            None,
        ]

        lines = await store.add_line("device-1", 2, "Burger", Decimal("8"))

        assert lines[0].quantity == 2
        assert sessions_table.put_item.call_count == 2

    @pytest.mark.asyncio
    async def test_add_line_gives_up_after_max_attempts(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that persistent conflicts raise OrderStoreError."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [], 1)}
        sessions_table.put_item.side_effect = client_error(
            "ConditionalCheckFailedException", "PutItem"
        )

        with pytest.raises(OrderStoreError):
            await store.add_line("device-1", 2, "Burger", Decimal("8"))

        assert sessions_table.put_item.call_count == store.max_write_attempts

    @pytest.mark.asyncio
    async def test_add_line_dynamodb_error(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that unexpected write errors raise OrderStoreError without retry."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [], 1)}
        sessions_table.put_item.side_effect = client_error("InternalServerError", "PutItem")

        with pytest.raises(OrderStoreError):
            await store.add_line("device-1", 2, "Burger", Decimal("8"))

        assert sessions_table.put_item.call_count == 1

    @pytest.mark.asyncio
    async def test_clear_current_order(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that clearing writes an empty line list."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [BURGER], 4)}

        await store.clear_current_order("device-1")

        kwargs = sessions_table.put_item.call_args.kwargs
        assert kwargs["Item"]["lines"] == []
        assert kwargs["ExpressionAttributeValues"] == {":expected": 4}

    @pytest.mark.asyncio
    async def test_clear_empty_order_is_noop(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that clearing an empty order writes nothing."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [], 4)}

        await store.clear_current_order("device-1")

        sessions_table.put_item.assert_not_called()

    @pytest.mark.asyncio
    async def test_place_order_empty(
        self,
        store: DynamoDBOrderStore,
        sessions_table: MagicMock,
        orders_table: MagicMock,
        mock_dynamodb: MagicMock,
    ) -> None:
        """Test that an empty order is not placed."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [], 1)}

        assert await store.place_order("device-1") is None
        orders_table.update_item.assert_not_called()
        mock_dynamodb.meta.client.transact_write_items.assert_not_called()

    @pytest.mark.asyncio
    async def test_place_order_writes_single_transaction(
        self,
        store: DynamoDBOrderStore,
        sessions_table: MagicMock,
        orders_table: MagicMock,
        mock_dynamodb: MagicMock,
    ) -> None:
        """Test that checkout records the order and clears the session in one transaction."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [BURGER], 2)}
        orders_table.update_item.return_value = {"Attributes": {"last_order_id": Decimal("42")}}

        order = await store.place_order("device-1")

        assert order is not None
        assert order.order_id == 42
        assert order.status == OrderStatusEnum.PLACED
        assert list(order.lines) == [OrderLine(item_id=2, name="Burger", price=Decimal("8"))]

        counter_kwargs = orders_table.update_item.call_args.kwargs
        assert counter_kwargs["Key"] == {"device_id": ORDER_SEQUENCE_KEY, "order_id": 0}

        transact_items = mock_dynamodb.meta.client.transact_write_items.call_args.kwargs[
            "TransactItems"
        ]
        put, update = transact_items[0]["Put"], transact_items[1]["Update"]
        assert put["TableName"] == "test-orders"
        assert put["Item"]["order_id"] == {"N": "42"}
        assert put["Item"]["status"] == {"S": "placed"}
        assert update["TableName"] == "test-sessions"
        assert update["Key"] == {"device_id": {"S": "device-1"}}
        assert update["ExpressionAttributeValues"][":empty"] == {"L": []}
        assert update["ExpressionAttributeValues"][":expected"] == {"N": "2"}
        assert update["ExpressionAttributeValues"][":next"] == {"N": "3"}

    @pytest.mark.asyncio
    async def test_place_order_retries_on_cancelled_transaction(
        self,
        store: DynamoDBOrderStore,
        sessions_table: MagicMock,
        orders_table: MagicMock,
        mock_dynamodb: MagicMock,
    ) -> None:
        """Test that a cancelled transaction is retried with a fresh read."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [BURGER], 2)}
        orders_table.update_item.side_effect = [
            {"Attributes": {"last_order_id": Decimal("1")}},
            {"Attributes": {"last_order_id": Decimal("2")}},
        ]
        mock_dynamodb.meta.client.transact_write_items.side_effect = [
            client_error("TransactionCanceledException", "TransactWriteItems"),
            None,
        ]

        order = await store.place_order("device-1")

        assert order is not None
        assert order.order_id == 2

    @pytest.mark.asyncio
    async def test_place_order_transaction_error(
        self,
        store: DynamoDBOrderStore,
        sessions_table: MagicMock,
        orders_table: MagicMock,
        mock_dynamodb: MagicMock,
    ) -> None:
        """Test that unexpected transaction errors raise OrderStoreError."""
        sessions_table.get_item.return_value = {"Item": session_item("device-1", [BURGER], 2)}
        orders_table.update_item.return_value = {"Attributes": {"last_order_id": Decimal("1")}}
        mock_dynamodb.meta.client.transact_write_items.side_effect = client_error(
            "InternalServerError", "TransactWriteItems"
        )

        with pytest.raises(OrderStoreError):
            await store.place_order("device-1")

    @pytest.mark.asyncio
    async def test_list_placed_orders(self, store: DynamoDBOrderStore, orders_table: MagicMock) -> None:
        """Test that history is queried newest first with the configured bound."""
        orders_table.query.return_value = {
            "Items": [
                {
                    "device_id": "device-1",
                    "order_id": Decimal("9"),
                    "lines": [BURGER],
                    "status": "placed",
                    "created_at": datetime(2024, 1, 15, tzinfo=UTC).isoformat(),
                }
            ]
        }

        orders = await store.list_placed_orders("device-1")

        assert [order.order_id for order in orders] == [9]
        kwargs = orders_table.query.call_args.kwargs
        assert kwargs["ScanIndexForward"] is False
        assert kwargs["Limit"] == 5
        assert kwargs["ExpressionAttributeValues"] == {":did": "device-1", ":zero": 0}

    @pytest.mark.asyncio
    async def test_list_placed_orders_dynamodb_error(
        self, store: DynamoDBOrderStore, orders_table: MagicMock
    ) -> None:
        """Test that query failures raise OrderStoreError."""
        orders_table.query.side_effect = client_error("InternalServerError", "Query")

        with pytest.raises(OrderStoreError):
            await store.list_placed_orders("device-1")

    @pytest.mark.asyncio
    async def test_purge_expired_sessions_paginates(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that purging follows scan pages and deletes every match."""
        sessions_table.scan.side_effect = [
            {"Items": [{"device_id": "a"}, {"device_id": "b"}], "LastEvaluatedKey": {"device_id": "b"}},
            {"Items": [{"device_id": "c"}]},
        ]
        batch = sessions_table.batch_writer.return_value.__enter__.return_value
        cutoff = datetime(2024, 1, 15, tzinfo=UTC)

        purged = await store.purge_expired_sessions(cutoff)

        assert purged == 3
        assert batch.delete_item.call_count == 3
        first_scan = sessions_table.scan.call_args_list[0].kwargs
        assert first_scan["ExpressionAttributeValues"] == {":cutoff": cutoff.isoformat()}
        second_scan = sessions_table.scan.call_args_list[1].kwargs
        assert second_scan["ExclusiveStartKey"] == {"device_id": "b"}

    @pytest.mark.asyncio
    async def test_purge_dynamodb_error(
        self, store: DynamoDBOrderStore, sessions_table: MagicMock
    ) -> None:
        """Test that scan failures raise OrderStoreError."""
        sessions_table.scan.side_effect = client_error("InternalServerError", "Scan")

        with pytest.raises(OrderStoreError):
            await store.purge_expired_sessions(datetime.now(UTC))
