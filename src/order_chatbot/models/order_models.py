"""Order models.

These models represent the in-progress order held per device and the
immutable snapshots recorded at checkout, together with their DynamoDB
item representation.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OrderStatusEnum(str, Enum):
    """Enumeration of placed order status values."""

    PLACED = "placed"


class OrderLine(BaseModel):
    """Single line of an order.

    Lines are identified by (item_id, name): adding the same item and
    resolved name again increments the quantity.
    """

    model_config = ConfigDict(frozen=True)

    item_id: int = Field(..., description="Catalog item identifier", gt=0)
    name: str = Field(..., description="Resolved display name, including any option")
    price: Decimal = Field(..., description="Unit price", ge=0)
    quantity: int = Field(default=1, description="Number of units", gt=0)

    @property
    def line_key(self) -> tuple[int, str]:
        return (self.item_id, self.name)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB map format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        return {
            "item_id": self.item_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "OrderLine":
        """Create OrderLine from a DynamoDB map.

        Args:
            item: DynamoDB map dictionary

        Returns:
            OrderLine: Parsed model instance
        """
        return cls(
            item_id=int(item["item_id"]),
            name=item["name"],
            price=Decimal(str(item["price"])),
            quantity=int(item["quantity"]),
        )


def merge_line(lines: list[OrderLine], item_id: int, name: str, price: Decimal) -> list[OrderLine]:
    """Return a new line sequence with one more unit of (item_id, name).

    Args:
        lines: Current order lines
        item_id: Catalog item identifier
        name: Resolved display name
        price: Unit price used when a new line is appended

    Returns:
        list: Updated copy of the lines; the input is left untouched
    """
    updated: list[OrderLine] = []
    merged = False
    for line in lines:
        if not merged and line.line_key == (item_id, name):
            updated.append(line.model_copy(update={"quantity": line.quantity + 1}))
            merged = True
        else:
            updated.append(line)

    if not merged:
        updated.append(OrderLine(item_id=item_id, name=name, price=price, quantity=1))

    return updated


class SessionOrder(BaseModel):
    """Persisted current order for a device.

    Stored in DynamoDB with device_id as partition key. The version
    counter increases with every write and guards concurrent writers.
    """

    device_id: str = Field(..., description="Device identifier", min_length=1)
    lines: list[OrderLine] = Field(default_factory=list, description="Current order lines")
    version: int = Field(default=0, description="Write counter", ge=0)
    created_at: datetime = Field(..., description="Session creation timestamp")

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        return {
            "device_id": self.device_id,
            "lines": [line.to_dynamodb_item() for line in self.lines],
            "version": self.version,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "SessionOrder":
        """Create SessionOrder from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            SessionOrder: Parsed model instance
        """
        return cls(
            device_id=item["device_id"],
            lines=[OrderLine.from_dynamodb_item(line) for line in item.get("lines", [])],
            version=int(item.get("version", 0)),
            created_at=datetime.fromisoformat(item["created_at"]),
        )


class PlacedOrder(BaseModel):
    """Immutable snapshot of a current order taken at checkout.

    Stored in DynamoDB with (device_id, order_id) as composite key.
    """

    model_config = ConfigDict(frozen=True)

    order_id: int = Field(..., description="Sequential order identifier", gt=0)
    device_id: str = Field(..., description="Device identifier")
    lines: tuple[OrderLine, ...] = Field(..., description="Ordered lines", min_length=1)
    status: OrderStatusEnum = Field(default=OrderStatusEnum.PLACED, description="Order status")
    created_at: datetime = Field(..., description="Checkout timestamp")

    @property
    def total(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        return {
            "device_id": self.device_id,
            "order_id": self.order_id,
            "lines": [line.to_dynamodb_item() for line in self.lines],
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "PlacedOrder":
        """Create PlacedOrder from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            PlacedOrder: Parsed model instance
        """
        return cls(
            order_id=int(item["order_id"]),
            device_id=item["device_id"],
            lines=tuple(OrderLine.from_dynamodb_item(line) for line in item["lines"]),
            status=OrderStatusEnum(item["status"]),
            created_at=datetime.fromisoformat(item["created_at"]),
        )
