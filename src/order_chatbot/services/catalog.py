"""Static catalog lookup and menu rendering."""

import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from order_chatbot.models.catalog_models import CatalogItem, CatalogOption

logger = logging.getLogger(__name__)

_ITEMS_ADAPTER = TypeAdapter(list[CatalogItem])


def format_price(price: Decimal) -> str:
    """Render a price as shown to users, e.g. ``$10`` or ``$2.50``."""
    return f"${price}"


class Catalog:
    """Immutable in-memory catalog of orderable items.

    Items keep their declaration order for rendering; lookups are by id.
    """

    def __init__(self, items: list[CatalogItem]) -> None:
        """Initialize the catalog.

        Args:
            items: Catalog items in display order

        Raises:
            ValueError: If the catalog is empty or item ids are not unique
        """
        if not items:
            raise ValueError("Catalog must contain at least one item")

        self._items: tuple[CatalogItem, ...] = tuple(items)
        self._by_id: dict[int, CatalogItem] = {}
        for item in self._items:
            if item.id in self._by_id:
                raise ValueError(f"Duplicate catalog item id: {item.id}")
            self._by_id[item.id] = item

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> "Catalog":
        """Build a catalog from plain dictionaries, validating every field."""
        return cls(_ITEMS_ADAPTER.validate_python(records))

    @classmethod
    def from_json_file(cls, path: str | Path) -> "Catalog":
        """Load a catalog from a JSON file holding a list of items.

        Args:
            path: Path to the JSON file

        Returns:
            Catalog: Validated catalog

        Raises:
            ValueError: If the file content is not a valid catalog
        """
        raw = Path(path).read_text(encoding="utf-8")
        records = json.loads(raw, parse_float=Decimal)
        if not isinstance(records, list):
            raise ValueError("Catalog file must contain a JSON list of items")

        catalog = cls.from_records(records)
        logger.info(f"Loaded catalog with {len(catalog.items)} items from {path}")
        return catalog

    @property
    def items(self) -> tuple[CatalogItem, ...]:
        return self._items

    def lookup_item(self, item_id: int) -> CatalogItem | None:
        return self._by_id.get(item_id)

    def lookup_option(self, item_id: int, option_id: int) -> CatalogOption | None:
        item = self._by_id.get(item_id)
        if item is None:
            return None
        for option in item.options:
            if option.id == option_id:
                return option
        return None

    def formatted_menu(self) -> str:
        """Render every item as ``id: name ($price)``, options indented below it."""
        lines: list[str] = []
        for item in self._items:
            lines.append(f"{item.id}: {item.name} ({format_price(item.price)})")
            for option in item.options:
                lines.append(f"  {option.id}: {option.name} ({format_price(option.price)})")
        return "\n".join(lines)

    def formatted_sub_menu(self, item_id: int) -> str | None:
        """Render the options of one item, or None if it has none."""
        item = self._by_id.get(item_id)
        if item is None or not item.has_options:
            return None
        return "\n".join(
            f"{option.id}: {option.name} ({format_price(option.price)})" for option in item.options
        )


DEFAULT_CATALOG_RECORDS: list[dict[str, Any]] = [
    {
        "id": 1,
        "name": "Pizza",
        "price": Decimal("10"),
        "options": [
            {"id": 1, "name": "Small", "price": Decimal("10")},
            {"id": 2, "name": "Large", "price": Decimal("15")},
        ],
    },
    {"id": 2, "name": "Burger", "price": Decimal("8")},
    {"id": 3, "name": "Salad", "price": Decimal("6")},
    {"id": 4, "name": "Pasta", "price": Decimal("12")},
    {"id": 5, "name": "Soda", "price": Decimal("3")},
]


def default_catalog() -> Catalog:
    """Return the built-in restaurant catalog."""
    return Catalog.from_records(DEFAULT_CATALOG_RECORDS)
