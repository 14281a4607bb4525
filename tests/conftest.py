"""Shared pytest fixtures and configuration for all tests."""

import os

os.environ.setdefault("ENVIRONMENT", "test")

import pytest  # noqa: E402

from order_chatbot.repositories.memory_order_store import InMemoryOrderStore  # noqa: E402
from order_chatbot.services.catalog import Catalog, default_catalog  # noqa: E402


class FakeClock:
    """Manually advanced clock for debounce tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def device_id() -> str:
    """Fixture providing a standard test device identifier."""
    return "device-123"


@pytest.fixture
def catalog() -> Catalog:
    """Fixture providing the built-in catalog."""
    return default_catalog()


@pytest.fixture
def memory_store() -> InMemoryOrderStore:
    """Fixture providing an empty in-memory order store."""
    return InMemoryOrderStore()


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def catalog_records() -> list[dict]:
    """Fixture providing a small catalog as plain records."""
    return [
        {
            "id": 1,
            "name": "Coffee",
            "price": "3",
            "options": [
                {"id": 1, "name": "Regular", "price": "3"},
                {"id": 2, "name": "Large", "price": "4.50"},
            ],
        },
        {"id": 2, "name": "Muffin", "price": "2.25"},
    ]
