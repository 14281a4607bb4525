"""Process-local order store for development and single-instance deployments."""

import asyncio
import itertools
import logging
from collections import defaultdict
from datetime import UTC, datetime
from decimal import Decimal

from order_chatbot.models.order_models import (
    OrderLine,
    OrderStatusEnum,
    PlacedOrder,
    SessionOrder,
    merge_line,
)
from order_chatbot.repositories.base_store import DEFAULT_HISTORY_LIMIT, OrderStore

logger = logging.getLogger(__name__)


class InMemoryOrderStore(OrderStore):
    """Order store keeping all records in process memory.

    Data does not survive a restart. A single lock guards every mutation,
    which keeps read-modify-write and place-and-clear atomic.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        super().__init__(history_limit=history_limit)
        self._sessions: dict[str, SessionOrder] = {}
        self._orders: dict[str, list[PlacedOrder]] = defaultdict(list)
        self._order_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def ensure_session(self, device_id: str) -> None:
        async with self._lock:
            if device_id not in self._sessions:
                self._sessions[device_id] = SessionOrder(
                    device_id=device_id, created_at=datetime.now(UTC)
                )
                logger.info(f"Created session record for device {device_id}")

    async def session_exists(self, device_id: str) -> bool:
        return device_id in self._sessions

    async def get_current_order(self, device_id: str) -> list[OrderLine]:
        session = self._sessions.get(device_id)
        return list(session.lines) if session else []

    async def add_line(
        self, device_id: str, item_id: int, name: str, price: Decimal
    ) -> list[OrderLine]:
        async with self._lock:
            session = self._sessions.get(device_id) or SessionOrder(
                device_id=device_id, created_at=datetime.now(UTC)
            )
            updated = session.model_copy(
                update={
                    "lines": merge_line(session.lines, item_id, name, price),
                    "version": session.version + 1,
                }
            )
            self._sessions[device_id] = updated
            return list(updated.lines)

    async def clear_current_order(self, device_id: str) -> None:
        async with self._lock:
            session = self._sessions.get(device_id)
            if session and session.lines:
                self._sessions[device_id] = session.model_copy(
                    update={"lines": [], "version": session.version + 1}
                )

    async def place_order(self, device_id: str) -> PlacedOrder | None:
        async with self._lock:
            session = self._sessions.get(device_id)
            if session is None or not session.lines:
                return None

            order = PlacedOrder(
                order_id=next(self._order_ids),
                device_id=device_id,
                lines=tuple(session.lines),
                status=OrderStatusEnum.PLACED,
                created_at=datetime.now(UTC),
            )
            self._orders[device_id].append(order)
            self._sessions[device_id] = session.model_copy(
                update={"lines": [], "version": session.version + 1}
            )
            logger.info(f"Placed order {order.order_id} for device {device_id}")
            return order

    async def list_placed_orders(self, device_id: str) -> list[PlacedOrder]:
        orders = self._orders.get(device_id, [])
        return list(reversed(orders))[: self.history_limit]

    async def purge_expired_sessions(self, cutoff: datetime) -> int:
        async with self._lock:
            expired = [
                device_id
                for device_id, session in self._sessions.items()
                if session.created_at < cutoff
            ]
            for device_id in expired:
                del self._sessions[device_id]
            return len(expired)
