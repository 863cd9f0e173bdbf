"""
Realtime subscription registry.

Clients subscribe to a table plus an equality filter (e.g. recipient_user_id=eq.<me>);
committed inserts/updates on that table are delivered to every listener whose filter
matches. Listeners are registered when a client connects and unregistered when it
disconnects; nothing else holds channel state.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from theftwatch.core.constants import REALTIME_TABLES

logger = logging.getLogger(__name__)

Filter = tuple[tuple[str, str], ...]


@dataclass
class ChangeEvent:
    table: str
    type: str  # INSERT | UPDATE
    record: dict[str, Any]
    commit_timestamp: datetime | None = None

    def as_message(self) -> dict[str, Any]:
        return {
            "type": "change",
            "table": self.table,
            "event": self.type,
            "new": self.record,
            "commit_timestamp": self.commit_timestamp.isoformat() if self.commit_timestamp else None,
        }


def parse_filter(raw: str | None) -> Filter:
    """
    Parse 'col=eq.value' (several joined by '&' or ',') into a normalized filter.
    Only equality is supported.
    """
    if not raw:
        return ()
    pairs: list[tuple[str, str]] = []
    for part in raw.replace("&", ",").split(","):
        part = part.strip()
        if not part:
            continue
        column, sep, rhs = part.partition("=")
        if not sep or not rhs.startswith("eq."):
            raise ValueError(f"Unsupported filter {part!r}; use column=eq.value")
        pairs.append((column.strip(), rhs[len("eq."):]))
    return tuple(sorted(pairs))


def matches(filter_: Filter, record: dict[str, Any]) -> bool:
    for column, value in filter_:
        if column not in record or record[column] is None or str(record[column]) != value:
            return False
    return True


@dataclass(eq=False)
class Listener:
    """A subscriber handle. deliver() is safe to call from any thread."""

    table: str
    filter: Filter
    on_event: Callable[[ChangeEvent], None]
    # Extra per-listener predicate, e.g. report visibility at delivery time
    visible: Callable[[ChangeEvent], bool] | None = None
    id: int = field(default=0)

    def deliver(self, change: ChangeEvent) -> bool:
        if self.visible is not None and not self.visible(change):
            return False
        self.on_event(change)
        return True


class QueueListener(Listener):
    """Listener that hands events to an asyncio queue owned by the connection's event loop."""

    def __init__(self, table: str, filter_: Filter, visible=None) -> None:
        self.loop = asyncio.get_running_loop()
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        super().__init__(table=table, filter=filter_, on_event=self._enqueue, visible=visible)

    def _enqueue(self, change: ChangeEvent) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, change)

    async def get(self) -> ChangeEvent:
        return await self.queue.get()


class SubscriptionRegistry:
    """(table, filter) -> set of listeners, with explicit register/unregister."""

    def __init__(self) -> None:
        self._subscriptions: dict[tuple[str, Filter], set[Listener]] = {}
        self._lock = threading.Lock()
        self._next_id = 1

    def add(self, listener: Listener) -> Listener:
        if listener.table not in REALTIME_TABLES:
            raise ValueError(f"Table {listener.table!r} is not published; choose one of {REALTIME_TABLES}")
        with self._lock:
            listener.id = self._next_id
            self._next_id += 1
            self._subscriptions.setdefault((listener.table, listener.filter), set()).add(listener)
        logger.debug("Realtime listener %s registered on %s %s", listener.id, listener.table, listener.filter)
        return listener

    def register(
        self,
        table: str,
        filter_: Filter,
        on_event: Callable[[ChangeEvent], None],
        visible: Callable[[ChangeEvent], bool] | None = None,
    ) -> Listener:
        return self.add(Listener(table=table, filter=filter_, on_event=on_event, visible=visible))

    def unregister(self, listener: Listener) -> None:
        key = (listener.table, listener.filter)
        with self._lock:
            listeners = self._subscriptions.get(key)
            if not listeners:
                return
            listeners.discard(listener)
            if not listeners:
                self._subscriptions.pop(key, None)
        logger.debug("Realtime listener %s unregistered", listener.id)

    def listener_count(self, table: str | None = None) -> int:
        with self._lock:
            return sum(len(v) for (t, _), v in self._subscriptions.items() if table is None or t == table)

    def publish(self, change: ChangeEvent) -> int:
        """Deliver to every matching listener. Returns the number of deliveries."""
        with self._lock:
            targets = [
                listener
                for (table, filter_), listeners in self._subscriptions.items()
                if table == change.table and matches(filter_, change.record)
                for listener in listeners
            ]
        delivered = 0
        for listener in targets:
            try:
                if listener.deliver(change):
                    delivered += 1
            except Exception as e:
                logger.warning("Realtime delivery to listener %s failed: %s", listener.id, e)
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()


registry = SubscriptionRegistry()
