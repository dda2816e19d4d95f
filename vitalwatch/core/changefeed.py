"""
In-process change notifications for stored rows.

Writers publish every insert/update; readers hold a `Subscription` whose queue they
drain at their own pace. Delivery is best-effort: a subscriber whose queue is full
misses the event (the heartbeat poll in the device monitor catches up).
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

log = structlog.get_logger()


class ChangeEventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    ALL = "*"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: ChangeEventType
    record: dict[str, Any]


@dataclass(eq=False)
class Subscription:
    table: str
    event: ChangeEventType = ChangeEventType.ALL
    column_filter: dict[str, Any] | None = None
    maxsize: int = 100
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    closed: bool = False
    dropped: int = 0

    def __post_init__(self) -> None:
        # None is the end-of-stream marker
        self.queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue(maxsize=self.maxsize)

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.event != ChangeEventType.ALL and event.type != self.event:
            return False
        if self.column_filter:
            for column, expected in self.column_filter.items():
                if event.record.get(column) != expected:
                    return False
        return True

    def offer(self, event: ChangeEvent) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        while True:
            try:
                self.queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self.queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class ChangeFeed:
    """Fan row changes out to every matching subscription."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        table: str,
        event: ChangeEventType = ChangeEventType.ALL,
        column_filter: dict[str, Any] | None = None,
    ) -> Subscription:
        subscription = Subscription(
            table=table,
            event=event,
            column_filter=dict(column_filter) if column_filter else None,
            maxsize=self._queue_size,
        )
        self._subscriptions[subscription.id] = subscription
        log.debug("change feed subscribed", table=table, event_type=event.value, filter=column_filter)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)
        subscription.close()

    def publish(
        self, table: str, event_type: ChangeEventType, record: dict[str, Any]
    ) -> int:
        event = ChangeEvent(table=table, type=event_type, record=record)
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if not subscription.matches(event):
                continue
            if subscription.offer(event):
                delivered += 1
            else:
                log.warning(
                    "change feed subscriber lagging",
                    table=table,
                    subscription_id=subscription.id,
                    dropped=subscription.dropped,
                )
        return delivered

    def close(self) -> None:
        for subscription in list(self._subscriptions.values()):
            subscription.close()
        self._subscriptions.clear()
