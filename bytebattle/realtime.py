"""
Realtime change feed.

Database writes publish row-level change events; subscribers register a
channel with a table/event/filter binding and receive matching events.
An in-memory feed dispatches synchronously for tests/local runs and a
Redis pub/sub feed fans events out across processes.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional, Protocol

import redis

logger = logging.getLogger(__name__)

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")


@dataclass
class ChangeEvent:
    table: str
    event_type: str
    new: Optional[dict] = None
    old: Optional[dict] = None
    schema: str = "public"
    commit_timestamp: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict) -> "ChangeEvent":
        return cls(**payload)


ChangeCallback = Callable[[ChangeEvent], None]


@dataclass(frozen=True)
class Binding:
    """Which events a channel listens for; ``event`` may be ``*``."""

    table: str
    event: str = "*"
    filter: Optional[str] = None

    def __post_init__(self):
        if self.event != "*" and self.event not in EVENT_TYPES:
            raise ValueError(f"unknown event type: {self.event}")
        if self.filter is not None:
            parse_filter(self.filter)

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.event != "*" and event.event_type != self.event:
            return False
        if self.filter is None:
            return True
        column, value = parse_filter(self.filter)
        record = event.new if event.new is not None else event.old
        if not record or column not in record:
            return False
        return str(record[column]) == value


def parse_filter(expression: str) -> tuple[str, str]:
    """Parse ``column=eq.value``; only equality filters are supported."""
    column, sep, rest = expression.partition("=")
    op, dot, value = rest.partition(".")
    if not sep or not dot or not column or op != "eq":
        raise ValueError(f"unsupported filter: {expression}")
    return column, value


class Subscription:
    """Handle returned by ``subscribe``; call ``unsubscribe`` to stop delivery."""

    def __init__(
        self,
        channel: str,
        binding: Binding,
        callback: ChangeCallback,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.channel = channel
        self.binding = binding
        self.callback = callback
        self._on_close = on_close
        self.active = True

    def deliver(self, event: ChangeEvent) -> bool:
        if not self.active or not self.binding.matches(event):
            return False
        try:
            self.callback(event)
        except Exception:
            # Subscriber errors are logged, never raised into the publisher.
            logger.exception("Subscriber on channel %s failed", self.channel)
        return True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_close:
            self._on_close(self)


class ChangeFeed(Protocol):
    """Publish/subscribe interface used by the DB clients and the service layer."""

    def publish(self, event: ChangeEvent) -> None:
        ...

    def subscribe(
        self, channel: str, binding: Binding, callback: ChangeCallback
    ) -> Subscription:
        ...


class InMemoryChangeFeed:
    """Synchronous in-process feed for tests/dev."""

    def __init__(self):
        self.subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = list(self.subscriptions)
        for subscription in targets:
            subscription.deliver(event)

    def subscribe(
        self, channel: str, binding: Binding, callback: ChangeCallback
    ) -> Subscription:
        subscription = Subscription(channel, binding, callback, self._remove)
        with self._lock:
            self.subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self.subscriptions:
                self.subscriptions.remove(subscription)


class RedisChangeFeed:
    """
    Redis pub/sub feed. Events are published as JSON on one channel per table;
    each subscription runs its own pubsub listener thread.
    """

    def __init__(self, url: str, channel_prefix: str = "bytebattle:changes"):
        self.url = url
        self.channel_prefix = channel_prefix
        self.client = redis.Redis.from_url(url)
        self._threads: dict[int, object] = {}

    def _redis_channel(self, table: str) -> str:
        return f"{self.channel_prefix}:{table}"

    def publish(self, event: ChangeEvent) -> None:
        payload = json.dumps(event.as_dict(), default=str)
        self.client.publish(self._redis_channel(event.table), payload)

    def subscribe(
        self, channel: str, binding: Binding, callback: ChangeCallback
    ) -> Subscription:
        subscription = Subscription(channel, binding, callback, self._stop)

        def handler(message: dict) -> None:
            data = message.get("data")
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            try:
                event = ChangeEvent.from_dict(json.loads(data))
            except (TypeError, ValueError):
                logger.warning("Dropping malformed change event on %s", channel)
                return
            subscription.deliver(event)

        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(**{self._redis_channel(binding.table): handler})
        self._threads[id(subscription)] = pubsub.run_in_thread(
            sleep_time=0.1, daemon=True
        )
        logger.info("Subscribed %s to %s", channel, self._redis_channel(binding.table))
        return subscription

    def _stop(self, subscription: Subscription) -> None:
        worker = self._threads.pop(id(subscription), None)
        if worker is not None:
            worker.stop()
