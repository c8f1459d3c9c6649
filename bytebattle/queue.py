"""
Judge queue for submission ids.

A dequeued id moves onto a processing list and stays there until the worker
acks it, so a worker that dies mid-judge leaves the submission recoverable.
The in-memory queue mirrors the Redis layout for tests and local runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class JobQueue(Protocol):
    """Operations the API and worker need from the judge queue."""

    def enqueue(self, submission_id: str) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        ...

    def ack(self, submission_id: str) -> None:
        ...

    def recover(self) -> int:
        ...

    def size(self) -> int:
        ...


@dataclass
class InMemoryJobQueue:
    items: list[str] = field(default_factory=list)
    processing: list[str] = field(default_factory=list)

    def enqueue(self, submission_id: str) -> None:
        self.items.append(submission_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        if not self.items:
            return None
        submission_id = self.items.pop(0)
        self.processing.append(submission_id)
        return submission_id

    def ack(self, submission_id: str) -> None:
        if submission_id in self.processing:
            self.processing.remove(submission_id)

    def recover(self) -> int:
        recovered = len(self.processing)
        self.items[:0] = self.processing
        self.processing.clear()
        return recovered

    def size(self) -> int:
        return len(self.items)


@dataclass
class RedisJobQueue:
    """Redis lists: ``queue_key`` holds waiting ids, ``<queue_key>:processing`` claimed ones."""

    url: str
    queue_key: str = "bytebattle:submissions"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    @property
    def processing_key(self) -> str:
        return f"{self.queue_key}:processing"

    def enqueue(self, submission_id: str) -> None:
        self.client.rpush(self.queue_key, submission_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            if block:
                submission_id = self.client.blmove(
                    self.queue_key, self.processing_key, timeout or 0, "LEFT", "RIGHT"
                )
            else:
                submission_id = self.client.lmove(
                    self.queue_key, self.processing_key, "LEFT", "RIGHT"
                )
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; reconnect and report an empty queue.
            logger.warning("Redis connection lost while polling %s", self.queue_key)
            self.client = redis.Redis.from_url(self.url)
            return None
        if submission_id is None:
            return None
        return submission_id.decode("utf-8")

    def ack(self, submission_id: str) -> None:
        self.client.lrem(self.processing_key, 1, submission_id)

    def recover(self) -> int:
        """Push claimed-but-unacked ids back to the head of the queue."""
        recovered = 0
        while self.client.lmove(self.processing_key, self.queue_key, "RIGHT", "LEFT"):
            recovered += 1
        return recovered

    def size(self) -> int:
        return int(self.client.llen(self.queue_key))
