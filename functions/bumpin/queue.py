"""
Queue of push notification jobs, handed from the API to the worker.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production. Both hold jobs as camelCase JSON strings;
entries that fail to decode are logged and skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from dacite import DaciteError
from redis import exceptions as redis_exceptions

from shared.documents import from_document, to_document

logger = logging.getLogger(__name__)


@dataclass
class NotificationJob:
    type: str
    to_user_id: str
    from_username: str = ""


def encode_job(job: NotificationJob) -> str:
    return json.dumps(to_document(job))


def decode_job(raw: str | bytes) -> Optional[NotificationJob]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("job is not an object")
        return from_document(NotificationJob, data)
    except (DaciteError, ValueError, TypeError) as exc:
        logger.warning("Dropping malformed notification job %r: %s", raw, exc)
        return None


class NotificationQueue(Protocol):
    def enqueue(self, job: NotificationJob) -> None:
        ...

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[NotificationJob]:
        """Next decodable job, or None once the queue is empty or the wait times out."""
        ...


@dataclass
class InMemoryNotificationQueue:
    """FIFO of encoded jobs for tests and local runs."""

    items: list[str] = field(default_factory=list)

    def enqueue(self, job: NotificationJob) -> None:
        self.items.append(encode_job(job))

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[NotificationJob]:
        while self.items:
            job = decode_job(self.items.pop(0))
            if job is not None:
                return job
        return None

    def pending(self) -> list[NotificationJob]:
        """Decoded view of the queued jobs, oldest first."""
        return [job for job in map(decode_job, self.items) if job is not None]


@dataclass
class RedisNotificationQueue:
    """Redis list of encoded jobs; RPUSH to enqueue, (B)LPOP to dequeue."""

    url: str
    queue_key: str = "bumpin:notifications"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def enqueue(self, job: NotificationJob) -> None:
        self.client.rpush(self.queue_key, encode_job(job))

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[NotificationJob]:
        while True:
            raw = self._pop(block, timeout)
            if raw is None:
                return None
            job = decode_job(raw)
            if job is not None:
                return job

    def _pop(self, block: bool, timeout: int | None) -> Optional[bytes]:
        try:
            if block:
                result = self.client.blpop(self.queue_key, timeout=timeout or 0)
                return None if result is None else result[1]
            return self.client.lpop(self.queue_key)
        except redis_exceptions.ConnectionError:
            # Managed Redis resets idle connections. Report empty and let the
            # worker loop call again on a fresh client.
            logger.warning("Redis connection lost, reconnecting")
            self.client = redis.Redis.from_url(self.url)
            return None
