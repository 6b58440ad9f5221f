"""
Bounded retries with exponential backoff and jitter for store calls.

Only idempotent operations are retried: reads, and writes whose document ids
are generated by the caller so that a replay rewrites the same documents.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, List, Optional, Sequence, TypeVar

from bumpin.errors import TransientStoreError
from bumpin.store import Document, DocumentStore, Filter, Subscription, WriteBatch

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SECONDS = 0.2
DEFAULT_JITTER_RANGE = 0.3  # ±30%


def retry_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    jitter_range: float = DEFAULT_JITTER_RANGE,
) -> float:
    """Delay before retry number ``attempt`` (1-indexed): base * 2^(attempt-1), jittered."""
    if attempt < 1:
        raise ValueError("Attempt number must be 1 or greater")
    delay = base_delay * (2 ** (attempt - 1))
    jitter = delay * jitter_range
    return max(0.0, delay + random.uniform(-jitter, jitter))


def call_with_retry(
    fn: Callable[[], T],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Runs ``fn``, retrying on TransientStoreError up to ``attempts`` total calls."""
    attempt = 1
    while True:
        try:
            return fn()
        except TransientStoreError as exc:
            if attempt >= attempts:
                raise
            delay = retry_delay(attempt, base_delay)
            logger.warning(
                "Transient store error (attempt %d/%d), retrying in %.2fs: %s",
                attempt,
                attempts,
                delay,
                exc.cause or exc,
            )
            sleep(delay)
            attempt += 1


class RetryingDocumentStore:
    """Wraps a DocumentStore so that reads are retried on transient failures."""

    def __init__(
        self,
        inner: DocumentStore,
        *,
        attempts: int = DEFAULT_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.inner = inner
        self.attempts = attempts
        self.base_delay = base_delay
        self._sleep = sleep

    def _retry(self, fn: Callable[[], T]) -> T:
        return call_with_retry(
            fn, attempts=self.attempts, base_delay=self.base_delay, sleep=self._sleep
        )

    def get(self, path: str) -> Optional[dict]:
        return self._retry(lambda: self.inner.get(path))

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        return self._retry(
            lambda: self.inner.query(
                collection,
                filters,
                order_by=order_by,
                descending=descending,
                limit=limit,
            )
        )

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        self.inner.set(path, data, merge=merge)

    def delete(self, path: str) -> None:
        self.inner.delete(path)

    def batch(self) -> WriteBatch:
        return self.inner.batch()

    def commit_idempotent(self, build: Callable[[WriteBatch], None]) -> None:
        """
        Builds and commits a fresh batch, retrying on transient failures.

        ``build`` must only write caller-chosen document ids.
        """

        def attempt() -> None:
            batch = self.inner.batch()
            build(batch)
            batch.commit()

        self._retry(attempt)

    def watch(self, collection, filters, callback) -> Subscription:
        return self.inner.watch(collection, filters, callback)
