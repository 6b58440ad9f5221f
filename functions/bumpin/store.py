"""
Document store abstraction for Firestore, SQL and an in-memory test implementation.

Paths follow Firestore conventions: collections and documents alternate, e.g.
``users/u1/connectionRequests/r1``. Every multi-document mutation goes through
``batch()``; a batch commits all of its writes or none of them.
"""

from __future__ import annotations

import contextlib
import copy
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from bumpin.errors import (
    DocumentAlreadyExistsError,
    DocumentNotFoundError,
    StoreError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)

# (field, operator, value); operators are the Firestore ones we use.
Filter = Tuple[str, str, Any]

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
}


@dataclass
class Document:
    id: str
    path: str
    data: dict


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class WriteBatch(Protocol):
    def create(self, path: str, data: dict) -> None:
        """Writes a new document; the commit fails if it already exists."""
        ...

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        ...

    def update(self, path: str, data: dict) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def commit(self) -> None:
        ...


class DocumentStore(Protocol):
    """Operations the services need from the document database."""

    def get(self, path: str) -> Optional[dict]:
        ...

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        ...

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def batch(self) -> WriteBatch:
        ...

    def watch(
        self,
        collection: str,
        filters: Sequence[Filter],
        callback: Callable[[List[Document]], None],
    ) -> Subscription:
        ...


def parent_collection(path: str) -> str:
    return path.rsplit("/", 1)[0]


def document_id(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def matches(data: dict, filters: Iterable[Filter]) -> bool:
    for field_name, op, value in filters:
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")
        if not _OPERATORS[op](data.get(field_name), value):
            return False
    return True


def apply_query(
    documents: Iterable[Document],
    filters: Sequence[Filter],
    order_by: Optional[str],
    descending: bool,
    limit: Optional[int],
) -> List[Document]:
    results = [doc for doc in documents if matches(doc.data, filters)]
    if order_by:
        # Firestore drops documents missing the ordered field.
        results = [doc for doc in results if doc.data.get(order_by) is not None]
        results.sort(key=lambda doc: doc.data[order_by], reverse=descending)
    if limit is not None:
        results = results[:limit]
    return results


@dataclass
class _Write:
    op: str
    path: str
    data: Optional[dict] = None
    merge: bool = False


class StagedBatch:
    """Collects writes and hands them to the owning store on commit."""

    def __init__(self, apply: Callable[[List[_Write]], None]):
        self._apply = apply
        self._writes: List[_Write] = []
        self._committed = False

    def create(self, path: str, data: dict) -> None:
        self._writes.append(_Write("create", path, copy.deepcopy(data)))

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        self._writes.append(_Write("set", path, copy.deepcopy(data), merge))

    def update(self, path: str, data: dict) -> None:
        self._writes.append(_Write("update", path, copy.deepcopy(data)))

    def delete(self, path: str) -> None:
        self._writes.append(_Write("delete", path))

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("Batch already committed")
        self._apply(self._writes)
        self._committed = True

    def __len__(self) -> int:
        return len(self._writes)


def _merge_write(existing: Optional[dict], write: _Write, path: str) -> Optional[dict]:
    """Returns the document contents after ``write``; None means deleted."""
    if write.op == "delete":
        return None
    if write.op == "create":
        if existing is not None:
            raise DocumentAlreadyExistsError(f"Document already exists: {path}")
        return dict(write.data)
    if write.op == "update":
        if existing is None:
            raise DocumentNotFoundError(f"No document to update: {path}")
        return {**existing, **write.data}
    if write.merge and existing is not None:
        return {**existing, **write.data}
    return dict(write.data)


class _LocalSubscription:
    def __init__(self, watchers: "LocalWatchers", key: int):
        self._watchers = watchers
        self._key = key

    def unsubscribe(self) -> None:
        self._watchers.remove(self._key)


class LocalWatchers:
    """
    In-process change notification for stores without a native change stream.

    Like Firestore snapshot listeners, a watcher receives the full current
    result set once on registration and again after every commit that touches
    its collection.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._watchers: Dict[int, Tuple[str, Sequence[Filter], Callable]] = {}
        self._next_key = 0

    def add(self, collection, filters, callback) -> int:
        with self._lock:
            key = self._next_key
            self._next_key += 1
            self._watchers[key] = (collection, tuple(filters), callback)
            return key

    def remove(self, key: int) -> None:
        with self._lock:
            self._watchers.pop(key, None)

    def active_count(self) -> int:
        with self._lock:
            return len(self._watchers)

    def notify(self, collections: Iterable[str], run_query: Callable) -> None:
        touched = set(collections)
        with self._lock:
            targets = [
                (key, watcher)
                for key, watcher in self._watchers.items()
                if watcher[0] in touched
            ]
        for key, (collection, filters, callback) in targets:
            with self._lock:
                if key not in self._watchers:
                    continue
            try:
                callback(run_query(collection, filters))
            except Exception:
                logger.exception("Watcher callback failed for %s", collection)


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.documents: Dict[str, dict] = {}
        self.commits = 0
        self._lock = threading.RLock()
        self.watchers = LocalWatchers()

    def get(self, path: str) -> Optional[dict]:
        with self._lock:
            data = self.documents.get(path)
            return copy.deepcopy(data) if data is not None else None

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        with self._lock:
            docs = [
                Document(id=document_id(path), path=path, data=copy.deepcopy(data))
                for path, data in self.documents.items()
                if parent_collection(path) == collection
            ]
        return apply_query(docs, filters, order_by, descending, limit)

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        batch = self.batch()
        batch.set(path, data, merge=merge)
        batch.commit()

    def delete(self, path: str) -> None:
        batch = self.batch()
        batch.delete(path)
        batch.commit()

    def batch(self) -> StagedBatch:
        return StagedBatch(self._apply)

    def _apply(self, writes: List[_Write]) -> None:
        with self._lock:
            staged = dict(self.documents)
            for write in writes:
                result = _merge_write(staged.get(write.path), write, write.path)
                if result is None:
                    staged.pop(write.path, None)
                else:
                    staged[write.path] = result
            self.documents = staged
            self.commits += 1
        self.watchers.notify(
            (parent_collection(w.path) for w in writes), self._watch_query
        )

    def _watch_query(self, collection, filters) -> List[Document]:
        return self.query(collection, filters)

    def watch(self, collection, filters, callback) -> Subscription:
        key = self.watchers.add(collection, filters, callback)
        callback(self.query(collection, filters))
        return _LocalSubscription(self.watchers, key)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.documents.clear()
            self.commits = 0


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    path = Column(String, primary_key=True)
    collection = Column(String, nullable=False, index=True)
    doc_id = Column(String, nullable=False)
    data = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False)


@contextlib.contextmanager
def _sql_errors() -> Iterator[None]:
    try:
        yield
    except OperationalError as exc:
        raise TransientStoreError(cause=exc) from exc
    except IntegrityError as exc:
        # Two transactions inserted the same path.
        raise DocumentAlreadyExistsError(cause=exc) from exc
    except SQLAlchemyError as exc:
        raise StoreError(cause=exc) from exc


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Documents are JSON rows keyed by path; a batch is one transaction. Change
    notification is in-process only.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDocumentStore")
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs["pool_recycle"] = 1800
        elif ":memory:" in database_url:
            # One shared connection, or every session sees an empty database.
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)
        self.watchers = LocalWatchers()

    def get(self, path: str) -> Optional[dict]:
        with _sql_errors(), self.Session() as session:
            row = session.get(DocumentRow, path)
            return copy.deepcopy(row.data) if row else None

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        with _sql_errors(), self.Session() as session:
            rows = session.execute(
                select(DocumentRow).where(DocumentRow.collection == collection)
            ).scalars()
            docs = [
                Document(id=row.doc_id, path=row.path, data=copy.deepcopy(row.data))
                for row in rows
            ]
        return apply_query(docs, filters, order_by, descending, limit)

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        batch = self.batch()
        batch.set(path, data, merge=merge)
        batch.commit()

    def delete(self, path: str) -> None:
        batch = self.batch()
        batch.delete(path)
        batch.commit()

    def batch(self) -> StagedBatch:
        return StagedBatch(self._apply)

    def _apply(self, writes: List[_Write]) -> None:
        now = time.time()
        with _sql_errors(), self.Session() as session, session.begin():
            for write in writes:
                row = session.get(DocumentRow, write.path)
                result = _merge_write(row.data if row else None, write, write.path)
                if result is None:
                    if row is not None:
                        session.delete(row)
                elif row is not None:
                    row.data = result
                    row.updated_at = now
                else:
                    session.add(
                        DocumentRow(
                            path=write.path,
                            collection=parent_collection(write.path),
                            doc_id=document_id(write.path),
                            data=result,
                            updated_at=now,
                        )
                    )
                # Later writes in the batch must see earlier ones.
                session.flush()
        self.watchers.notify(
            (parent_collection(w.path) for w in writes), self._watch_query
        )

    def _watch_query(self, collection, filters) -> List[Document]:
        return self.query(collection, filters)

    def watch(self, collection, filters, callback) -> Subscription:
        key = self.watchers.add(collection, filters, callback)
        callback(self.query(collection, filters))
        return _LocalSubscription(self.watchers, key)


_TRANSIENT_GOOGLE_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.Aborted,
    google_exceptions.InternalServerError,
)


@contextlib.contextmanager
def _firestore_errors() -> Iterator[None]:
    try:
        yield
    except google_exceptions.NotFound as exc:
        raise DocumentNotFoundError(cause=exc) from exc
    except google_exceptions.AlreadyExists as exc:
        raise DocumentAlreadyExistsError(cause=exc) from exc
    except _TRANSIENT_GOOGLE_ERRORS as exc:
        raise TransientStoreError(cause=exc) from exc
    except google_exceptions.GoogleAPICallError as exc:
        raise StoreError(cause=exc) from exc


class _FirestoreBatch:
    def __init__(self, client, timeout: float):
        self._client = client
        self._batch = client.batch()
        self._timeout = timeout

    def create(self, path: str, data: dict) -> None:
        self._batch.create(self._client.document(path), data)

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        self._batch.set(self._client.document(path), data, merge=merge)

    def update(self, path: str, data: dict) -> None:
        self._batch.update(self._client.document(path), data)

    def delete(self, path: str) -> None:
        self._batch.delete(self._client.document(path))

    def commit(self) -> None:
        with _firestore_errors():
            self._batch.commit(timeout=self._timeout)


class _FirestoreSubscription:
    def __init__(self, watch):
        self._watch = watch

    def unsubscribe(self) -> None:
        self._watch.unsubscribe()


class FirestoreDocumentStore:
    """Firestore-backed store; batches map onto Firestore write batches."""

    def __init__(self, client, timeout: float = 10.0):
        self.client = client
        self.timeout = timeout

    def _build_query(self, collection, filters, order_by=None, descending=False, limit=None):
        query = self.client.collection(collection)
        for field_name, op, value in filters:
            query = query.where(filter=FieldFilter(field_name, op, value))
        if order_by:
            direction = (
                firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            )
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return query

    @staticmethod
    def _to_document(snapshot) -> Document:
        return Document(
            id=snapshot.id, path=snapshot.reference.path, data=snapshot.to_dict() or {}
        )

    def get(self, path: str) -> Optional[dict]:
        with _firestore_errors():
            snapshot = self.client.document(path).get(timeout=self.timeout)
        return snapshot.to_dict() if snapshot.exists else None

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Document]:
        query = self._build_query(collection, filters, order_by, descending, limit)
        with _firestore_errors():
            return [self._to_document(s) for s in query.stream(timeout=self.timeout)]

    def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        with _firestore_errors():
            self.client.document(path).set(data, merge=merge, timeout=self.timeout)

    def delete(self, path: str) -> None:
        with _firestore_errors():
            self.client.document(path).delete(timeout=self.timeout)

    def batch(self) -> _FirestoreBatch:
        return _FirestoreBatch(self.client, self.timeout)

    def watch(self, collection, filters, callback) -> Subscription:
        query = self._build_query(collection, filters)

        def on_snapshot(snapshots, changes, read_time):
            callback([self._to_document(s) for s in snapshots])

        return _FirestoreSubscription(query.on_snapshot(on_snapshot))
