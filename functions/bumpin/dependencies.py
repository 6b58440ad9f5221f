"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin
from fastapi import Depends, Header
from firebase_admin import credentials, firestore

from bumpin.auth import Authenticator, DevAuthenticator, FirebaseAuthenticator, bearer_token
from bumpin.config import get_settings
from bumpin.notifications import FirebaseMessagingNotifier, InMemoryNotifier, Notifier
from bumpin.queue import InMemoryNotificationQueue, NotificationQueue, RedisNotificationQueue
from bumpin.retry import RetryingDocumentStore
from bumpin.session import SessionRegistry, UserSession
from bumpin.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from bumpin.store import FirestoreDocumentStore, InMemoryDocumentStore, SqlDocumentStore

logger = logging.getLogger(__name__)

_firebase_app: Optional[firebase_admin.App] = None
_store: RetryingDocumentStore | None = None
_storage_client: StorageClient | None = None
_queue_client: NotificationQueue | None = None
_notifier: Notifier | None = None
_authenticator: Authenticator | None = None
_session_registry: SessionRegistry | None = None


def _use_firebase() -> bool:
    settings = get_settings()
    return bool(settings.firebase_project_id) and not settings.use_in_memory_backends


def get_firebase_app() -> firebase_admin.App:
    global _firebase_app
    if _firebase_app:
        return _firebase_app

    settings = get_settings()
    credential = (
        credentials.Certificate(settings.firebase_credentials_path)
        if settings.firebase_credentials_path
        else None
    )
    _firebase_app = firebase_admin.initialize_app(
        credential, {"projectId": settings.firebase_project_id}
    )
    return _firebase_app


def get_store() -> RetryingDocumentStore:
    """
    Return a singleton document store so state persists across requests.
    """
    global _store
    if _store:
        return _store

    settings = get_settings()
    if _use_firebase():
        inner = FirestoreDocumentStore(
            firestore.client(app=get_firebase_app()),
            timeout=settings.store_timeout_seconds,
        )
    elif settings.database_url and not settings.use_in_memory_backends:
        inner = SqlDocumentStore(settings.database_url)
    else:
        inner = InMemoryDocumentStore()
    logger.info("Using %s", type(inner).__name__)

    _store = RetryingDocumentStore(
        inner,
        attempts=settings.store_read_attempts,
        base_delay=settings.store_retry_base_delay,
    )
    return _store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_notification_queue() -> NotificationQueue:
    """
    Return a singleton queue for handing push notification jobs to the worker.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisNotificationQueue(
            url=settings.redis_url,
            queue_key=settings.redis_notification_queue_key,
        )
    else:
        _queue_client = InMemoryNotificationQueue()
    return _queue_client


def get_notifier() -> Notifier:
    global _notifier
    if _notifier:
        return _notifier

    if _use_firebase():
        _notifier = FirebaseMessagingNotifier(get_firebase_app())
    else:
        _notifier = InMemoryNotifier()
    return _notifier


def get_authenticator() -> Authenticator:
    global _authenticator
    if _authenticator:
        return _authenticator

    if _use_firebase():
        _authenticator = FirebaseAuthenticator(get_firebase_app())
    else:
        _authenticator = DevAuthenticator()
    return _authenticator


def get_session_registry() -> SessionRegistry:
    global _session_registry
    if _session_registry:
        return _session_registry

    _session_registry = SessionRegistry(
        get_store(),
        get_settings(),
        storage=get_storage_client(),
        notifications=get_notification_queue(),
    )
    return _session_registry


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    authenticator: Authenticator = Depends(get_authenticator),
) -> str:
    return authenticator.verify(bearer_token(authorization))


def get_session(
    user_id: str = Depends(get_current_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
) -> UserSession:
    return registry.open(user_id)


def reset_backends() -> None:
    """Drop every singleton. Tests call this between cases."""
    global _firebase_app, _store, _storage_client, _queue_client
    global _notifier, _authenticator, _session_registry
    if _session_registry:
        _session_registry.close_all()
    _firebase_app = None
    _store = None
    _storage_client = None
    _queue_client = None
    _notifier = None
    _authenticator = None
    _session_registry = None
    get_settings.cache_clear()
