"""
Push notifications for connection events, delivered through Firebase Cloud Messaging.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from firebase_admin import messaging

from bumpin.queue import NotificationJob
from shared.constants import (
    CONNECTION_REQUEST_NOTIFICATION_TITLE,
    CONNECTION_REQUEST_NOTIFICATION_TYPE,
)

logger = logging.getLogger(__name__)


@dataclass
class PushMessage:
    token: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)


class Notifier(Protocol):
    def send(self, message: PushMessage) -> str:
        """Hands ``message`` to the push service and returns its message id."""
        ...


@dataclass
class InMemoryNotifier:
    """Records messages instead of sending them."""

    sent: list[PushMessage] = field(default_factory=list)

    def send(self, message: PushMessage) -> str:
        self.sent.append(message)
        return f"in-memory-{len(self.sent)}"


class FirebaseMessagingNotifier:
    def __init__(self, app=None):
        self._app = app

    def send(self, message: PushMessage) -> str:
        return messaging.send(to_fcm_message(message), app=self._app)


def to_fcm_message(message: PushMessage) -> messaging.Message:
    return messaging.Message(
        token=message.token,
        notification=messaging.Notification(title=message.title, body=message.body),
        data=message.data,
    )


def connection_request_job(to_user_id: str, from_username: str) -> NotificationJob:
    return NotificationJob(
        type=CONNECTION_REQUEST_NOTIFICATION_TYPE,
        to_user_id=to_user_id,
        from_username=from_username,
    )


def connection_request_message(token: str, from_username: str) -> PushMessage:
    return PushMessage(
        token=token,
        title=CONNECTION_REQUEST_NOTIFICATION_TITLE,
        body=f"@{from_username} wants to connect with you",
        data={
            "type": CONNECTION_REQUEST_NOTIFICATION_TYPE,
            "fromUsername": from_username,
        },
    )
