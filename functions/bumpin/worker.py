"""
Worker loop that delivers queued push notifications.

Jobs are produced by the API when a connection request is sent. The worker
looks up the recipient's FCM token and hands the message to the notifier.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from bumpin.config import get_settings
from bumpin.dependencies import get_notification_queue, get_notifier, get_store
from bumpin.errors import StoreError
from bumpin.notifications import Notifier, connection_request_message
from bumpin.queue import NotificationJob, NotificationQueue
from bumpin.store import DocumentStore
from shared.constants import CONNECTION_REQUEST_NOTIFICATION_TYPE
from shared.firebase_constants import user_path

logger = logging.getLogger(__name__)

IDLE_SLEEP_SECONDS = 1.0


def deliver(job: NotificationJob, store: DocumentStore, notifier: Notifier) -> Optional[str]:
    """
    Sends the push message for ``job``. Returns the message id, or None if the
    job was skipped.
    """
    if job.type != CONNECTION_REQUEST_NOTIFICATION_TYPE:
        logger.warning("Skipping job with unknown type: %s", job.type)
        return None
    to_user_id = job.to_user_id
    from_username = job.from_username
    if not to_user_id or not from_username:
        logger.warning("Skipping malformed notification job: %s", job)
        return None

    user = store.get(user_path(to_user_id))
    token = (user or {}).get("fcmToken")
    if not token:
        logger.info("No push token for %s, skipping notification", to_user_id)
        return None

    message_id = notifier.send(connection_request_message(token, from_username))
    logger.info("Sent connection request notification %s to %s", message_id, to_user_id)
    return message_id


def process_next(
    store: DocumentStore,
    queue: NotificationQueue,
    notifier: Notifier,
    *,
    block: bool = False,
    timeout: int | None = None,
) -> bool:
    """
    Handles one job from the queue. Returns False if the queue was empty.

    Delivery failures are logged and the job is dropped; a stale push is not
    worth retrying.
    """
    job = queue.dequeue(block=block, timeout=timeout)
    if job is None:
        return False
    try:
        deliver(job, store, notifier)
    except StoreError as exc:
        logger.error("Store error while delivering notification: %s", exc)
    except Exception:
        logger.exception("Failed to deliver notification job %s", job)
    return True


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    store = get_store()
    queue = get_notification_queue()
    notifier = get_notifier()
    logger.info(
        "Notification worker started (queue: %s)",
        "redis" if settings.redis_url else "in-memory",
    )
    while True:
        if not process_next(store, queue, notifier, block=True, timeout=5):
            time.sleep(IDLE_SLEEP_SECONDS)


if __name__ == "__main__":
    main()
