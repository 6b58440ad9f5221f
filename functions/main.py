# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Cloud functions for the BumpIn backend - push notification relay.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
import json

# Third-party library imports
from firebase_admin import initialize_app, messaging
from firebase_functions import https_fn, logger, options

# Local application imports
from bumpin.notifications import PushMessage, to_fcm_message

initialize_app()


def _json_response(body: dict, status: int) -> https_fn.Response:
    return https_fn.Response(
        json.dumps(body), status=status, content_type="application/json"
    )


def _parse_push_message(payload) -> PushMessage:
    """
    Builds a PushMessage from ``{token, notification: {title, body}, data}``.
    Raises ValueError if the payload is malformed.
    """
    if not isinstance(payload, dict):
        raise ValueError("Body must be a JSON object")
    token = payload.get("token")
    notification = payload.get("notification") or {}
    data = payload.get("data") or {}
    if not isinstance(token, str) or not token:
        raise ValueError("Missing token")
    if not isinstance(notification, dict) or not isinstance(data, dict):
        raise ValueError("notification and data must be objects")
    return PushMessage(
        token=token,
        title=str(notification.get("title", "")),
        body=str(notification.get("body", "")),
        data={str(k): str(v) for k, v in data.items()},
    )


@https_fn.on_request(memory=options.MemoryOption.MB_256)
def send_connection_request_notification(req: https_fn.Request) -> https_fn.Response:
    """Relays a connection request notification to Firebase Cloud Messaging."""
    try:
        message = _parse_push_message(req.get_json(silent=True))
    except ValueError as e:
        return _json_response({"error": str(e)}, 400)

    try:
        message_id = messaging.send(to_fcm_message(message))
    except Exception as e:
        logger.error(f"Error sending notification: {e}")
        return _json_response({"error": "Error sending notification"}, 500)

    logger.info(f"Sent notification {message_id}")
    return _json_response({"success": True, "messageId": message_id}, 200)
