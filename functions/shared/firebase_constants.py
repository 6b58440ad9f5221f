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

USERS_COLLECTION = "users"
CARDS_COLLECTION = "cards"

# Subcollections under users/{userId}
CONNECTIONS_COLLECTION = "connections"
CONNECTION_REQUESTS_COLLECTION = "connectionRequests"
SENT_REQUESTS_COLLECTION = "sentRequests"
BLOCKED_USERS_COLLECTION = "blockedUsers"
# One document per sender while that sender has a request pending here.
REQUEST_LOCKS_COLLECTION = "requestLocks"
CONTACTS_COLLECTION = "contacts"

PROFILE_PICTURES_PATH = "card_profile_pictures"


def user_path(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}"


def card_path(card_id: str) -> str:
    return f"{CARDS_COLLECTION}/{card_id}"


def connections_path(user_id: str) -> str:
    return f"{user_path(user_id)}/{CONNECTIONS_COLLECTION}"


def inbox_path(user_id: str) -> str:
    return f"{user_path(user_id)}/{CONNECTION_REQUESTS_COLLECTION}"


def sent_requests_path(user_id: str) -> str:
    return f"{user_path(user_id)}/{SENT_REQUESTS_COLLECTION}"


def blocked_users_path(user_id: str) -> str:
    return f"{user_path(user_id)}/{BLOCKED_USERS_COLLECTION}"


def contacts_path(user_id: str) -> str:
    return f"{user_path(user_id)}/{CONTACTS_COLLECTION}"


def request_lock_path(from_user_id: str, to_user_id: str) -> str:
    return f"{user_path(to_user_id)}/{REQUEST_LOCKS_COLLECTION}/{from_user_id}"
