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

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
USERNAME_ALLOWED_CHARACTERS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789._")
RESERVED_USERNAMES = frozenset(
    {
        "admin",
        "support",
        "help",
        "moderator",
        "mod",
        "system",
        "bumpin",
        "official",
        "staff",
        "team",
        "security",
    }
)

CACHE_LIFETIME_SECONDS = 300  # 5 minutes
SEARCH_RESULTS_LIMIT = 20
SESSION_IDLE_SECONDS = 1800  # 30 minutes

PROFILE_LINK_SCHEME = "bumpin"
PROFILE_LINK_HOST = "profile"

CONNECTION_REQUEST_NOTIFICATION_TITLE = "New Connection Request"
CONNECTION_REQUEST_NOTIFICATION_TYPE = "connection_request"
