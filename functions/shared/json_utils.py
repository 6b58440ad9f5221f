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

import re
from enum import Enum
from typing import Any, Literal

# Keys whose stored spelling does not follow plain camelCase.
_SNAKE_TO_CAMEL_OVERRIDES = {
    "profile_picture_url": "profilePictureURL",
    "qr_code_url": "qrCodeURL",
}
_CAMEL_TO_SNAKE_OVERRIDES = {v: k for k, v in _SNAKE_TO_CAMEL_OVERRIDES.items()}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_to_camel(key: str) -> str:
    if key in _SNAKE_TO_CAMEL_OVERRIDES:
        return _SNAKE_TO_CAMEL_OVERRIDES[key]
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_to_snake(key: str) -> str:
    if key in _CAMEL_TO_SNAKE_OVERRIDES:
        return _CAMEL_TO_SNAKE_OVERRIDES[key]
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def convert_keys(
    data: Any, direction: Literal["snake_to_camel", "camel_to_snake"]
) -> Any:
    """
    Recursively converts dictionary keys between snake_case and camelCase.

    Enum values are replaced by their plain values so the result can be written
    to Firestore or serialized as JSON.
    """
    convert = snake_to_camel if direction == "snake_to_camel" else camel_to_snake
    if isinstance(data, dict):
        return {convert(k): convert_keys(v, direction) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item, direction) for item in data]
    if isinstance(data, Enum):
        return data.value
    return data
