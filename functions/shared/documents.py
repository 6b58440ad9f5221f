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

"""
Conversion between dataclasses and the camelCase documents stored in Firestore.
"""

from dataclasses import asdict
from typing import Type, TypeVar

from dacite import Config, from_dict

from shared.json_utils import convert_keys
from shared.types import (
    BackgroundStyle,
    FontStyle,
    LayoutStyle,
    RequestStatus,
)

T = TypeVar("T")

DACITE_CONFIG = Config(
    cast=[RequestStatus, FontStyle, LayoutStyle, BackgroundStyle],
    check_types=False,
)


def to_document(obj, *, drop_none: bool = True) -> dict:
    """Serializes a dataclass into a camelCase document."""
    data = convert_keys(asdict(obj), "snake_to_camel")
    if drop_none:
        data = {k: v for k, v in data.items() if v is not None}
    return data


def from_document(data_class: Type[T], data: dict) -> T:
    """Builds a dataclass from a camelCase document."""
    return from_dict(
        data_class=data_class,
        data=convert_keys(data, "camel_to_snake"),
        config=DACITE_CONFIG,
    )
