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

from enum import StrEnum
from dataclasses import dataclass, field
from typing import List, Optional


class RequestStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class FontStyle(StrEnum):
    EXECUTIVE = "Executive"
    CORPORATE = "Corporate"
    MODERN = "Modern"
    CLASSIC = "Classic"
    ELEGANT = "Elegant"
    MINIMALIST = "Minimalist"
    BOLD = "Bold"
    CREATIVE = "Creative"
    TRADITIONAL = "Traditional"
    CONTEMPORARY = "Contemporary"
    TECH = "Tech"
    RETRO = "Retro"
    FUTURISTIC = "Future"


class LayoutStyle(StrEnum):
    CLASSIC = "Classic"
    MODERN = "Modern"
    COMPACT = "Compact"
    CENTERED = "Centered"
    MINIMAL = "Minimal"
    ELEGANT = "Elegant"
    PROFESSIONAL = "Professional"


class BackgroundStyle(StrEnum):
    SOLID = "Solid Color"
    GRADIENT = "Gradient"
    HORIZONTAL_SPLIT = "Horizontal Split"
    VERTICAL_SPLIT = "Vertical Split"
    EMOTICON_PATTERN = "Emoticon Pattern"


# Colors are stored as [red, green, blue] components in the range 0..1.
RGB = List[float]


@dataclass
class CardColorScheme:
    primary: RGB = field(default_factory=lambda: [0.1, 0.3, 0.5])
    secondary: RGB = field(default_factory=lambda: [0.2, 0.4, 0.6])
    text_color: RGB = field(default_factory=lambda: [1.0, 1.0, 1.0])
    accent_color: RGB = field(default_factory=lambda: [1.0, 1.0, 1.0])
    emoticon: str = "💫"
    border_color: RGB = field(default_factory=lambda: [0.0, 0.0, 0.0])
    border_width: float = 0.0


@dataclass
class BusinessCard:
    """A user's business card. One card per user, stored at cards/{id}."""

    id: str
    user_id: str
    name: str = ""
    title: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    linkedin: str = ""
    website: str = ""
    about_me: str = ""
    profile_picture_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    color_scheme: CardColorScheme = field(default_factory=CardColorScheme)
    font_style: FontStyle = FontStyle.MODERN
    layout_style: LayoutStyle = LayoutStyle.CLASSIC
    text_scale: float = 1.0
    background_style: BackgroundStyle = BackgroundStyle.GRADIENT
    show_symbols: bool = False
    is_vertical: bool = False
    is_public: bool = False


@dataclass
class User:
    id: str
    username: str
    card: Optional[BusinessCard] = None
    qr_code_url: Optional[str] = None
    fcm_token: Optional[str] = None

    @property
    def searchable_username(self) -> str:
        return self.username.lower()


@dataclass
class ConnectionRequest:
    """
    A connection request between two users.

    The same record is stored twice: in the recipient's connectionRequests
    inbox and in the sender's sentRequests list, under the same id. Usernames
    are captured when the request is sent and are not refreshed afterwards.
    """

    id: str
    from_user_id: str
    to_user_id: str
    from_username: str
    to_username: str
    status: RequestStatus
    timestamp: float


@dataclass
class Connection:
    """One side of a symmetric connection edge, keyed by the peer's id."""

    user_id: str
    username: str
    timestamp: float


@dataclass
class Block:
    user_id: str
    timestamp: float
