"""
Pydantic schemas for the BumpIn API.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import List, Literal, Optional

from dacite import from_dict
from pydantic import BaseModel, Field

from bumpin.deep_links import build_profile_link
from shared.constants import USERNAME_MAX_LENGTH
from shared.documents import DACITE_CONFIG
from shared.types import (
    BackgroundStyle,
    BusinessCard,
    ConnectionRequest,
    FontStyle,
    LayoutStyle,
    RequestStatus,
    User,
)


class ColorSchemeModel(BaseModel):
    primary: List[float] = Field(default_factory=lambda: [0.1, 0.3, 0.5])
    secondary: List[float] = Field(default_factory=lambda: [0.2, 0.4, 0.6])
    text_color: List[float] = Field(default_factory=lambda: [1.0, 1.0, 1.0])
    accent_color: List[float] = Field(default_factory=lambda: [1.0, 1.0, 1.0])
    emoticon: str = "💫"
    border_color: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0])
    border_width: float = Field(default=0.0, ge=0)


class CardModel(BaseModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    name: str = Field(default="", max_length=128)
    title: str = Field(default="", max_length=128)
    company: str = Field(default="", max_length=128)
    email: str = Field(default="", max_length=256)
    phone: str = Field(default="", max_length=64)
    linkedin: str = Field(default="", max_length=256)
    website: str = Field(default="", max_length=256)
    about_me: str = Field(default="", max_length=1024)
    profile_picture_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    color_scheme: ColorSchemeModel = Field(default_factory=ColorSchemeModel)
    font_style: FontStyle = FontStyle.MODERN
    layout_style: LayoutStyle = LayoutStyle.CLASSIC
    text_scale: float = Field(default=1.0, gt=0)
    background_style: BackgroundStyle = BackgroundStyle.GRADIENT
    show_symbols: bool = False
    is_vertical: bool = False
    is_public: bool = False

    @classmethod
    def from_card(cls, card: BusinessCard) -> "CardModel":
        return cls.model_validate(asdict(card))

    def to_card(self, owner_id: str) -> BusinessCard:
        data = self.model_dump()
        data["id"] = owner_id
        data["user_id"] = owner_id
        return from_dict(data_class=BusinessCard, data=data, config=DACITE_CONFIG)


class UserResponse(BaseModel):
    id: str
    username: str
    profile_link: str
    card: Optional[CardModel] = None
    qr_code_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            profile_link=build_profile_link(user.username),
            card=CardModel.from_card(user.card) if user.card else None,
            qr_code_url=user.qr_code_url,
        )


class CreateUserRequest(BaseModel):
    username: Optional[str] = Field(default=None, max_length=USERNAME_MAX_LENGTH * 2)
    email: str = Field(default="", max_length=256)


class UsernameRequest(BaseModel):
    username: str = Field(..., max_length=256)


class UsernameValidationResponse(BaseModel):
    username: str
    valid: bool
    kind: Optional[str] = None
    message: Optional[str] = None


class PushTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=4096)


class SearchResponse(BaseModel):
    users: List[UserResponse]


class ContactRequest(BaseModel):
    card_id: str


class ContactsResponse(BaseModel):
    contacts: List[CardModel]


class ProfilePictureResponse(BaseModel):
    url: str


class SendRequestPayload(BaseModel):
    to_user_id: str = Field(..., min_length=1)


class ConnectionRequestResponse(BaseModel):
    id: str
    from_user_id: str
    to_user_id: str
    from_username: str
    to_username: str
    status: RequestStatus
    timestamp: float

    @classmethod
    def from_request(cls, request: ConnectionRequest) -> "ConnectionRequestResponse":
        return cls.model_validate(asdict(request))


class RequestsResponse(BaseModel):
    requests: List[ConnectionRequestResponse]


class ConnectionsResponse(BaseModel):
    connections: List[UserResponse]


class ConnectionStatusResponse(BaseModel):
    user_id: str
    status: str


class BlocksResponse(BaseModel):
    user_ids: List[str]


class StatusResponse(BaseModel):
    status: Literal["ok"]
