"""
HTTP routes for the BumpIn API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from bumpin.dependencies import get_current_user_id, get_session, get_session_registry
from bumpin.errors import CardNotFoundError, UserNotFoundError, UsernameValidationError
from bumpin.schemas import (
    BlocksResponse,
    CardModel,
    ConnectionRequestResponse,
    ConnectionsResponse,
    ConnectionStatusResponse,
    ContactRequest,
    ContactsResponse,
    CreateUserRequest,
    ProfilePictureResponse,
    PushTokenRequest,
    RequestsResponse,
    SearchResponse,
    SendRequestPayload,
    StatusResponse,
    UsernameRequest,
    UsernameValidationResponse,
    UserResponse,
)
from bumpin.session import SessionRegistry, UserSession

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PROFILE_PICTURE_BYTES = 5 * 1024 * 1024


# Users


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(payload: CreateUserRequest, session: UserSession = Depends(get_session)):
    """
    Creates the caller's profile. Without a username, returns the existing
    profile or creates one named after the email's local part.
    """
    if payload.username:
        user = session.users.create_user(payload.username, payload.email)
    else:
        user = session.users.get_or_create_profile(payload.email)
    return UserResponse.from_user(user)


@router.get("/users/me", response_model=UserResponse)
def get_me(session: UserSession = Depends(get_session)):
    return UserResponse.from_user(session.users.require_user(session.user_id))


@router.put("/users/me/push-token", response_model=StatusResponse)
def register_push_token(
    payload: PushTokenRequest, session: UserSession = Depends(get_session)
):
    session.users.register_push_token(payload.token)
    return StatusResponse(status="ok")


@router.get("/users/search", response_model=SearchResponse)
def search_users(
    q: str = Query(..., min_length=1, max_length=64),
    session: UserSession = Depends(get_session),
):
    users = session.users.search_users(q)
    return SearchResponse(users=[UserResponse.from_user(u) for u in users])


@router.post("/users/validate-username", response_model=UsernameValidationResponse)
def validate_username(
    payload: UsernameRequest, session: UserSession = Depends(get_session)
):
    try:
        name = session.users.validate_username(payload.username)
    except UsernameValidationError as exc:
        return UsernameValidationResponse(
            username=payload.username, valid=False, kind=exc.kind.value, message=exc.detail
        )
    return UsernameValidationResponse(username=name, valid=True)


@router.get("/users/by-username/{username}", response_model=UserResponse)
def get_user_by_username(username: str, session: UserSession = Depends(get_session)):
    user = session.users.find_by_username(username)
    if user is None:
        raise UserNotFoundError()
    return UserResponse.from_user(user)


@router.get("/deep-links/resolve", response_model=UserResponse)
def resolve_profile_link(
    url: str = Query(..., min_length=1), session: UserSession = Depends(get_session)
):
    return UserResponse.from_user(session.users.resolve_profile_link(url))


# Cards and contacts


@router.put("/cards/me", response_model=CardModel)
def save_card(payload: CardModel, session: UserSession = Depends(get_session)):
    card = session.cards.save_card(payload.to_card(session.user_id))
    return CardModel.from_card(card)


@router.get("/cards/me", response_model=CardModel)
def get_my_card(session: UserSession = Depends(get_session)):
    card = session.cards.fetch_user_card(session.user_id)
    if card is None:
        raise CardNotFoundError()
    return CardModel.from_card(card)


@router.post("/cards/me/profile-picture", response_model=ProfilePictureResponse)
def upload_profile_picture(
    file: UploadFile = File(...), session: UserSession = Depends(get_session)
):
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Profile picture must be an image")
    data = file.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(data) > MAX_PROFILE_PICTURE_BYTES:
        raise HTTPException(status_code=413, detail="Profile picture is too large")
    url = session.cards.upload_profile_picture(data, content_type)
    return ProfilePictureResponse(url=url)


@router.get("/cards/{card_id}", response_model=CardModel)
def get_card(card_id: str, session: UserSession = Depends(get_session)):
    return CardModel.from_card(session.cards.fetch_card_by_id(card_id))


@router.get("/contacts", response_model=ContactsResponse)
def list_contacts(session: UserSession = Depends(get_session)):
    contacts = session.cards.fetch_contacts()
    return ContactsResponse(contacts=[CardModel.from_card(c) for c in contacts])


@router.post("/contacts", response_model=ContactsResponse, status_code=201)
def add_contact(payload: ContactRequest, session: UserSession = Depends(get_session)):
    card = session.cards.fetch_card_by_id(payload.card_id)
    contacts = session.cards.add_contact(card)
    return ContactsResponse(contacts=[CardModel.from_card(c) for c in contacts])


@router.delete("/contacts/{card_id}", response_model=ContactsResponse)
def remove_contact(card_id: str, session: UserSession = Depends(get_session)):
    contacts = session.cards.remove_contact(card_id)
    return ContactsResponse(contacts=[CardModel.from_card(c) for c in contacts])


# Connection requests


@router.post(
    "/connection-requests", response_model=ConnectionRequestResponse, status_code=201
)
def send_connection_request(
    payload: SendRequestPayload, session: UserSession = Depends(get_session)
):
    request = session.connections.send_request(payload.to_user_id)
    return ConnectionRequestResponse.from_request(request)


@router.get("/connection-requests/pending", response_model=RequestsResponse)
def list_pending_requests(session: UserSession = Depends(get_session)):
    requests = session.connections.current_pending_requests()
    return RequestsResponse(
        requests=[ConnectionRequestResponse.from_request(r) for r in requests]
    )


@router.get("/connection-requests/sent", response_model=RequestsResponse)
def list_sent_requests(session: UserSession = Depends(get_session)):
    requests = session.connections.fetch_sent_requests()
    return RequestsResponse(
        requests=[ConnectionRequestResponse.from_request(r) for r in requests]
    )


def _answer_request(session: UserSession, request_id: str, accept: bool):
    request = session.connections.get_incoming_request(request_id)
    handled = session.connections.handle_request(request, accept)
    return ConnectionRequestResponse.from_request(handled)


@router.post(
    "/connection-requests/{request_id}/accept", response_model=ConnectionRequestResponse
)
def accept_request(request_id: str, session: UserSession = Depends(get_session)):
    return _answer_request(session, request_id, accept=True)


@router.post(
    "/connection-requests/{request_id}/reject", response_model=ConnectionRequestResponse
)
def reject_request(request_id: str, session: UserSession = Depends(get_session)):
    return _answer_request(session, request_id, accept=False)


@router.delete("/connection-requests/to/{user_id}", response_model=StatusResponse)
def cancel_request(user_id: str, session: UserSession = Depends(get_session)):
    session.connections.cancel_request(user_id)
    return StatusResponse(status="ok")


# Connections and blocks


@router.get("/connections", response_model=ConnectionsResponse)
def list_connections(session: UserSession = Depends(get_session)):
    users = session.connections.fetch_connections()
    return ConnectionsResponse(connections=[UserResponse.from_user(u) for u in users])


@router.get("/connections/{user_id}/status", response_model=ConnectionStatusResponse)
def connection_status(user_id: str, session: UserSession = Depends(get_session)):
    status = session.connections.connection_status(user_id)
    return ConnectionStatusResponse(user_id=user_id, status=status.value)


@router.delete("/connections/{user_id}", response_model=StatusResponse)
def remove_connection(user_id: str, session: UserSession = Depends(get_session)):
    session.connections.remove_connection(user_id)
    return StatusResponse(status="ok")


@router.get("/blocks", response_model=BlocksResponse)
def list_blocks(session: UserSession = Depends(get_session)):
    return BlocksResponse(user_ids=sorted(session.connections.fetch_blocked_users()))


@router.put("/blocks/{user_id}", response_model=StatusResponse)
def block_user(user_id: str, session: UserSession = Depends(get_session)):
    session.connections.block_user(user_id)
    return StatusResponse(status="ok")


@router.delete("/blocks/{user_id}", response_model=StatusResponse)
def unblock_user(user_id: str, session: UserSession = Depends(get_session)):
    session.connections.unblock_user(user_id)
    return StatusResponse(status="ok")


@router.post("/auth/sign-out", response_model=StatusResponse)
def sign_out(
    user_id: str = Depends(get_current_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    registry.close(user_id)
    return StatusResponse(status="ok")
