"""
Domain errors raised by the services and rendered by the API layer.
"""

from __future__ import annotations

from enum import StrEnum


class BumpInError(Exception):
    """Base class for every error the API reports with a specific code."""

    code = "error"
    status_code = 400
    message = "Something went wrong"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


class NotAuthenticatedError(BumpInError):
    code = "not_authenticated"
    status_code = 401
    message = "User not authenticated"


class InvalidRequestError(BumpInError):
    code = "invalid_request"
    status_code = 400
    message = "Invalid connection request"


class AlreadyConnectedError(BumpInError):
    code = "already_connected"
    status_code = 409
    message = "You are already connected with this user"


class RequestAlreadyExistsError(BumpInError):
    code = "request_already_exists"
    status_code = 409
    message = "A connection request already exists"


class RequestNotFoundError(BumpInError):
    code = "request_not_found"
    status_code = 404
    message = "Connection request not found"


class BlockedError(BumpInError):
    code = "blocked"
    status_code = 403
    message = "You can't connect with this user"


class UserNotFoundError(BumpInError):
    code = "user_not_found"
    status_code = 404
    message = "User not found"


class CardNotFoundError(BumpInError):
    code = "card_not_found"
    status_code = 404
    message = "Card not found"


class CardAccessDeniedError(BumpInError):
    code = "card_access_denied"
    status_code = 403
    message = "You need to connect with this user to view their card"


class ContactError(BumpInError):
    code = "invalid_contact"
    status_code = 400
    message = "Card can't be added to contacts"


class InvalidProfileLinkError(BumpInError):
    code = "invalid_profile_link"
    status_code = 400
    message = "Not a profile link"


class UsernameErrorKind(StrEnum):
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    INVALID_CHARACTERS = "invalid_characters"
    INVALID_START_OR_END = "invalid_start_or_end"
    CONSECUTIVE_SPECIAL_CHARACTERS = "consecutive_special_characters"
    RESERVED = "reserved"
    ALREADY_TAKEN = "already_taken"


class UsernameValidationError(BumpInError):
    code = "invalid_username"
    status_code = 422

    def __init__(self, kind: UsernameErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class StoreError(BumpInError):
    """Opaque store or network failure. Wraps the underlying transport error."""

    code = "store_unavailable"
    status_code = 503
    message = "Couldn't complete the request, try again"

    def __init__(self, message: str | None = None, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class TransientStoreError(StoreError):
    """A store failure that is safe to retry for idempotent operations."""


class DocumentNotFoundError(StoreError):
    """An update targeted a document that does not exist."""

    code = "document_not_found"
    status_code = 404
    message = "Document not found"


class DocumentAlreadyExistsError(StoreError):
    """A create targeted a document that already exists."""

    code = "document_already_exists"
    status_code = 409
    message = "Document already exists"
