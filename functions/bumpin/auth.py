"""
Bearer token verification for the API.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from firebase_admin import auth as firebase_auth

from bumpin.errors import NotAuthenticatedError

logger = logging.getLogger(__name__)


class Authenticator(Protocol):
    def verify(self, token: str) -> str:
        """Returns the user id the token belongs to."""
        ...


class FirebaseAuthenticator:
    """Verifies Firebase Auth ID tokens."""

    def __init__(self, app=None):
        self._app = app

    def verify(self, token: str) -> str:
        try:
            claims = firebase_auth.verify_id_token(token, app=self._app)
        except (ValueError, firebase_auth.InvalidIdTokenError) as exc:
            logger.info("Rejected ID token: %s", exc)
            raise NotAuthenticatedError() from exc
        return claims["uid"]


class DevAuthenticator:
    """Accepts the user id itself as the token. Local development and tests only."""

    def __init__(self):
        logger.warning("Using development authenticator; tokens are not verified")

    def verify(self, token: str) -> str:
        if not token:
            raise NotAuthenticatedError()
        return token


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise NotAuthenticatedError()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise NotAuthenticatedError()
    return token.strip()
