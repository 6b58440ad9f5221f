"""
User profiles: username rules, signup, lookup, search and profile links.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import replace
from typing import List, Optional

from bumpin.cache import SessionCache
from bumpin.cards import CardService, empty_card
from bumpin.deep_links import parse_profile_link
from bumpin.errors import (
    InvalidRequestError,
    NotAuthenticatedError,
    UserNotFoundError,
    UsernameErrorKind,
    UsernameValidationError,
)
from bumpin.retry import RetryingDocumentStore
from bumpin.state import Observable
from bumpin.usernames import username_error, validate_username_format
from shared.constants import SEARCH_RESULTS_LIMIT, USERNAME_MAX_LENGTH, USERNAME_MIN_LENGTH
from shared.documents import from_document, to_document
from shared.firebase_constants import (
    USERS_COLLECTION,
    blocked_users_path,
    card_path,
    user_path,
)
from shared.types import User

logger = logging.getLogger(__name__)

# Any character outside [a-z0-9._] when deriving a username from an email.
_DISALLOWED = re.compile(r"[^a-z0-9._]")
_SPECIAL_RUN = re.compile(r"[._]{2,}")


def user_document(user: User) -> dict:
    """The users/{id} document. The card lives in cards/{id}, not here."""
    return to_document(replace(user, card=None))


def username_from_email(email: str) -> str:
    """Best-effort username candidate from the local part of an email."""
    local = email.split("@", 1)[0].lower()
    candidate = _DISALLOWED.sub("", local)
    candidate = _SPECIAL_RUN.sub(lambda m: m.group(0)[0], candidate)
    candidate = candidate.strip("._")
    if len(candidate) < USERNAME_MIN_LENGTH:
        candidate = f"user{candidate}"
    return candidate[:USERNAME_MAX_LENGTH].rstrip("._")


class UserService:
    def __init__(
        self,
        store: RetryingDocumentStore,
        cache: SessionCache,
        cards: CardService,
        *,
        actor_id: Optional[str] = None,
        search_limit: int = SEARCH_RESULTS_LIMIT,
    ):
        self.store = store
        self.cache = cache
        self.cards = cards
        self.actor_id = actor_id
        self.search_limit = search_limit
        self.current_user: Observable[Optional[User]] = Observable(None)
        self.search_results: Observable[List[User]] = Observable([])

    def _require_actor(self) -> str:
        if not self.actor_id:
            raise NotAuthenticatedError()
        return self.actor_id

    def is_username_available(self, username: str) -> bool:
        docs = self.store.query(
            USERS_COLLECTION, [("username", "==", username.lower())], limit=1
        )
        return not docs

    def validate_username(self, username: str) -> str:
        """Applies the format rules, then checks availability. Returns the normalized name."""
        name = validate_username_format(username)
        if not self.is_username_available(name):
            raise username_error(UsernameErrorKind.ALREADY_TAKEN)
        return name

    def create_user(self, username: str, email: str = "") -> User:
        """Creates the actor's profile and an empty card in one batch."""
        actor = self._require_actor()
        if self.store.get(user_path(actor)) is not None:
            raise InvalidRequestError("Profile already exists")
        name = self.validate_username(username)
        return self._write_new_profile(actor, name, email)

    def _write_new_profile(self, user_id: str, username: str, email: str) -> User:
        card = empty_card(user_id, email)
        user = User(id=user_id, username=username, card=card)

        batch = self.store.batch()
        batch.set(user_path(user_id), user_document(user))
        batch.set(card_path(user_id), to_document(card))
        batch.commit()

        self.cache.users.put(user)
        self.cache.cards.put(card)
        self.current_user.set(user)
        logger.info("Created profile %s for %s", username, user_id)
        return user

    def get_or_create_profile(self, email: str) -> User:
        """
        Returns the actor's profile, creating one from the email's local part
        if the actor has none yet.
        """
        actor = self._require_actor()
        existing = self.get_user(actor)
        if existing:
            self.current_user.set(existing)
            return existing

        candidate = username_from_email(email)
        try:
            name = self.validate_username(candidate)
        except UsernameValidationError:
            suffix = uuid.uuid4().hex[:6]
            head = candidate[: USERNAME_MAX_LENGTH - len(suffix) - 1].rstrip("._")
            name = f"{head}_{suffix}"
        return self._write_new_profile(actor, name, email)

    def get_user(self, user_id: str) -> Optional[User]:
        cached = self.cache.users.get(user_id)
        if cached:
            return cached
        data = self.store.get(user_path(user_id))
        if data is None:
            return None
        user = self._decode_user(data)
        self.cache.users.put(user)
        return user

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    def _decode_user(self, data: dict) -> User:
        """The stored profile with its card attached only if the actor may see it."""
        user = from_document(User, data)
        user.card = self.cards.visible_card(user.id)
        return user

    def update_user(self, user: User) -> User:
        self.store.set(user_path(user.id), user_document(user), merge=True)
        self.cache.users.put(user)
        if user.id == self.actor_id:
            self.current_user.set(user)
        return user

    def find_by_username(self, username: str) -> Optional[User]:
        docs = self.store.query(
            USERS_COLLECTION, [("username", "==", username.lower())], limit=1
        )
        if not docs:
            return None
        user = self._decode_user(docs[0].data)
        self.cache.users.put(user)
        return user

    def blocked_user_ids(self) -> set[str]:
        actor = self._require_actor()
        return {doc.id for doc in self.store.query(blocked_users_path(actor))}

    def search_users(self, query: str) -> List[User]:
        """
        Lowercase prefix search over usernames. The actor and users the actor
        has blocked are never returned, cached or not.
        """
        actor = self._require_actor()
        prefix = query.strip().lower()
        if not prefix:
            self.search_results.set([])
            return []

        docs = self.store.query(
            USERS_COLLECTION,
            [("username", ">=", prefix), ("username", "<", prefix + "\uf8ff")],
            order_by="username",
            limit=self.search_limit,
        )
        blocked = self.blocked_user_ids()
        users: List[User] = []
        for doc in docs:
            if doc.id == actor or doc.id in blocked:
                continue
            user = self.cache.users.get(doc.id)
            if user is None:
                user = self._decode_user(doc.data)
                self.cache.users.put(user)
            users.append(user)
        self.search_results.set(users)
        return users

    def register_push_token(self, token: str) -> None:
        actor = self._require_actor()
        batch = self.store.batch()
        batch.update(user_path(actor), {"fcmToken": token})
        batch.commit()
        self.cache.users.invalidate(actor)

    def resolve_profile_link(self, url: str) -> User:
        """
        Looks up the user a profile link points at. The caller is expected to
        confirm with the viewer before connecting; nothing is written here.
        """
        username = parse_profile_link(url)
        user = self.find_by_username(username)
        if user is None:
            raise UserNotFoundError()
        return user
