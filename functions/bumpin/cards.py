"""
Business cards, saved contacts and card profile pictures.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from bumpin.cache import SessionCache
from bumpin.errors import (
    CardAccessDeniedError,
    CardNotFoundError,
    ContactError,
    NotAuthenticatedError,
)
from bumpin.retry import RetryingDocumentStore
from bumpin.state import Observable
from bumpin.storage import StorageClient
from shared.documents import from_document, to_document
from shared.firebase_constants import (
    PROFILE_PICTURES_PATH,
    card_path,
    connections_path,
    contacts_path,
)
from shared.types import BusinessCard

logger = logging.getLogger(__name__)

RECENT_CONTACTS_COUNT = 3


def empty_card(user_id: str, email: str = "") -> BusinessCard:
    """A blank card for a new user. The card id is the owner's user id."""
    return BusinessCard(id=user_id, user_id=user_id, email=email)


class CardService:
    def __init__(
        self,
        store: RetryingDocumentStore,
        cache: SessionCache,
        storage: Optional[StorageClient] = None,
        *,
        actor_id: Optional[str] = None,
    ):
        self.store = store
        self.cache = cache
        self.storage = storage
        self.actor_id = actor_id
        self.user_card: Observable[Optional[BusinessCard]] = Observable(None)
        self.contacts: Observable[List[BusinessCard]] = Observable([])
        self.recent_contacts: Observable[List[BusinessCard]] = Observable([])

    def _require_actor(self) -> str:
        if not self.actor_id:
            raise NotAuthenticatedError()
        return self.actor_id

    def save_card(self, card: BusinessCard) -> BusinessCard:
        actor = self._require_actor()
        card = replace(card, id=actor, user_id=actor)
        self.store.set(card_path(actor), to_document(card))
        self.cache.cards.put(card)
        self.user_card.set(card)
        return card

    def fetch_user_card(self, user_id: str) -> Optional[BusinessCard]:
        cached = self.cache.cards.get(user_id)
        if cached:
            return cached
        data = self.store.get(card_path(user_id))
        if data is None:
            return None
        card = from_document(BusinessCard, data)
        self.cache.cards.put(card)
        if user_id == self.actor_id:
            self.user_card.set(card)
        return card

    def can_view(self, card: BusinessCard) -> bool:
        """
        Viewers other than the owner need the card to be public or an
        existing connection with its owner.
        """
        if card.is_public or (self.actor_id and card.user_id == self.actor_id):
            return True
        if not self.actor_id:
            return False
        return self.store.get(f"{connections_path(self.actor_id)}/{card.user_id}") is not None

    def visible_card(self, user_id: str) -> Optional[BusinessCard]:
        """``user_id``'s card, or None when it is missing or hidden from the actor."""
        card = self.fetch_user_card(user_id)
        if card is None or not self.can_view(card):
            return None
        return card

    def fetch_card_by_id(self, card_id: str) -> BusinessCard:
        """Loads a shared card, enforcing ``can_view``."""
        self._require_actor()
        card = self.cache.cards.get(card_id)
        if card is None:
            data = self.store.get(card_path(card_id))
            if data is None:
                raise CardNotFoundError()
            card = from_document(BusinessCard, data)
        if not self.can_view(card):
            raise CardAccessDeniedError()
        self.cache.cards.put(card)
        return card

    def fetch_contacts(self) -> List[BusinessCard]:
        actor = self._require_actor()
        docs = self.store.query(contacts_path(actor))
        contacts = [from_document(BusinessCard, doc.data) for doc in docs]
        self.contacts.set(contacts)
        self.recent_contacts.set(contacts[:RECENT_CONTACTS_COUNT])
        return contacts

    def add_contact(self, card: BusinessCard) -> List[BusinessCard]:
        actor = self._require_actor()
        if card.user_id == actor or card.id == actor:
            raise ContactError("Cannot add your own card")
        contact_path = f"{contacts_path(actor)}/{card.id}"
        if self.store.get(contact_path) is not None:
            raise ContactError("Card already in contacts")
        self.store.set(contact_path, to_document(card))
        logger.info("User %s saved card %s", actor, card.id)
        return self.fetch_contacts()

    def remove_contact(self, card_id: str) -> List[BusinessCard]:
        actor = self._require_actor()
        self.store.delete(f"{contacts_path(actor)}/{card_id}")
        return self.fetch_contacts()

    def upload_profile_picture(
        self, image: bytes, content_type: str = "image/jpeg"
    ) -> str:
        actor = self._require_actor()
        if self.storage is None:
            raise RuntimeError("No storage client configured")
        path = f"{PROFILE_PICTURES_PATH}/{actor}.jpg"
        url = self.storage.upload_bytes(path, image, content_type)

        batch = self.store.batch()
        batch.update(card_path(actor), {"profilePictureURL": url})
        batch.commit()

        self.cache.cards.invalidate(actor)
        logger.info("Uploaded profile picture for %s (%d bytes)", actor, len(image))
        return url
