"""In-process storage backend for local runs and tests."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from ..models.card import Card, CardEdit
from ..models.deck import Deck
from ..models.review import Review
from ..services.srs import SRSResult
from .base import CardNotFoundError, ConcurrencyConflictError, DeckNotFoundError, StorageError


class InMemoryStorage:
    """Dictionary-backed implementation of the Storage interface.

    Records are copied on the way in and out, so callers always hold a
    snapshot. Reviews of one card serialize on that card's lock; different
    cards never wait on each other beyond the short map lock.
    """

    def __init__(self) -> None:
        self._decks: Dict[str, Deck] = {}
        self._cards: Dict[str, Card] = {}
        self._reviews: Dict[str, List[Review]] = {}
        self._lock = threading.Lock()
        self._card_locks: Dict[str, threading.Lock] = {}

    @contextmanager
    def _card_lock(self, card_id: str) -> Iterator[None]:
        with self._lock:
            lock = self._card_locks.setdefault(card_id, threading.Lock())
        with lock:
            yield

    # Decks

    def create_deck(self, deck: Deck) -> Deck:
        with self._lock:
            if deck.deck_id in self._decks:
                raise StorageError(f"Deck already exists: {deck.deck_id}")
            self._decks[deck.deck_id] = deck.model_copy()
        return deck.model_copy()

    def get_deck(self, deck_id: str) -> Optional[Deck]:
        with self._lock:
            deck = self._decks.get(deck_id)
        return deck.model_copy() if deck else None

    def list_decks(self) -> List[Deck]:
        with self._lock:
            decks = [deck.model_copy() for deck in self._decks.values()]
        return sorted(decks, key=lambda deck: deck.created_at, reverse=True)

    def delete_deck(self, deck_id: str) -> None:
        with self._lock:
            if deck_id not in self._decks:
                raise DeckNotFoundError(f"Deck not found: {deck_id}")
            card_ids = [card.card_id for card in self._cards.values() if card.deck_id == deck_id]
            for card_id in card_ids:
                self._reviews.pop(card_id, None)
                del self._cards[card_id]
                self._card_locks.pop(card_id, None)
            del self._decks[deck_id]

    # Cards

    def create_card(self, card: Card) -> Card:
        with self._lock:
            # Deck check and insert share the map lock with delete_deck
            if card.deck_id not in self._decks:
                raise DeckNotFoundError(f"Deck not found: {card.deck_id}")
            if card.card_id in self._cards:
                raise StorageError(f"Card already exists: {card.card_id}")
            self._cards[card.card_id] = card.model_copy()
        return card.model_copy()

    def get_card(self, card_id: str) -> Optional[Card]:
        with self._lock:
            card = self._cards.get(card_id)
        return card.model_copy() if card else None

    def get_cards(self, deck_id: str) -> List[Card]:
        with self._lock:
            return [card.model_copy() for card in self._cards.values() if card.deck_id == deck_id]

    def list_all_cards(self) -> List[Card]:
        with self._lock:
            return [card.model_copy() for card in self._cards.values()]

    def update_card(self, card_id: str, fields: dict) -> Card:
        changes = CardEdit.changes(fields)
        with self._card_lock(card_id):
            with self._lock:
                card = self._cards.get(card_id)
                if card is None:
                    raise CardNotFoundError(f"Card not found: {card_id}")
                if not changes:
                    return card.model_copy()
                if "deck_id" in changes and changes["deck_id"] not in self._decks:
                    raise DeckNotFoundError(f"Deck not found: {changes['deck_id']}")
                updated = Card.model_validate({**card.model_dump(), **changes, "version": card.version + 1})
                self._cards[card_id] = updated
        return updated.model_copy()

    # Reviews

    def get_reviews(self, card_id: str) -> List[Review]:
        with self._lock:
            reviews = list(self._reviews.get(card_id, []))
        return sorted(reviews, key=lambda review: review.reviewed_at)

    def commit_review(self, card: Card, result: SRSResult, review: Review) -> Card:
        with self._card_lock(card.card_id):
            with self._lock:
                stored = self._cards.get(card.card_id)
                if stored is None:
                    raise CardNotFoundError(f"Card not found: {card.card_id}")
                if stored.version != card.version:
                    raise ConcurrencyConflictError(
                        f"Card {card.card_id} is at version {stored.version}, expected {card.version}"
                    )
                updated = stored.model_copy(update={**result.as_fields(), "version": stored.version + 1})
                self._cards[card.card_id] = updated
                self._reviews.setdefault(card.card_id, []).append(review)
        return updated.model_copy()
