"""Storage capability interfaces and errors shared by every backend."""

from typing import List, Optional, Protocol, runtime_checkable

from ..models.card import Card
from ..models.deck import Deck
from ..models.review import Review
from ..services.srs import SRSResult


class StorageError(Exception):
    """Base exception for storage failures (backend unavailable, unexpected errors)."""

    pass


class DeckNotFoundError(StorageError):
    """Raised when a deck does not exist."""

    pass


class CardNotFoundError(StorageError):
    """Raised when a card does not exist."""

    pass


class ConcurrencyConflictError(StorageError):
    """Raised when a card changed between read and conditional write."""

    pass


@runtime_checkable
class DeckStore(Protocol):
    """Deck persistence contract."""

    def create_deck(self, deck: Deck) -> Deck:
        ...

    def get_deck(self, deck_id: str) -> Optional[Deck]:
        ...

    def list_decks(self) -> List[Deck]:
        """Return all decks, newest first."""
        ...

    def delete_deck(self, deck_id: str) -> None:
        """Delete a deck with its cards and their reviews.

        Reviews and cards are removed before the deck record, so a reader
        never observes a card whose deck is gone.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        ...


@runtime_checkable
class CardStore(Protocol):
    """Card persistence contract."""

    def create_card(self, card: Card) -> Card:
        """Insert a card into an existing deck.

        The deck check is part of the write, so a card never lands in a deck
        that a concurrent delete_deck has removed.

        Raises:
            DeckNotFoundError: If the card's deck does not exist.
        """
        ...

    def get_card(self, card_id: str) -> Optional[Card]:
        ...

    def get_cards(self, deck_id: str) -> List[Card]:
        """Return the cards of a deck in creation order."""
        ...

    def list_all_cards(self) -> List[Card]:
        ...

    def update_card(self, card_id: str, fields: dict) -> Card:
        """Edit a card's content (``front``, ``back`` or ``deck_id``).

        Every applied edit bumps the card's version, so a review computed
        from an earlier read fails its version check. SRS fields cannot be
        set here.

        Raises:
            pydantic.ValidationError: On other keys or invalid values.
            CardNotFoundError: If the card does not exist.
            DeckNotFoundError: If ``deck_id`` names a missing deck.
        """
        ...


@runtime_checkable
class ReviewStore(Protocol):
    """Review persistence contract."""

    def get_reviews(self, card_id: str) -> List[Review]:
        """Return the reviews of a card, oldest first."""
        ...

    def commit_review(self, card: Card, result: SRSResult, review: Review) -> Card:
        """Persist a card's new SRS state together with its review record.

        Both writes succeed or neither is visible. The write only applies if
        the stored card still has ``card.version``.

        Returns:
            The updated card, with its version incremented.

        Raises:
            CardNotFoundError: If the card no longer exists.
            ConcurrencyConflictError: If the card's version has moved on.
        """
        ...


@runtime_checkable
class Storage(DeckStore, CardStore, ReviewStore, Protocol):
    """Full storage handle used by the services."""

    pass
