"""Card service: card creation, lookup and due-card listings."""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from aws_lambda_powertools import Logger

from ..models.card import Card
from ..models.deck import Deck
from ..storage.base import CardNotFoundError, DeckNotFoundError, Storage
from .due_selector import select_due

logger = Logger()


class CardService:
    """Service for card operations on top of a storage handle."""

    def __init__(self, storage: Storage):
        """Initialize CardService.

        Args:
            storage: Storage handle owned by the caller.
        """
        self.storage = storage

    def _require_deck(self, deck_id: str) -> Deck:
        deck = self.storage.get_deck(deck_id)
        if deck is None:
            raise DeckNotFoundError(f"Deck not found: {deck_id}")
        return deck

    def create_card(self, deck_id: str, front: str, back: str) -> Card:
        """Create a card with the default SRS state.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        self._require_deck(deck_id)
        card = self.storage.create_card(
            Card(deck_id=deck_id, front=front, back=back, created_at=datetime.now(timezone.utc))
        )
        logger.info(f"Created card {card.card_id} in deck {deck_id}")
        return card

    def create_cards(self, deck_id: str, seeds: Iterable[Tuple[str, str]]) -> List[Card]:
        """Create cards from (front, back) pairs, e.g. generated ones.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        self._require_deck(deck_id)
        cards = []
        for front, back in seeds:
            cards.append(
                self.storage.create_card(
                    Card(deck_id=deck_id, front=front, back=back, created_at=datetime.now(timezone.utc))
                )
            )
        logger.info(f"Created {len(cards)} cards in deck {deck_id}")
        return cards

    def get_card(self, card_id: str) -> Card:
        """Get a card by ID.

        Raises:
            CardNotFoundError: If the card does not exist.
        """
        card = self.storage.get_card(card_id)
        if card is None:
            raise CardNotFoundError(f"Card not found: {card_id}")
        return card

    def get_card_with_deck(self, card_id: str) -> Tuple[Card, Deck]:
        """Get a card together with its deck.

        Raises:
            CardNotFoundError: If the card, or the deck it points to, is missing.
        """
        card = self.get_card(card_id)
        deck = self.storage.get_deck(card.deck_id)
        if deck is None:
            raise CardNotFoundError(f"Card not found: {card_id}")
        return card, deck

    def get_cards(self, deck_id: str) -> List[Card]:
        """List a deck's cards in creation order.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        self._require_deck(deck_id)
        return self.storage.get_cards(deck_id)

    def get_due_cards(
        self,
        deck_id: Optional[str] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Card]:
        """Get cards due for review, in review order.

        Args:
            deck_id: Restrict to one deck; all decks when None.
            limit: Maximum number of cards to return.
            now: Reference time. Defaults to the current UTC time.

        Raises:
            DeckNotFoundError: If deck_id is given and the deck does not exist.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if deck_id is None:
            cards = self.storage.list_all_cards()
        else:
            cards = self.get_cards(deck_id)
        return select_due(cards, now, limit)
