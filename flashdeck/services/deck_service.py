"""Deck service: deck lifecycle and study statistics."""

import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from aws_lambda_powertools import Logger

from ..models.deck import Deck, DeckWithStatsResponse, GlobalStatsResponse
from ..storage.base import DeckNotFoundError, Storage
from .mastery import MASTERY_INTERVAL_DAYS, DeckStats, classify, summarize

logger = Logger()


@dataclass
class DeckSummary:
    """A deck with its statistics."""

    deck: Deck
    stats: DeckStats

    def to_response(self) -> DeckWithStatsResponse:
        return DeckWithStatsResponse(
            deck_id=self.deck.deck_id,
            name=self.deck.name,
            created_at=self.deck.created_at,
            total_cards=self.stats.total,
            mastered_cards=self.stats.mastered,
            due_today=self.stats.due_today,
            last_studied=self.stats.last_studied,
        )


@dataclass
class GlobalStats:
    """Totals across every deck."""

    total_cards: int
    mastered_cards: int
    learning_cards: int
    new_cards: int
    decks: List[DeckSummary] = field(default_factory=list)

    def to_response(self) -> GlobalStatsResponse:
        return GlobalStatsResponse(
            total_cards=self.total_cards,
            mastered_cards=self.mastered_cards,
            learning_cards=self.learning_cards,
            new_cards=self.new_cards,
            decks=[summary.to_response() for summary in self.decks],
        )


class DeckService:
    """Service for deck operations on top of a storage handle."""

    def __init__(self, storage: Storage, mastery_threshold_days: Optional[int] = None):
        """Initialize DeckService.

        Args:
            storage: Storage handle owned by the caller.
            mastery_threshold_days: Interval at which a card counts as
                mastered. Defaults to MASTERY_INTERVAL_DAYS env var, then 7.
        """
        self.storage = storage
        if mastery_threshold_days is None:
            mastery_threshold_days = int(os.environ.get("MASTERY_INTERVAL_DAYS", MASTERY_INTERVAL_DAYS))
        if mastery_threshold_days < 1:
            raise ValueError(f"mastery_threshold_days must be at least 1, got {mastery_threshold_days}")
        self.mastery_threshold_days = mastery_threshold_days

    def create_deck(self, name: str) -> Deck:
        """Create an empty deck."""
        deck = self.storage.create_deck(Deck(name=name, created_at=datetime.now(timezone.utc)))
        logger.info(f"Created deck {deck.deck_id}")
        return deck

    def get_deck(self, deck_id: str) -> Deck:
        """Get a deck by ID.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        deck = self.storage.get_deck(deck_id)
        if deck is None:
            raise DeckNotFoundError(f"Deck not found: {deck_id}")
        return deck

    def list_decks(self) -> List[Deck]:
        return self.storage.list_decks()

    def delete_deck(self, deck_id: str) -> None:
        """Delete a deck with all of its cards and reviews.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        self.storage.delete_deck(deck_id)
        logger.info(f"Deleted deck {deck_id}")

    def get_deck_with_stats(self, deck_id: str, now: Optional[datetime] = None) -> DeckSummary:
        """Get a deck and the statistics of its cards.

        Raises:
            DeckNotFoundError: If the deck does not exist.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        deck = self.get_deck(deck_id)
        stats = classify(self.storage.get_cards(deck_id), now, self.mastery_threshold_days)
        return DeckSummary(deck=deck, stats=stats)

    def list_decks_with_stats(self, now: Optional[datetime] = None) -> List[DeckSummary]:
        """List every deck with statistics, newest deck first."""
        if now is None:
            now = datetime.now(timezone.utc)

        # One pass over all cards instead of a query per deck
        cards_by_deck = defaultdict(list)
        for card in self.storage.list_all_cards():
            cards_by_deck[card.deck_id].append(card)

        return [
            DeckSummary(
                deck=deck,
                stats=classify(cards_by_deck.get(deck.deck_id, []), now, self.mastery_threshold_days),
            )
            for deck in self.storage.list_decks()
        ]

    def get_global_stats(self, now: Optional[datetime] = None) -> GlobalStats:
        """Aggregate statistics across all decks.

        Learning cards are the ones due now; new cards are whatever is
        neither mastered nor due.
        """
        summaries = self.list_decks_with_stats(now)
        totals = summarize(summary.stats for summary in summaries)
        return GlobalStats(
            total_cards=totals.total,
            mastered_cards=totals.mastered,
            learning_cards=totals.due_today,
            new_cards=max(0, totals.total - totals.mastered - totals.due_today),
            decks=summaries,
        )
