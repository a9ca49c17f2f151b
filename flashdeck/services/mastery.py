"""Deck statistics derived from card SRS state."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..models.card import Card
from .due_selector import is_due

# A card whose interval reached this many days counts as mastered
MASTERY_INTERVAL_DAYS = 7
# A reviewed card whose ease stayed at or above the starting ease counts as mastered
MASTERY_EASE = 250


@dataclass
class DeckStats:
    """Aggregate counts over a set of cards."""

    total: int = 0
    mastered: int = 0
    due_today: int = 0
    last_studied: Optional[datetime] = None


def is_mastered(card: Card, threshold_days: int = MASTERY_INTERVAL_DAYS) -> bool:
    """Return True when the card is considered well retained."""
    if card.interval >= threshold_days:
        return True
    return card.last_reviewed is not None and card.ease >= MASTERY_EASE


def classify(
    cards: Iterable[Card],
    now: datetime,
    threshold_days: int = MASTERY_INTERVAL_DAYS,
) -> DeckStats:
    """Compute total, mastered, due and last-studied figures for cards.

    Args:
        cards: Cards of one deck, or of several decks.
        now: Reference time for the due count.
        threshold_days: Interval at which a card counts as mastered.

    Returns:
        DeckStats for the given cards.
    """
    stats = DeckStats()
    for card in cards:
        stats.total += 1
        if is_mastered(card, threshold_days):
            stats.mastered += 1
        if is_due(card, now):
            stats.due_today += 1
        if card.last_reviewed and (stats.last_studied is None or card.last_reviewed > stats.last_studied):
            stats.last_studied = card.last_reviewed
    return stats


def summarize(per_deck: Iterable[DeckStats]) -> DeckStats:
    """Fold per-deck stats into one cross-deck DeckStats."""
    total = DeckStats()
    for stats in per_deck:
        total.total += stats.total
        total.mastered += stats.mastered
        total.due_today += stats.due_today
        if stats.last_studied and (total.last_studied is None or stats.last_studied > total.last_studied):
            total.last_studied = stats.last_studied
    return total
