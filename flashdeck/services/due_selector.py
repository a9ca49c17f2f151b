"""Selection and ordering of cards that are due for review."""

from datetime import datetime
from typing import Iterable, List, Optional

from ..models.card import Card


def is_due(card: Card, now: datetime) -> bool:
    """A card is due when it was never scheduled or its review time has passed."""
    return card.next_review is None or card.next_review <= now


def _due_order(card: Card) -> tuple:
    # Never-reviewed cards sort before anything with a concrete due date
    if card.next_review is None:
        return (0,)
    return (1, card.next_review)


def select_due(
    cards: Iterable[Card],
    now: datetime,
    limit: Optional[int] = None,
) -> List[Card]:
    """Select the cards due at ``now``, earliest first.

    Never-reviewed cards come first in their input order, followed by the
    remaining due cards by ascending next review. Equal keys keep their input
    order. The input is not modified.

    Args:
        cards: Snapshot of cards to choose from.
        now: Reference time.
        limit: Maximum number of cards to return, or None for all.

    Returns:
        A new list holding at most ``limit`` cards.

    Raises:
        ValueError: If limit is negative.
    """
    if limit is not None and limit < 0:
        raise ValueError(f"Limit must not be negative, got {limit}")

    due = sorted((card for card in cards if is_due(card, now)), key=_due_order)
    if limit is None:
        return due
    return due[:limit]
