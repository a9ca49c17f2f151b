"""Simplified SM-2 spaced repetition scheduling."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any, Protocol


class Rating(IntEnum):
    """Review rating submitted by the learner."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


# Ease is stored in hundredths (250 == 2.5x)
EASE_MINIMUM = 130
EASE_MAXIMUM = 400
DEFAULT_EASE = 250
DEFAULT_INTERVAL = 1

AGAIN_EASE_PENALTY = 20
HARD_EASE_PENALTY = 15
EASY_EASE_BONUS = 10


class InvalidRatingError(ValueError):
    """Raised when a rating is not one of 1, 2, 3 or 4."""

    pass


class SchedulingState(Protocol):
    """The SRS fields the scheduler reads from a card."""

    ease: int
    interval: int
    repetitions: int


@dataclass(frozen=True)
class CardState:
    """Plain SRS state, for callers that do not hold a full card."""

    ease: int = DEFAULT_EASE
    interval: int = DEFAULT_INTERVAL
    repetitions: int = 0


@dataclass(frozen=True)
class SRSResult:
    """Result of a scheduling calculation."""

    ease: int
    interval: int
    repetitions: int
    last_reviewed: datetime
    next_review: datetime

    def as_fields(self) -> dict:
        """Return the result as card field updates."""
        return {
            "ease": self.ease,
            "interval": self.interval,
            "repetitions": self.repetitions,
            "last_reviewed": self.last_reviewed,
            "next_review": self.next_review,
        }


def validate_rating(rating: Any) -> Rating:
    """Check a raw rating value and convert it to a Rating.

    Raises:
        InvalidRatingError: If rating is not an integer in 1-4. Booleans are
            rejected even though they are ints.
    """
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRatingError(f"Rating must be an integer between 1 and 4, got {rating!r}")
    if not Rating.AGAIN <= rating <= Rating.EASY:
        raise InvalidRatingError(f"Rating must be between 1 and 4, got {rating}")
    return Rating(rating)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def calculate_next_state(
    current: SchedulingState,
    rating: int,
    now: datetime,
) -> SRSResult:
    """
    Calculate the next SRS state for a card.

    | Rating | New interval                       | New ease              |
    |--------|------------------------------------|-----------------------|
    | Again  | 1                                  | max(130, ease - 20)   |
    | Hard   | ceil(interval * 1.2)               | max(130, ease - 15)   |
    | Good   | ceil(interval * ease / 100)        | unchanged             |
    | Easy   | ceil(interval * ease / 100 * 1.3)  | min(400, ease + 10)   |

    Intervals are computed in integer arithmetic so the ceiling is exact.
    The next review is ``now`` plus the interval in calendar days: adding a
    timedelta keeps the wall-clock time in ``now``'s tzinfo, so for a zone
    with DST the local time of day is preserved rather than the elapsed hours.

    Repetitions increase on every rating, Again included. They are a
    reporting signal only and never feed back into the interval.

    Args:
        current: Object with ease, interval and repetitions.
        rating: Review rating (1-4).
        now: Time of the review.

    Returns:
        SRSResult with the updated fields.

    Raises:
        InvalidRatingError: If rating is not in 1-4.
    """
    rating = validate_rating(rating)
    ease = current.ease
    interval = current.interval

    if rating == Rating.AGAIN:
        new_interval = 1
        new_ease = max(EASE_MINIMUM, ease - AGAIN_EASE_PENALTY)
    elif rating == Rating.HARD:
        new_interval = _ceil_div(interval * 12, 10)
        new_ease = max(EASE_MINIMUM, ease - HARD_EASE_PENALTY)
    elif rating == Rating.GOOD:
        new_interval = _ceil_div(interval * ease, 100)
        new_ease = ease
    else:
        new_interval = _ceil_div(interval * ease * 13, 1000)
        new_ease = min(EASE_MAXIMUM, ease + EASY_EASE_BONUS)

    new_interval = max(1, new_interval)

    return SRSResult(
        ease=new_ease,
        interval=new_interval,
        repetitions=current.repetitions + 1,
        last_reviewed=now,
        next_review=now + timedelta(days=new_interval),
    )
