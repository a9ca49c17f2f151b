"""Review service: applies ratings to cards and records the audit trail."""

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from aws_lambda_powertools import Logger

from ..models.card import Card
from ..models.review import Review, SubmitReviewResponse
from ..storage.base import CardNotFoundError, ConcurrencyConflictError, Storage
from .srs import calculate_next_state, validate_rating

logger = Logger()


class ReviewServiceError(Exception):
    """Base exception for review service errors."""

    pass


class ReviewConflictError(ReviewServiceError):
    """Raised when concurrent reviews kept winning the race for a card."""

    pass


@dataclass
class ReviewResult:
    """Committed review and the card state it produced."""

    review: Review
    card: Card

    def to_response(self) -> SubmitReviewResponse:
        return SubmitReviewResponse(review=self.review.to_response(), card=self.card.to_response())


class ReviewService:
    """Service for submitting reviews and updating SRS state."""

    DEFAULT_MAX_ATTEMPTS = 3

    def __init__(self, storage: Storage, max_attempts: Optional[int] = None):
        """Initialize ReviewService.

        Args:
            storage: Storage handle owned by the caller.
            max_attempts: Commit attempts per review before giving up.
                Defaults to REVIEW_MAX_ATTEMPTS env var, then 3.
        """
        self.storage = storage
        if max_attempts is None:
            max_attempts = int(os.environ.get("REVIEW_MAX_ATTEMPTS", self.DEFAULT_MAX_ATTEMPTS))
        self.max_attempts = max_attempts
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def submit_review(
        self,
        card_id: str,
        rating: int,
        now: Optional[datetime] = None,
    ) -> ReviewResult:
        """Submit a rating for a card and update its schedule.

        The card update and the review record are committed together, and
        only if the card is unchanged since it was read. On a conflict the
        card is reloaded and the new state recomputed from the fresh values.

        Args:
            card_id: The card's ID.
            rating: Review rating (1-4).
            now: Time of the review. Defaults to the current UTC time.

        Returns:
            ReviewResult with the stored review and updated card.

        Raises:
            InvalidRatingError: If rating is not in 1-4.
            CardNotFoundError: If the card does not exist.
            ReviewConflictError: If every attempt lost to a concurrent review.
            StorageError: If the backend fails.
        """
        rating = validate_rating(rating)
        if now is None:
            now = datetime.now(timezone.utc)

        for attempt in range(1, self.max_attempts + 1):
            card = self.storage.get_card(card_id)
            if card is None:
                raise CardNotFoundError(f"Card not found: {card_id}")

            result = calculate_next_state(card, rating, now)
            review = Review(card_id=card_id, rating=int(rating), reviewed_at=now)

            try:
                updated = self.storage.commit_review(card, result, review)
            except ConcurrencyConflictError:
                logger.warning(f"Review conflict on card {card_id} (attempt {attempt}/{self.max_attempts})")
                continue

            logger.info(
                f"Reviewed card {card_id}: rating={int(rating)} "
                f"interval {card.interval}->{updated.interval} ease {card.ease}->{updated.ease}"
            )
            return ReviewResult(review=review, card=updated)

        raise ReviewConflictError(
            f"Card {card_id} changed concurrently {self.max_attempts} times, please retry"
        )

    def get_reviews(self, card_id: str) -> List[Review]:
        """Return the review history of a card, oldest first.

        Raises:
            CardNotFoundError: If the card does not exist.
        """
        if self.storage.get_card(card_id) is None:
            raise CardNotFoundError(f"Card not found: {card_id}")
        return self.storage.get_reviews(card_id)

