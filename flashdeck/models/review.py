"""Review models for flashdeck."""

import uuid
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from .card import CardResponse


class ReviewRequest(BaseModel):
    """Request model for submitting a review."""

    card_id: str = Field(..., min_length=1, description="Reviewed card ID")
    # strict: "3", 3.0 and true are rejected rather than coerced
    rating: int = Field(..., strict=True, ge=1, le=4, description="1=Again, 2=Hard, 3=Good, 4=Easy")


class ReviewResponse(BaseModel):
    """Response model for a review record."""

    review_id: str
    card_id: str
    rating: int
    reviewed_at: datetime


class SubmitReviewResponse(BaseModel):
    """Response model for a completed review."""

    review: ReviewResponse
    card: CardResponse


class DueCardsResponse(BaseModel):
    """Response model for due cards list."""

    due_cards: List[CardResponse]
    total_due_count: int


class Review(BaseModel):
    """Immutable record of one rating event."""

    model_config = {"frozen": True}

    review_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    card_id: str
    rating: int = Field(..., ge=1, le=4)
    reviewed_at: datetime

    def to_response(self) -> ReviewResponse:
        """Convert to API response model."""
        return ReviewResponse(**self.model_dump())

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item."""
        return {
            "card_id": self.card_id,
            "review_id": self.review_id,
            "rating": self.rating,
            "reviewed_at": self.reviewed_at.isoformat(),
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> "Review":
        """Create Review from DynamoDB item."""
        return cls(
            review_id=item["review_id"],
            card_id=item["card_id"],
            rating=int(item["rating"]),
            reviewed_at=datetime.fromisoformat(item["reviewed_at"]),
        )
