"""Card models for flashdeck."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..services.srs import DEFAULT_EASE, DEFAULT_INTERVAL, EASE_MAXIMUM, EASE_MINIMUM


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class CreateCardRequest(BaseModel):
    """Request model for creating a card."""

    deck_id: str = Field(..., min_length=1, description="Owning deck ID")
    front: str = Field(..., min_length=1, max_length=1000, description="Front side text")
    back: str = Field(..., min_length=1, max_length=2000, description="Back side text")

    @field_validator("front", "back")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only card sides."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Card text cannot be empty or whitespace only")
        return stripped


class CardResponse(BaseModel):
    """Response model for a card."""

    card_id: str
    deck_id: str
    front: str
    back: str
    created_at: datetime
    last_reviewed: Optional[datetime] = None
    next_review: Optional[datetime] = None
    ease: int
    interval: int
    repetitions: int


class CardWithDeckResponse(CardResponse):
    """Card response including the owning deck's name."""

    deck_name: str


class CardEdit(BaseModel):
    """Content edit for a stored card.

    SRS fields are absent on purpose: they only change through a committed
    review. Unknown keys are rejected.
    """

    model_config = {"extra": "forbid"}

    deck_id: Optional[str] = Field(default=None, min_length=1)
    front: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    back: Optional[str] = Field(default=None, min_length=1, max_length=2000)

    @field_validator("deck_id", "front", "back")
    @classmethod
    def validate_present(cls, v: Optional[str]) -> str:
        """Reject explicit nulls and whitespace-only values."""
        if v is None or not v.strip():
            raise ValueError("Card fields cannot be null, empty or whitespace only")
        return v.strip()

    @classmethod
    def changes(cls, fields: dict) -> dict:
        """Validate a partial update and return only the keys it sets.

        Raises:
            pydantic.ValidationError: On unknown keys or invalid values.
        """
        return cls.model_validate(fields).model_dump(exclude_unset=True)


class Card(BaseModel):
    """Card domain model."""

    card_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    deck_id: str
    front: str = Field(..., min_length=1)
    back: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=_utcnow)
    last_reviewed: Optional[datetime] = None
    next_review: Optional[datetime] = None  # None means due immediately
    ease: int = Field(default=DEFAULT_EASE, ge=EASE_MINIMUM, le=EASE_MAXIMUM)  # Hundredths
    interval: int = Field(default=DEFAULT_INTERVAL, ge=1)  # Days until next review
    repetitions: int = Field(default=0, ge=0)  # Number of completed reviews
    version: int = Field(default=0, ge=0)  # Bumped on every committed review or edit

    @field_validator("front", "back")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Card text cannot be empty or whitespace only")
        return v

    def to_response(self) -> CardResponse:
        """Convert to API response model."""
        return CardResponse(**self.model_dump(exclude={"version"}))

    def to_response_with_deck(self, deck_name: str) -> CardWithDeckResponse:
        """Convert to API response model carrying the deck name."""
        return CardWithDeckResponse(deck_name=deck_name, **self.model_dump(exclude={"version"}))

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item."""
        item = {
            "card_id": self.card_id,
            "deck_id": self.deck_id,
            "front": self.front,
            "back": self.back,
            "created_at": self.created_at.isoformat(),
            "ease": self.ease,
            "interval": self.interval,
            "repetitions": self.repetitions,
            "version": self.version,
        }
        if self.last_reviewed:
            item["last_reviewed"] = self.last_reviewed.isoformat()
        if self.next_review:
            item["next_review"] = self.next_review.isoformat()
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> "Card":
        """Create Card from DynamoDB item."""
        return cls(
            card_id=item["card_id"],
            deck_id=item["deck_id"],
            front=item["front"],
            back=item["back"],
            created_at=datetime.fromisoformat(item["created_at"]),
            last_reviewed=_parse_timestamp(item.get("last_reviewed")),
            next_review=_parse_timestamp(item.get("next_review")),
            ease=int(item.get("ease", DEFAULT_EASE)),
            interval=int(item.get("interval", DEFAULT_INTERVAL)),
            repetitions=int(item.get("repetitions", 0)),
            version=int(item.get("version", 0)),
        )
