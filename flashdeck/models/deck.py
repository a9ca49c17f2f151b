"""Deck models for flashdeck."""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CreateDeckRequest(BaseModel):
    """Request model for creating a deck."""

    name: str = Field(..., min_length=1, max_length=200, description="Deck name")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is not just whitespace."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Deck name cannot be empty or whitespace only")
        return stripped


class DeckResponse(BaseModel):
    """Response model for a deck."""

    deck_id: str
    name: str
    created_at: datetime


class DeckWithStatsResponse(DeckResponse):
    """Deck response with study statistics."""

    total_cards: int
    mastered_cards: int
    due_today: int
    last_studied: Optional[datetime] = None


class GlobalStatsResponse(BaseModel):
    """Statistics across all decks."""

    total_cards: int
    mastered_cards: int
    learning_cards: int
    new_cards: int
    decks: List[DeckWithStatsResponse]


class Deck(BaseModel):
    """Deck domain model."""

    deck_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_response(self) -> DeckResponse:
        """Convert to API response model."""
        return DeckResponse(deck_id=self.deck_id, name=self.name, created_at=self.created_at)

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item."""
        return {
            "deck_id": self.deck_id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> "Deck":
        """Create Deck from DynamoDB item."""
        return cls(
            deck_id=item["deck_id"],
            name=item["name"],
            created_at=datetime.fromisoformat(item["created_at"]),
        )
