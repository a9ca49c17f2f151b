"""Card generation models for flashdeck."""

from typing import List

from pydantic import BaseModel, Field, field_validator

from .card import CardResponse


class GenerateCardsRequest(BaseModel):
    """Request model for AI card generation."""

    content: str = Field(
        ...,
        min_length=1,
        max_length=20000,
        description="Source text to generate cards from",
    )
    count: int = Field(
        default=10,
        ge=1,
        le=30,
        description="Number of cards to generate",
    )
    increase_difficulty: bool = Field(
        default=False,
        description="Ask for harder, more technical questions",
    )

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Validate content is not just whitespace."""
        if not v.strip():
            raise ValueError("Content is required for card generation")
        return v


class GenerationInfoResponse(BaseModel):
    """Information about the generation process."""

    input_length: int
    model_used: str
    processing_time_ms: int


class GenerateCardsResponse(BaseModel):
    """Response model for card generation."""

    count: int
    cards: List[CardResponse]
    generation_info: GenerationInfoResponse
