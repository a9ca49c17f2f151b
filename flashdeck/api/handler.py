"""Main API handler for flashdeck."""

import json
from typing import Optional

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.event_handler import APIGatewayHttpResolver, Response, content_types
from aws_lambda_powertools.event_handler.exceptions import BadRequestError, NotFoundError
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import ValidationError

from ..models.card import CreateCardRequest
from ..models.deck import CreateDeckRequest
from ..models.generate import GenerateCardsRequest, GenerateCardsResponse, GenerationInfoResponse
from ..models.review import DueCardsResponse, ReviewRequest
from ..services.bedrock import (
    BedrockService,
    GenerationParseError,
    GenerationThrottledError,
    GenerationTimeoutError,
    GenerationUnavailableError,
)
from ..services.card_service import CardService
from ..services.deck_service import DeckService
from ..services.review_service import ReviewConflictError, ReviewService
from ..services.srs import InvalidRatingError
from ..storage.base import CardNotFoundError, DeckNotFoundError
from ..storage.factory import create_storage

logger = Logger()
tracer = Tracer()
app = APIGatewayHttpResolver()

MAX_LIMIT = 100

# The entry point owns the storage handle; services receive it explicitly
storage = create_storage()
deck_service = DeckService(storage)
card_service = CardService(storage)
review_service = ReviewService(storage)
bedrock_service = BedrockService()


def _error_response(status_code: int, body: dict) -> Response:
    return Response(
        status_code=status_code,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(body),
    )


def _created(body: dict) -> Response:
    return Response(
        status_code=201,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(body),
    )


def get_limit_from_query() -> Optional[int]:
    """Read the optional ``limit`` query parameter.

    Raises:
        BadRequestError: If limit is not an integer between 1 and MAX_LIMIT.
    """
    params = app.current_event.query_string_parameters or {}
    raw = params.get("limit")
    if raw is None:
        return None
    try:
        limit = int(raw)
    except ValueError:
        raise BadRequestError(f"limit must be an integer, got {raw!r}")
    if not 1 <= limit <= MAX_LIMIT:
        raise BadRequestError(f"limit must be between 1 and {MAX_LIMIT}")
    return limit


# =============================================================================
# Deck Endpoints
# =============================================================================


@app.get("/decks")
@tracer.capture_method
def list_decks():
    """List decks with their statistics."""
    logger.info("Listing decks")
    summaries = deck_service.list_decks_with_stats()
    return [summary.to_response().model_dump(mode="json") for summary in summaries]


@app.post("/decks")
@tracer.capture_method
def create_deck():
    """Create a new deck."""
    logger.info("Creating deck")

    try:
        body = app.current_event.json_body
        request = CreateDeckRequest(**body)
    except ValidationError as e:
        logger.warning(f"Validation error: {e}")
        return _error_response(400, {"error": "Invalid request", "details": e.errors(include_context=False)})
    except (json.JSONDecodeError, TypeError):
        return _error_response(400, {"error": "Invalid JSON body"})

    deck = deck_service.create_deck(request.name)
    return _created(deck.to_response().model_dump(mode="json"))


@app.get("/decks/<deck_id>")
@tracer.capture_method
def get_deck(deck_id: str):
    """Get a deck with its statistics."""
    logger.info(f"Getting deck {deck_id}")

    try:
        summary = deck_service.get_deck_with_stats(deck_id)
        return summary.to_response().model_dump(mode="json")
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")


@app.delete("/decks/<deck_id>")
@tracer.capture_method
def delete_deck(deck_id: str):
    """Delete a deck with its cards and reviews."""
    logger.info(f"Deleting deck {deck_id}")

    try:
        deck_service.delete_deck(deck_id)
        return Response(
            status_code=204,
            content_type=content_types.APPLICATION_JSON,
            body="",
        )
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")


@app.get("/decks/<deck_id>/cards")
@tracer.capture_method
def list_deck_cards(deck_id: str):
    """List the cards of a deck."""
    logger.info(f"Listing cards of deck {deck_id}")

    try:
        cards = card_service.get_cards(deck_id)
        return [card.to_response().model_dump(mode="json") for card in cards]
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")


@app.get("/decks/<deck_id>/due-cards")
@tracer.capture_method
def list_deck_due_cards(deck_id: str):
    """List the cards of a deck that are due for review."""
    limit = get_limit_from_query()
    logger.info(f"Getting due cards of deck {deck_id} (limit={limit})")

    try:
        cards = card_service.get_due_cards(deck_id=deck_id, limit=limit)
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")

    return DueCardsResponse(
        due_cards=[card.to_response() for card in cards],
        total_due_count=len(cards),
    ).model_dump(mode="json")


# =============================================================================
# AI Card Generation Endpoints
# =============================================================================


@app.post("/decks/<deck_id>/generate")
@tracer.capture_method
def generate_cards(deck_id: str):
    """Generate flashcards for a deck from text using AI."""
    logger.info(f"Generating cards for deck {deck_id}")

    try:
        body = app.current_event.json_body
        request = GenerateCardsRequest(**body)
    except ValidationError as e:
        logger.warning(f"Validation error: {e}")
        return _error_response(400, {"error": "Invalid request", "details": e.errors(include_context=False)})
    except (json.JSONDecodeError, TypeError):
        return _error_response(400, {"error": "Invalid JSON body"})

    try:
        deck_service.get_deck(deck_id)
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")

    try:
        result = bedrock_service.generate_cards(
            content=request.content,
            count=request.count,
            increase_difficulty=request.increase_difficulty,
        )
    except GenerationTimeoutError:
        return _error_response(504, {"error": "AI generation timed out"})
    except GenerationThrottledError:
        return _error_response(429, {"error": "Too many requests, please retry later"})
    except GenerationUnavailableError:
        return _error_response(502, {"error": "AI service temporarily unavailable"})
    except GenerationParseError:
        return _error_response(500, {"error": "Failed to parse AI response"})

    try:
        cards = card_service.create_cards(deck_id, [(card.front, card.back) for card in result.cards])
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {deck_id}")

    response = GenerateCardsResponse(
        count=len(cards),
        cards=[card.to_response() for card in cards],
        generation_info=GenerationInfoResponse(
            input_length=result.input_length,
            model_used=result.model_used,
            processing_time_ms=result.processing_time_ms,
        ),
    )
    return _created(response.model_dump(mode="json"))


# =============================================================================
# Card Endpoints
# =============================================================================


@app.post("/cards")
@tracer.capture_method
def create_card():
    """Create a new card."""
    logger.info("Creating card")

    try:
        body = app.current_event.json_body
        request = CreateCardRequest(**body)
    except ValidationError as e:
        logger.warning(f"Validation error: {e}")
        return _error_response(400, {"error": "Invalid request", "details": e.errors(include_context=False)})
    except (json.JSONDecodeError, TypeError):
        return _error_response(400, {"error": "Invalid JSON body"})

    try:
        card = card_service.create_card(deck_id=request.deck_id, front=request.front, back=request.back)
        return _created(card.to_response().model_dump(mode="json"))
    except DeckNotFoundError:
        raise NotFoundError(f"Deck not found: {request.deck_id}")


# Registered before /cards/<card_id> so "due" is not taken for an ID
@app.get("/cards/due")
@tracer.capture_method
def list_due_cards():
    """List cards due for review across all decks."""
    limit = get_limit_from_query()
    logger.info(f"Getting due cards (limit={limit})")

    cards = card_service.get_due_cards(limit=limit)
    return DueCardsResponse(
        due_cards=[card.to_response() for card in cards],
        total_due_count=len(cards),
    ).model_dump(mode="json")


@app.get("/cards/<card_id>")
@tracer.capture_method
def get_card(card_id: str):
    """Get a card with its deck name."""
    logger.info(f"Getting card {card_id}")

    try:
        card, deck = card_service.get_card_with_deck(card_id)
        return card.to_response_with_deck(deck.name).model_dump(mode="json")
    except CardNotFoundError:
        raise NotFoundError(f"Card not found: {card_id}")


@app.get("/cards/<card_id>/reviews")
@tracer.capture_method
def list_card_reviews(card_id: str):
    """List the review history of a card."""
    logger.info(f"Listing reviews of card {card_id}")

    try:
        reviews = review_service.get_reviews(card_id)
        return [review.to_response().model_dump(mode="json") for review in reviews]
    except CardNotFoundError:
        raise NotFoundError(f"Card not found: {card_id}")


# =============================================================================
# Review Endpoints
# =============================================================================


@app.post("/reviews")
@tracer.capture_method
def submit_review():
    """Submit a rating for a card."""
    try:
        body = app.current_event.json_body
        request = ReviewRequest(**body)
    except ValidationError as e:
        logger.warning(f"Validation error: {e}")
        return _error_response(400, {"error": "Invalid request", "details": e.errors(include_context=False)})
    except (json.JSONDecodeError, TypeError):
        return _error_response(400, {"error": "Invalid JSON body"})

    logger.info(f"Submitting review for card {request.card_id}")

    try:
        result = review_service.submit_review(card_id=request.card_id, rating=request.rating)
        return _created(result.to_response().model_dump(mode="json"))
    except CardNotFoundError:
        raise NotFoundError(f"Card not found: {request.card_id}")
    except InvalidRatingError as e:
        return _error_response(400, {"error": str(e)})
    except ReviewConflictError as e:
        logger.warning(f"Review conflict: {e}")
        return _error_response(409, {"error": "Card was updated concurrently, please retry"})


# =============================================================================
# Stats Endpoints
# =============================================================================


@app.get("/stats")
@tracer.capture_method
def get_stats():
    """Get study statistics across all decks."""
    logger.info("Getting global stats")
    return deck_service.get_global_stats().to_response().model_dump(mode="json")


# =============================================================================
# Lambda Handler
# =============================================================================


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_HTTP)
@tracer.capture_lambda_handler
def handler(event: dict, context: LambdaContext) -> dict:
    """Lambda handler for API Gateway events."""
    return app.resolve(event, context)
