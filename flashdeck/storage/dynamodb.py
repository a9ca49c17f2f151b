"""DynamoDB storage backend."""

import os
import re
from typing import Callable, List, Optional

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Attr
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from ..models.card import Card, CardEdit
from ..models.deck import Deck
from ..models.review import Review
from ..services.srs import SRSResult
from .base import CardNotFoundError, ConcurrencyConflictError, DeckNotFoundError, StorageError

logger = Logger()

# Set on a deck while delete_deck cascades; writes into the deck are refused
PENDING_DELETE = "pending_delete"

CONDITION_FAILED = "ConditionalCheckFailed"


def _collect(operation: Callable[..., dict], **kwargs) -> List[dict]:
    """Run a query or scan to completion, following LastEvaluatedKey."""
    items: List[dict] = []
    while True:
        response = operation(**kwargs)
        items.extend(response.get("Items", []))
        if "LastEvaluatedKey" not in response:
            return items
        kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]


def _cancellation_codes(error: ClientError) -> List[Optional[str]]:
    """Per-item codes of a cancelled transaction, in TransactItems order."""
    reasons = error.response.get("CancellationReasons")
    if reasons:
        return [reason.get("Code") for reason in reasons]
    # Without structured reasons the codes trail the message: "... [ConditionalCheckFailed, None]"
    match = re.search(r"\[([^\]]*)\]\s*$", error.response.get("Error", {}).get("Message", ""))
    if not match:
        return []
    return [code.strip() for code in match.group(1).split(",")]


def _is_cancellation(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "TransactionCanceledException"


class DynamoDBStorage:
    """Storage backed by three DynamoDB tables (decks, cards, reviews).

    Table layout:
      - decks: hash key ``deck_id``
      - cards: hash key ``card_id``, GSI ``deck_id-index`` (``deck_id``, ``created_at``)
      - reviews: hash key ``card_id``, range key ``review_id``
    """

    DECK_INDEX = "deck_id-index"

    def __init__(
        self,
        decks_table_name: Optional[str] = None,
        cards_table_name: Optional[str] = None,
        reviews_table_name: Optional[str] = None,
        dynamodb_resource=None,
    ):
        """Initialize DynamoDBStorage.

        Args:
            decks_table_name: Decks table name. Defaults to DECKS_TABLE env var.
            cards_table_name: Cards table name. Defaults to CARDS_TABLE env var.
            reviews_table_name: Reviews table name. Defaults to REVIEWS_TABLE env var.
            dynamodb_resource: Optional boto3 DynamoDB resource for testing.
        """
        self.decks_table_name = decks_table_name or os.environ.get("DECKS_TABLE", "flashdeck-decks-dev")
        self.cards_table_name = cards_table_name or os.environ.get("CARDS_TABLE", "flashdeck-cards-dev")
        self.reviews_table_name = reviews_table_name or os.environ.get("REVIEWS_TABLE", "flashdeck-reviews-dev")

        if dynamodb_resource:
            self.dynamodb = dynamodb_resource
        else:
            endpoint_url = os.environ.get("AWS_ENDPOINT_URL")
            if endpoint_url:
                self.dynamodb = boto3.resource("dynamodb", endpoint_url=endpoint_url)
            else:
                self.dynamodb = boto3.resource("dynamodb")

        self.decks_table = self.dynamodb.Table(self.decks_table_name)
        self.cards_table = self.dynamodb.Table(self.cards_table_name)
        self.reviews_table = self.dynamodb.Table(self.reviews_table_name)
        self.serializer = TypeSerializer()

    def _serialize(self, item: dict) -> dict:
        return {key: self.serializer.serialize(value) for key, value in item.items()}

    def _deck_open_check(self, deck_id: str) -> dict:
        """Transaction item asserting the deck exists and is not being deleted."""
        return {
            "ConditionCheck": {
                "TableName": self.decks_table_name,
                "Key": {"deck_id": {"S": deck_id}},
                "ConditionExpression": "attribute_exists(deck_id) AND attribute_not_exists(#pending)",
                "ExpressionAttributeNames": {"#pending": PENDING_DELETE},
            }
        }

    # =========================================================================
    # Decks
    # =========================================================================

    def create_deck(self, deck: Deck) -> Deck:
        try:
            self.decks_table.put_item(
                Item=deck.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(deck_id)",
            )
            return deck
        except ClientError as e:
            raise StorageError(f"Failed to create deck: {e}")

    def get_deck(self, deck_id: str) -> Optional[Deck]:
        try:
            response = self.decks_table.get_item(Key={"deck_id": deck_id})
        except ClientError as e:
            raise StorageError(f"Failed to get deck: {e}")
        if "Item" not in response:
            return None
        return Deck.from_dynamodb_item(response["Item"])

    def list_decks(self) -> List[Deck]:
        try:
            items = _collect(self.decks_table.scan)
        except ClientError as e:
            raise StorageError(f"Failed to list decks: {e}")
        decks = [Deck.from_dynamodb_item(item) for item in items]
        return sorted(decks, key=lambda deck: deck.created_at, reverse=True)

    def delete_deck(self, deck_id: str) -> None:
        """Delete a deck, its cards and their reviews.

        DynamoDB transactions are capped at 100 items, so the cascade runs in
        steps:

          1. mark the deck ``pending_delete``; card inserts, card moves and
             review commits into the deck fail their condition from here on
          2. batch delete the reviews, then the cards, found by a consistent
             scan (the deck GSI may lag behind recent inserts)
          3. delete the deck record

        An interrupted cascade leaves the marked deck in place with fewer
        cards and can simply be retried.

        Raises:
            DeckNotFoundError: If the deck does not exist.
            StorageError: On any DynamoDB failure.
        """
        try:
            self.decks_table.update_item(
                Key={"deck_id": deck_id},
                UpdateExpression="SET #pending = :pending",
                ConditionExpression="attribute_exists(deck_id)",
                ExpressionAttributeNames={"#pending": PENDING_DELETE},
                ExpressionAttributeValues={":pending": True},
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise DeckNotFoundError(f"Deck not found: {deck_id}")
            raise StorageError(f"Failed to delete deck: {e}")

        try:
            card_ids = [
                item["card_id"]
                for item in _collect(
                    self.cards_table.scan,
                    FilterExpression=Attr("deck_id").eq(deck_id),
                    ProjectionExpression="card_id",
                    ConsistentRead=True,
                )
            ]

            with self.reviews_table.batch_writer() as batch:
                for card_id in card_ids:
                    for review in self.get_reviews(card_id):
                        batch.delete_item(Key={"card_id": card_id, "review_id": review.review_id})

            with self.cards_table.batch_writer() as batch:
                for card_id in card_ids:
                    batch.delete_item(Key={"card_id": card_id})

            self.decks_table.delete_item(Key={"deck_id": deck_id})
        except ClientError as e:
            raise StorageError(f"Failed to delete deck: {e}")

        logger.info(f"Deleted deck {deck_id} with {len(card_ids)} cards")

    # =========================================================================
    # Cards
    # =========================================================================

    def create_card(self, card: Card) -> Card:
        """Insert a card together with a check that its deck is open."""
        try:
            self.dynamodb.meta.client.transact_write_items(
                TransactItems=[
                    self._deck_open_check(card.deck_id),
                    {
                        "Put": {
                            "TableName": self.cards_table_name,
                            "Item": self._serialize(card.to_dynamodb_item()),
                            "ConditionExpression": "attribute_not_exists(card_id)",
                        }
                    },
                ]
            )
        except ClientError as e:
            if _is_cancellation(e) and _cancellation_codes(e)[:1] == [CONDITION_FAILED]:
                raise DeckNotFoundError(f"Deck not found: {card.deck_id}")
            raise StorageError(f"Failed to create card: {e}")
        return card

    def get_card(self, card_id: str) -> Optional[Card]:
        try:
            response = self.cards_table.get_item(Key={"card_id": card_id}, ConsistentRead=True)
        except ClientError as e:
            raise StorageError(f"Failed to get card: {e}")
        if "Item" not in response:
            return None
        return Card.from_dynamodb_item(response["Item"])

    def get_cards(self, deck_id: str) -> List[Card]:
        try:
            items = _collect(
                self.cards_table.query,
                IndexName=self.DECK_INDEX,
                KeyConditionExpression="deck_id = :deck_id",
                ExpressionAttributeValues={":deck_id": deck_id},
                ScanIndexForward=True,  # Oldest first
            )
        except ClientError as e:
            raise StorageError(f"Failed to list cards: {e}")
        return [Card.from_dynamodb_item(item) for item in items]

    def list_all_cards(self) -> List[Card]:
        try:
            items = _collect(self.cards_table.scan)
        except ClientError as e:
            raise StorageError(f"Failed to scan cards: {e}")
        return [Card.from_dynamodb_item(item) for item in items]

    def update_card(self, card_id: str, fields: dict) -> Card:
        """Edit front, back or deck_id and bump the card's version.

        A move to another deck carries the same open-deck check as an insert.
        """
        changes = CardEdit.changes(fields)
        if not changes:
            card = self.get_card(card_id)
            if card is None:
                raise CardNotFoundError(f"Card not found: {card_id}")
            return card

        assignments = [f"#{name} = :{name}" for name in changes]
        assignments.append("#version = #version + :one")
        names = {f"#{name}": name for name in changes}
        names["#version"] = "version"
        values = {f":{name}": value for name, value in changes.items()}
        values[":one"] = 1

        items = [
            {
                "Update": {
                    "TableName": self.cards_table_name,
                    "Key": {"card_id": {"S": card_id}},
                    "UpdateExpression": "SET " + ", ".join(assignments),
                    "ConditionExpression": "attribute_exists(card_id)",
                    "ExpressionAttributeNames": names,
                    "ExpressionAttributeValues": self._serialize(values),
                }
            }
        ]
        if "deck_id" in changes:
            items.append(self._deck_open_check(changes["deck_id"]))

        try:
            self.dynamodb.meta.client.transact_write_items(TransactItems=items)
        except ClientError as e:
            if _is_cancellation(e):
                codes = _cancellation_codes(e)
                if codes[:1] == [CONDITION_FAILED]:
                    raise CardNotFoundError(f"Card not found: {card_id}")
                if codes[1:2] == [CONDITION_FAILED]:
                    raise DeckNotFoundError(f"Deck not found: {changes['deck_id']}")
                if "TransactionConflict" in codes:
                    raise ConcurrencyConflictError(f"Card {card_id} is being updated concurrently")
            raise StorageError(f"Failed to update card: {e}")

        card = self.get_card(card_id)
        if card is None:
            raise CardNotFoundError(f"Card not found: {card_id}")
        return card

    # =========================================================================
    # Reviews
    # =========================================================================

    def get_reviews(self, card_id: str) -> List[Review]:
        try:
            items = _collect(
                self.reviews_table.query,
                KeyConditionExpression="card_id = :card_id",
                ExpressionAttributeValues={":card_id": card_id},
            )
        except ClientError as e:
            raise StorageError(f"Failed to list reviews: {e}")
        reviews = [Review.from_dynamodb_item(item) for item in items]
        return sorted(reviews, key=lambda review: review.reviewed_at)

    def commit_review(self, card: Card, result: SRSResult, review: Review) -> Card:
        """Update the card and insert the review in one TransactWriteItems call.

          - Index 0: card Update, conditioned on the version read by the caller
          - Index 1: review Put, conditioned on the review ID being new
          - Index 2: the card's deck is not being deleted
        """
        new_version = card.version + 1
        update_values = {
            ":ease": result.ease,
            ":interval": result.interval,
            ":repetitions": result.repetitions,
            ":last_reviewed": result.last_reviewed.isoformat(),
            ":next_review": result.next_review.isoformat(),
            ":new_version": new_version,
            ":expected_version": card.version,
        }

        try:
            self.dynamodb.meta.client.transact_write_items(
                TransactItems=[
                    {
                        "Update": {
                            "TableName": self.cards_table_name,
                            "Key": {"card_id": {"S": card.card_id}},
                            "UpdateExpression": (
                                "SET #ease = :ease, #interval = :interval, "
                                "#repetitions = :repetitions, last_reviewed = :last_reviewed, "
                                "next_review = :next_review, #version = :new_version"
                            ),
                            "ConditionExpression": "attribute_exists(card_id) AND #version = :expected_version",
                            "ExpressionAttributeNames": {
                                "#ease": "ease",
                                "#interval": "interval",
                                "#repetitions": "repetitions",
                                "#version": "version",
                            },
                            "ExpressionAttributeValues": self._serialize(update_values),
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.reviews_table_name,
                            "Item": self._serialize(review.to_dynamodb_item()),
                            "ConditionExpression": "attribute_not_exists(review_id)",
                        }
                    },
                    self._deck_open_check(card.deck_id),
                ]
            )
        except ClientError as e:
            if _is_cancellation(e):
                codes = _cancellation_codes(e)
                logger.warning(f"Review transaction cancelled for card {card.card_id}: {codes}")
                if codes[:1] == [CONDITION_FAILED]:
                    if self.get_card(card.card_id) is None:
                        raise CardNotFoundError(f"Card not found: {card.card_id}")
                    raise ConcurrencyConflictError(f"Card {card.card_id} was modified concurrently")
                if codes[2:3] == [CONDITION_FAILED]:
                    # The deck is being cascade-deleted along with this card
                    raise CardNotFoundError(f"Card not found: {card.card_id}")
                if "TransactionConflict" in codes:
                    raise ConcurrencyConflictError(f"Card {card.card_id} is being reviewed concurrently")
            raise StorageError(f"Failed to commit review: {e}")

        return card.model_copy(update={**result.as_fields(), "version": new_version})
