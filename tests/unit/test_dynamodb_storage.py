"""Unit tests for the DynamoDB storage backend."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError
from pydantic import ValidationError

from flashdeck.models.card import Card
from flashdeck.models.deck import Deck
from flashdeck.models.review import Review
from flashdeck.services.review_service import ReviewService
from flashdeck.services.srs import Rating, calculate_next_state
from flashdeck.storage.base import (
    CardNotFoundError,
    ConcurrencyConflictError,
    DeckNotFoundError,
    Storage,
    StorageError,
)
from flashdeck.storage.dynamodb import DynamoDBStorage
from flashdeck.storage.factory import create_storage

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage(dynamodb_tables):
    """Create DynamoDBStorage with mock DynamoDB."""
    return DynamoDBStorage(dynamodb_resource=dynamodb_tables)


@pytest.fixture
def deck(storage):
    return storage.create_deck(Deck(name="Chemistry", created_at=NOW))


@pytest.fixture
def card(storage, deck):
    return storage.create_card(Card(deck_id=deck.deck_id, front="H2O?", back="Water", created_at=NOW))


def test_satisfies_storage_protocol(storage):
    assert isinstance(storage, Storage)


def test_factory_builds_dynamodb_backend(dynamodb_tables):
    storage = create_storage("dynamodb", dynamodb_resource=dynamodb_tables)

    assert isinstance(storage, DynamoDBStorage)
    assert storage.cards_table_name == "flashdeck-cards-test"


class TestDecks:
    def test_round_trip(self, storage, deck):
        assert storage.get_deck(deck.deck_id) == deck

    def test_get_missing(self, storage):
        assert storage.get_deck("missing") is None

    def test_duplicate_id_rejected(self, storage, deck):
        with pytest.raises(StorageError):
            storage.create_deck(Deck(deck_id=deck.deck_id, name="Copy"))

    def test_list_newest_first(self, storage, deck):
        newer = storage.create_deck(Deck(name="Physics", created_at=NOW + timedelta(hours=1)))

        assert [d.deck_id for d in storage.list_decks()] == [newer.deck_id, deck.deck_id]

    def test_delete_cascades(self, storage, deck, card):
        second = storage.create_card(
            Card(deck_id=deck.deck_id, front="NaCl?", back="Salt", created_at=NOW + timedelta(seconds=1))
        )
        other_deck = storage.create_deck(Deck(name="Keep"))
        survivor = storage.create_card(Card(deck_id=other_deck.deck_id, front="q", back="a"))
        service = ReviewService(storage)
        service.submit_review(card.card_id, 3, now=NOW)
        service.submit_review(second.card_id, 1, now=NOW)

        storage.delete_deck(deck.deck_id)

        assert storage.get_deck(deck.deck_id) is None
        assert storage.get_cards(deck.deck_id) == []
        assert storage.get_card(card.card_id) is None
        assert storage.get_reviews(card.card_id) == []
        assert storage.get_reviews(second.card_id) == []
        assert storage.get_card(survivor.card_id) is not None

    def test_interrupted_delete_blocks_writes_and_can_be_retried(self, storage, deck, card):
        error = ClientError({"Error": {"Code": "InternalServerError", "Message": "boom"}}, "DeleteItem")

        with patch.object(storage.decks_table, "delete_item", side_effect=error):
            with pytest.raises(StorageError):
                storage.delete_deck(deck.deck_id)

        assert storage.get_deck(deck.deck_id) is not None
        with pytest.raises(DeckNotFoundError):
            storage.create_card(Card(deck_id=deck.deck_id, front="late", back="card"))

        storage.delete_deck(deck.deck_id)

        assert storage.get_deck(deck.deck_id) is None
        assert storage.list_all_cards() == []

    def test_delete_missing(self, storage):
        with pytest.raises(DeckNotFoundError):
            storage.delete_deck("missing")


class TestCards:
    def test_round_trip(self, storage, card):
        fetched = storage.get_card(card.card_id)

        assert fetched == card
        assert fetched.next_review is None
        assert isinstance(fetched.ease, int)

    def test_get_missing(self, storage):
        assert storage.get_card("missing") is None

    def test_get_cards_in_creation_order(self, storage, deck, card):
        later = storage.create_card(
            Card(deck_id=deck.deck_id, front="O2?", back="Oxygen", created_at=NOW + timedelta(minutes=5))
        )
        earlier = storage.create_card(
            Card(deck_id=deck.deck_id, front="CO2?", back="Carbon dioxide", created_at=NOW - timedelta(minutes=5))
        )

        assert [c.card_id for c in storage.get_cards(deck.deck_id)] == [earlier.card_id, card.card_id, later.card_id]

    def test_list_all_cards(self, storage, card):
        other_deck = storage.create_deck(Deck(name="Other"))
        other = storage.create_card(Card(deck_id=other_deck.deck_id, front="q", back="a"))

        assert {c.card_id for c in storage.list_all_cards()} == {card.card_id, other.card_id}

    def test_create_into_missing_deck(self, storage):
        with pytest.raises(DeckNotFoundError):
            storage.create_card(Card(deck_id="missing", front="q", back="a"))

        assert storage.list_all_cards() == []

    def test_create_into_deck_being_deleted(self, storage, deck):
        storage.decks_table.update_item(
            Key={"deck_id": deck.deck_id},
            UpdateExpression="SET pending_delete = :pending",
            ExpressionAttributeValues={":pending": True},
        )

        with pytest.raises(DeckNotFoundError):
            storage.create_card(Card(deck_id=deck.deck_id, front="q", back="a"))

        assert storage.get_cards(deck.deck_id) == []

    def test_update_card(self, storage, card):
        updated = storage.update_card(card.card_id, {"back": "  Dihydrogen monoxide "})

        assert updated.back == "Dihydrogen monoxide"
        assert updated.front == card.front
        assert updated.version == card.version + 1
        assert storage.get_card(card.card_id) == updated

    def test_update_moves_card_to_other_deck(self, storage, card):
        other = storage.create_deck(Deck(name="Physics"))

        updated = storage.update_card(card.card_id, {"deck_id": other.deck_id})

        assert updated.deck_id == other.deck_id
        assert [c.card_id for c in storage.get_cards(other.deck_id)] == [card.card_id]

    def test_update_move_to_missing_deck(self, storage, card):
        with pytest.raises(DeckNotFoundError):
            storage.update_card(card.card_id, {"deck_id": "missing"})

        assert storage.get_card(card.card_id) == card

    def test_update_empty_changes_nothing(self, storage, card):
        assert storage.update_card(card.card_id, {}) == card

    def test_update_missing_card(self, storage):
        with pytest.raises(CardNotFoundError):
            storage.update_card("missing", {"back": "x"})

    @pytest.mark.parametrize(
        "fields",
        [
            {"ease": 999},
            {"interval": 0},
            {"bogus": 1},
            {"ease": 999, "interval": 0, "bogus": 1},
            {"card_id": "new-id"},
            {"next_review": None},
            {"front": "   "},
            {"back": None},
        ],
    )
    def test_update_rejects_non_content_fields(self, storage, card, fields):
        with pytest.raises(ValidationError):
            storage.update_card(card.card_id, fields)

        assert storage.get_card(card.card_id) == card

    def test_edit_makes_earlier_read_stale(self, storage, card):
        storage.update_card(card.card_id, {"front": "Formula of water?"})
        result = calculate_next_state(card, Rating.GOOD, NOW)

        with pytest.raises(ConcurrencyConflictError):
            storage.commit_review(card, result, Review(card_id=card.card_id, rating=3, reviewed_at=NOW))

        assert storage.get_reviews(card.card_id) == []
        assert storage.get_card(card.card_id).repetitions == 0


class TestCommitReview:
    """Tests for the transactional review commit."""

    def test_commit(self, storage, card):
        result = calculate_next_state(card, Rating.GOOD, NOW)
        review = Review(card_id=card.card_id, rating=3, reviewed_at=NOW)

        updated = storage.commit_review(card, result, review)

        assert updated.version == 1
        assert updated.interval == 3
        assert storage.get_card(card.card_id) == updated
        assert storage.get_reviews(card.card_id) == [review]

    def test_stale_version_rejected(self, storage, card):
        result = calculate_next_state(card, Rating.GOOD, NOW)
        storage.commit_review(card, result, Review(card_id=card.card_id, rating=3, reviewed_at=NOW))

        with pytest.raises(ConcurrencyConflictError):
            storage.commit_review(card, result, Review(card_id=card.card_id, rating=3, reviewed_at=NOW))

        assert storage.get_card(card.card_id).version == 1
        assert len(storage.get_reviews(card.card_id)) == 1

    def test_deleted_card(self, storage):
        ghost = Card(deck_id="deck", front="q", back="a")
        result = calculate_next_state(ghost, Rating.GOOD, NOW)

        with pytest.raises(CardNotFoundError):
            storage.commit_review(ghost, result, Review(card_id=ghost.card_id, rating=3, reviewed_at=NOW))

        assert storage.get_reviews(ghost.card_id) == []

    def test_deck_being_deleted(self, storage, deck, card):
        storage.decks_table.update_item(
            Key={"deck_id": deck.deck_id},
            UpdateExpression="SET pending_delete = :pending",
            ExpressionAttributeValues={":pending": True},
        )
        result = calculate_next_state(card, Rating.GOOD, NOW)

        with pytest.raises(CardNotFoundError):
            storage.commit_review(card, result, Review(card_id=card.card_id, rating=3, reviewed_at=NOW))

        assert storage.get_reviews(card.card_id) == []
        assert storage.get_card(card.card_id).version == 0

    def test_cancellation_codes_read_from_message(self, storage, card):
        result = calculate_next_state(card, Rating.GOOD, NOW)
        error = ClientError(
            {
                "Error": {
                    "Code": "TransactionCanceledException",
                    "Message": "Transaction cancelled, please refer cancellation reasons for specific reasons "
                    "[ConditionalCheckFailed, None, None]",
                }
            },
            "TransactWriteItems",
        )

        with patch.object(storage.dynamodb.meta.client, "transact_write_items", side_effect=error):
            with pytest.raises(ConcurrencyConflictError):
                storage.commit_review(card, result, Review(card_id=card.card_id, rating=3, reviewed_at=NOW))

    def test_unexpected_client_error(self, storage, card):
        result = calculate_next_state(card, Rating.GOOD, NOW)
        error = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}},
            "TransactWriteItems",
        )

        with patch.object(storage.dynamodb.meta.client, "transact_write_items", side_effect=error):
            with pytest.raises(StorageError) as exc_info:
                storage.commit_review(card, result, Review(card_id=card.card_id, rating=3, reviewed_at=NOW))

        assert not isinstance(exc_info.value, ConcurrencyConflictError)

    def test_transaction_conflict_maps_to_concurrency_error(self, storage, card):
        result = calculate_next_state(card, Rating.GOOD, NOW)
        error = ClientError(
            {
                "Error": {"Code": "TransactionCanceledException", "Message": "Transaction cancelled"},
                "CancellationReasons": [{"Code": "TransactionConflict"}, {"Code": "None"}],
            },
            "TransactWriteItems",
        )

        with patch.object(storage.dynamodb.meta.client, "transact_write_items", side_effect=error):
            with pytest.raises(ConcurrencyConflictError):
                storage.commit_review(card, result, Review(card_id=card.card_id, rating=3, reviewed_at=NOW))

    def test_review_service_on_dynamodb(self, storage, card):
        service = ReviewService(storage)

        service.submit_review(card.card_id, 3, now=NOW)
        result = service.submit_review(card.card_id, 4, now=NOW + timedelta(days=3))

        assert result.card.interval == 10  # ceil(3 * 2.5 * 1.3)
        assert result.card.ease == 260
        assert result.card.repetitions == 2
        assert [r.rating for r in storage.get_reviews(card.card_id)] == [3, 4]
