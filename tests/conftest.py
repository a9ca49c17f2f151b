"""Pytest configuration and fixtures."""

import json
import os
import sys

import boto3
import pytest
from moto import mock_aws

# Add the repository root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Set environment variables for testing
os.environ["ENVIRONMENT"] = "test"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["DECKS_TABLE"] = "flashdeck-decks-test"
os.environ["CARDS_TABLE"] = "flashdeck-cards-test"
os.environ["REVIEWS_TABLE"] = "flashdeck-reviews-test"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["POWERTOOLS_SERVICE_NAME"] = "flashdeck-test"
os.environ["POWERTOOLS_TRACE_DISABLED"] = "true"


@pytest.fixture
def dynamodb_tables():
    """Create mock DynamoDB tables (decks, cards, reviews)."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")

        decks_table = dynamodb.create_table(
            TableName="flashdeck-decks-test",
            KeySchema=[{"AttributeName": "deck_id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "deck_id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        decks_table.wait_until_exists()

        cards_table = dynamodb.create_table(
            TableName="flashdeck-cards-test",
            KeySchema=[{"AttributeName": "card_id", "KeyType": "HASH"}],
            AttributeDefinitions=[
                {"AttributeName": "card_id", "AttributeType": "S"},
                {"AttributeName": "deck_id", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": "deck_id-index",
                    "KeySchema": [
                        {"AttributeName": "deck_id", "KeyType": "HASH"},
                        {"AttributeName": "created_at", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        cards_table.wait_until_exists()

        reviews_table = dynamodb.create_table(
            TableName="flashdeck-reviews-test",
            KeySchema=[
                {"AttributeName": "card_id", "KeyType": "HASH"},
                {"AttributeName": "review_id", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "card_id", "AttributeType": "S"},
                {"AttributeName": "review_id", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        reviews_table.wait_until_exists()

        yield dynamodb


@pytest.fixture
def api_gateway_event():
    """Create a base API Gateway HTTP API event."""

    def _create_event(
        method: str = "GET",
        path: str = "/",
        body=None,
        headers: dict = None,
        path_parameters: dict = None,
        query_string_parameters: dict = None,
        raw_body: str = None,
    ):
        event = {
            "version": "2.0",
            "routeKey": f"{method} {path}",
            "rawPath": path,
            "rawQueryString": "",
            "headers": headers or {"content-type": "application/json"},
            "requestContext": {
                "accountId": "123456789012",
                "apiId": "api-id",
                "domainName": "api.example.com",
                "domainPrefix": "api",
                "http": {
                    "method": method,
                    "path": path,
                    "protocol": "HTTP/1.1",
                    "sourceIp": "127.0.0.1",
                    "userAgent": "pytest",
                },
                "requestId": "request-id",
                "routeKey": f"{method} {path}",
                "stage": "$default",
                "time": "01/Jan/2024:00:00:00 +0000",
                "timeEpoch": 1704067200000,
            },
            "pathParameters": path_parameters or {},
            "stageVariables": None,
            "isBase64Encoded": False,
        }
        if body is not None:
            event["body"] = json.dumps(body)
        if raw_body is not None:
            event["body"] = raw_body
        if query_string_parameters:
            event["queryStringParameters"] = query_string_parameters
            event["rawQueryString"] = "&".join(f"{k}={v}" for k, v in query_string_parameters.items())
        return event

    return _create_event


@pytest.fixture
def lambda_context():
    """Create a mock Lambda context."""

    class MockContext:
        function_name = "flashdeck-api-test"
        memory_limit_in_mb = 256
        invoked_function_arn = "arn:aws:lambda:us-east-1:123456789012:function:flashdeck-api-test"
        aws_request_id = "test-request-id"

    return MockContext()
