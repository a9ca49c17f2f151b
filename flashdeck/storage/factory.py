"""Storage backend selection."""

import os
from typing import Optional

from .base import Storage
from .dynamodb import DynamoDBStorage
from .memory import InMemoryStorage

BACKENDS = ("dynamodb", "memory")


def create_storage(backend: Optional[str] = None, dynamodb_resource=None) -> Storage:
    """Build the storage handle for the process.

    Args:
        backend: "dynamodb" or "memory". Defaults to STORAGE_BACKEND env var,
            then "dynamodb".
        dynamodb_resource: Optional boto3 DynamoDB resource for testing.

    Raises:
        ValueError: If the backend name is unknown.
    """
    backend = (backend or os.environ.get("STORAGE_BACKEND", "dynamodb")).lower()
    if backend == "dynamodb":
        return DynamoDBStorage(dynamodb_resource=dynamodb_resource)
    if backend == "memory":
        return InMemoryStorage()
    raise ValueError(f"Unknown storage backend {backend!r}, expected one of {BACKENDS}")
