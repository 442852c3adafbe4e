"""Persistencia: data stores, taxonomía de errores y retry."""

from .errors import (
    FatalStoreError,
    RetryableStoreError,
    StoreError,
    describe_store_error,
    error_code,
    is_retryable,
)
from .memory_store import InMemoryDataStore
from .retry import PersistenceCoordinator, RetryConfig, StoreResult
from .store import DataStore

__all__ = [
    "DataStore",
    "FatalStoreError",
    "InMemoryDataStore",
    "PersistenceCoordinator",
    "RetryConfig",
    "RetryableStoreError",
    "StoreError",
    "StoreResult",
    "describe_store_error",
    "error_code",
    "is_retryable",
]
