"""
Durable log storage for tracked event streams.

This package provides:
- Per-stream namespaces inside one SQLite database
- Contiguous, index-addressed log records
- Atomic truncate + append + checkpoint batches
"""

from eventtracker.store.codec import Codec, JSONCodec, RawCodec
from eventtracker.store.entry import BatchResult, Entry
from eventtracker.store.errors import (
    CorruptDataError,
    DecodeError,
    EncodingError,
    NotFoundError,
    StorageUnavailableError,
    StoreError,
)
from eventtracker.store.substrate import BucketDB
from eventtracker.store.tracker_store import TrackerStore

__all__ = [
    # Store
    "TrackerStore",
    "Entry",
    "BatchResult",
    "BucketDB",
    # Codecs
    "Codec",
    "RawCodec",
    "JSONCodec",
    # Errors
    "StoreError",
    "StorageUnavailableError",
    "NotFoundError",
    "CorruptDataError",
    "DecodeError",
    "EncodingError",
]
