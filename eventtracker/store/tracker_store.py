"""
Tracker store: one database file shared by many stream namespaces.
"""

from pathlib import Path
from typing import Optional, Union

from eventtracker.store.codec import Codec
from eventtracker.store.entry import Entry
from eventtracker.store.keys import namespace_key
from eventtracker.store.substrate import MEMORY_PATH, BucketDB
from eventtracker.utils.config import Config
from eventtracker.utils.logging import get_logger

logger = get_logger(__name__)


class TrackerStore:
    """
    Resolves stream identifiers to Entry handles over one database.

    Attributes:
        db: Database shared by every entry handed out
    """

    def __init__(self, db: BucketDB):
        self.db = db

    @classmethod
    def open(
        cls,
        path: Union[Path, str],
        busy_timeout_s: float = 5.0,
        synchronous: str = "FULL",
        max_connections: int = BucketDB.DEFAULT_MAX_CONNECTIONS,
    ) -> "TrackerStore":
        """
        Open (or create) a store file.

        Args:
            path: Database file, or ":memory:" for an in-memory store

        Raises:
            StorageUnavailableError: If the file cannot be opened
        """
        return cls(
            BucketDB(
                path,
                busy_timeout_s=busy_timeout_s,
                synchronous=synchronous,
                max_connections=max_connections,
            )
        )

    @classmethod
    def in_memory(cls, busy_timeout_s: float = 5.0) -> "TrackerStore":
        """Open a store that lives only as long as this object."""
        return cls.open(MEMORY_PATH, busy_timeout_s=busy_timeout_s)

    @classmethod
    def from_config(cls, config: Config) -> "TrackerStore":
        """
        Open the store described by the storage section of a Config.

        An empty storage.path selects an in-memory store.
        """
        path = config.get("storage.path") or MEMORY_PATH
        return cls.open(
            path,
            busy_timeout_s=float(config.get("storage.busy_timeout_s", 5.0)),
            synchronous=str(config.get("storage.synchronous", "FULL")),
            max_connections=int(config.get("storage.max_connections", BucketDB.DEFAULT_MAX_CONNECTIONS)),
        )

    def get_entry(
        self,
        stream_id: str = "",
        record_codec: Optional[Codec] = None,
        checkpoint_codec: Optional[Codec] = None,
    ) -> Entry:
        """
        Get the entry for a stream, creating its namespace on first use.

        Calling this twice with the same stream_id yields entries over the
        same data.

        Args:
            stream_id: Stream identifier ("" is the default stream)
            record_codec: Codec for log records (default: raw bytes)
            checkpoint_codec: Codec for the checkpoint (default: raw bytes)

        Raises:
            StorageUnavailableError: If the namespace cannot be created
        """
        bucket = namespace_key(stream_id)
        with self.db.update() as tx:
            tx.create_bucket_if_not_exists(bucket)

        logger.debug("Resolved stream namespace", stream_id=stream_id)
        return Entry(
            self.db,
            bucket,
            stream_id=stream_id,
            record_codec=record_codec,
            checkpoint_codec=checkpoint_codec,
        )

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "TrackerStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"TrackerStore(path={str(self.db.path)!r})"
