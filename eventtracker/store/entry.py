"""
Log entry store for a single stream.

An Entry is bound to one bucket of the shared database. Records live under
contiguous indices starting at 0; the checkpoint is one overwritable value.
apply_batch() truncates, appends and moves the checkpoint in one write
transaction, so readers never observe removed records without their
replacements or a checkpoint that disagrees with the records.
"""

from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from eventtracker.event import Event
from eventtracker.store.codec import Codec, RawCodec
from eventtracker.store.errors import CorruptDataError, EncodingError, NotFoundError
from eventtracker.store.keys import CHECKPOINT_KEY, LOG_PREFIX, index_from_key, log_key
from eventtracker.store.substrate import Bucket, BucketDB, prefix_upper_bound
from eventtracker.utils.logging import get_logger

logger = get_logger(__name__)

LOG_PREFIX_END = prefix_upper_bound(LOG_PREFIX)


@dataclass
class BatchResult:
    """
    Outcome of a committed batch.

    Attributes:
        removed: Records deleted by the truncate phase
        first_index: Index of the first appended record
        appended: Number of records appended
        next_index: Next free index after the batch
        checkpoint_updated: Whether the checkpoint was overwritten
    """

    removed: int
    first_index: int
    appended: int
    next_index: int
    checkpoint_updated: bool


class Entry:
    """
    Transactional log of records for one stream.

    Attributes:
        stream_id: Stream identifier the bucket was derived from
        bucket: Bucket name inside the database
    """

    def __init__(
        self,
        db: BucketDB,
        bucket: bytes,
        stream_id: str = "",
        record_codec: Optional[Codec] = None,
        checkpoint_codec: Optional[Codec] = None,
    ):
        """
        Bind an entry to a bucket.

        Args:
            db: Shared database handle
            bucket: Bucket name (see keys.namespace_key)
            stream_id: Stream identifier, used in errors and logs
            record_codec: Codec for log records (default: raw bytes)
            checkpoint_codec: Codec for the checkpoint (default: raw bytes)
        """
        self.db = db
        self.bucket = bucket
        self.stream_id = stream_id
        self.record_codec = record_codec or RawCodec()
        self.checkpoint_codec = checkpoint_codec or RawCodec()

    def get_checkpoint(self) -> Optional[Any]:
        """
        Get the last processed checkpoint.

        Returns:
            Decoded checkpoint, or None if none has been stored

        Raises:
            CorruptDataError: If the stored value cannot be decoded
        """
        with self.db.view() as tx:
            bucket = tx.bucket(self.bucket)
            data = bucket.get(CHECKPOINT_KEY) if bucket is not None else None

        if data is None:
            return None
        return self._decode(self.checkpoint_codec, data, index=None, phase="checkpoint")

    def get_record(self, index: int) -> Any:
        """
        Get the record stored at an index.

        Raises:
            NotFoundError: If no record exists at index
            CorruptDataError: If the stored value cannot be decoded
        """
        key = self._key(index)
        with self.db.view() as tx:
            bucket = tx.bucket(self.bucket)
            data = bucket.get(key) if bucket is not None else None

        if data is None:
            logger.debug("Record not found", stream_id=self.stream_id, index=index)
            raise NotFoundError("Record not found", stream_id=self.stream_id, index=index)
        return self._decode(self.record_codec, data, index=index, phase="read")

    def next_free_index(self) -> int:
        """
        Get the index the next appended record will receive.

        Equals the number of stored records, since indices are contiguous.
        """
        with self.db.view() as tx:
            bucket = tx.bucket(self.bucket)
            if bucket is None:
                return 0
            return self._next_free_index(bucket)

    def iter_records(self, start: int = 0, limit: Optional[int] = None) -> Iterator[Tuple[int, Any]]:
        """
        Iterate over (index, record) pairs from start, in index order.

        All records come from one read snapshot.

        Args:
            start: First index to return
            limit: Maximum number of records (None: all)
        """
        items: List[Tuple[int, bytes]] = []
        with self.db.view() as tx:
            bucket = tx.bucket(self.bucket)
            if bucket is not None:
                cursor = bucket.cursor()
                key, value = cursor.seek(self._key(start))
                while key is not None and key.startswith(LOG_PREFIX):
                    if limit is not None and len(items) >= limit:
                        break
                    items.append((self._index(key), value))
                    key, value = cursor.next()

        for index, data in items:
            yield index, self._decode(self.record_codec, data, index=index, phase="read")

    def apply_batch(
        self,
        truncate_from: Optional[int] = None,
        appended: Sequence[Any] = (),
        checkpoint: Optional[Any] = None,
    ) -> BatchResult:
        """
        Truncate, append and update the checkpoint in one transaction.

        Args:
            truncate_from: Remove every record with index >= truncate_from
                before appending (None or 0: no truncation)
            appended: Records to append after the remaining tail
            checkpoint: New checkpoint (None: leave unchanged)

        Returns:
            BatchResult for the committed batch

        Raises:
            EncodingError: If a value cannot be encoded; nothing is written
            StorageUnavailableError: If the transaction fails; nothing is written
        """
        payloads = [
            self._encode(self.record_codec, record, index=i, phase="append")
            for i, record in enumerate(appended)
        ]
        raw_checkpoint = None
        if checkpoint is not None:
            raw_checkpoint = self._encode(self.checkpoint_codec, checkpoint, index=None, phase="checkpoint")

        truncate_key = self._key(truncate_from) if truncate_from else None

        with self.db.update() as tx:
            bucket = tx.create_bucket_if_not_exists(self.bucket)

            removed = 0
            if truncate_key is not None:
                removed = bucket.delete_range(truncate_key, LOG_PREFIX_END)

            # after truncation, so appends resume at the new tail
            base = self._next_free_index(bucket)
            for offset, payload in enumerate(payloads):
                bucket.put(self._key(base + offset), payload)

            if raw_checkpoint is not None:
                bucket.put(CHECKPOINT_KEY, raw_checkpoint)

        result = BatchResult(
            removed=removed,
            first_index=base,
            appended=len(payloads),
            next_index=base + len(payloads),
            checkpoint_updated=raw_checkpoint is not None,
        )

        if removed:
            logger.info(
                "Truncated records",
                stream_id=self.stream_id,
                truncate_from=truncate_from,
                removed=removed,
            )
        logger.info(
            "Applied batch",
            stream_id=self.stream_id,
            first_index=result.first_index,
            appended=result.appended,
            next_index=result.next_index,
            checkpoint_updated=result.checkpoint_updated,
        )
        return result

    def store_event(self, event: Event) -> BatchResult:
        """
        Apply a tracker event: drop stale records, append new ones, store its block.

        An empty event changes nothing and opens no write transaction.
        """
        if event.is_empty():
            next_index = self.next_free_index()
            return BatchResult(
                removed=0,
                first_index=next_index,
                appended=0,
                next_index=next_index,
                checkpoint_updated=False,
            )

        if event.index and event.removed:
            logger.info(
                "Applying reorg",
                stream_id=self.stream_id,
                truncate_from=event.index,
                reported_removed=len(event.removed),
            )
        return self.apply_batch(
            truncate_from=event.index,
            appended=event.added,
            checkpoint=event.block,
        )

    # Aliases matching the tracker's entry interface
    get_last_block = get_checkpoint
    get_log = get_record
    last_index = next_free_index

    def _next_free_index(self, bucket: Bucket) -> int:
        key, _ = bucket.cursor().last(LOG_PREFIX)
        if key is None:
            return 0
        return self._index(key) + 1

    def _key(self, index: int) -> bytes:
        try:
            return log_key(index)
        except ValueError as e:
            raise ValueError(f"{e} (stream={self.stream_id!r})") from e

    def _index(self, key: bytes) -> int:
        try:
            return index_from_key(key)
        except ValueError as e:
            raise CorruptDataError(f"Malformed record key {key!r}", stream_id=self.stream_id) from e

    def _encode(self, codec: Codec, value: Any, index: Optional[int], phase: str) -> bytes:
        try:
            return codec.encode(value)
        except Exception as e:
            logger.warning(
                "Failed to encode value",
                stream_id=self.stream_id,
                index=index,
                phase=phase,
                error=str(e),
            )
            raise EncodingError(
                f"Cannot encode value: {e}",
                stream_id=self.stream_id,
                index=index,
                phase=phase,
            ) from e

    def _decode(self, codec: Codec, data: bytes, index: Optional[int], phase: str) -> Any:
        try:
            return codec.decode(data)
        except Exception as e:
            logger.error(
                "Failed to decode stored value",
                stream_id=self.stream_id,
                index=index,
                phase=phase,
                error=str(e),
            )
            raise CorruptDataError(
                f"Cannot decode stored value: {e}",
                stream_id=self.stream_id,
                index=index,
                phase=phase,
            ) from e

    def __repr__(self) -> str:
        return f"Entry(stream_id={self.stream_id!r}, bucket={self.bucket!r})"
