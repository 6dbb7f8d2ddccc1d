"""
Error taxonomy for the log entry store.

Every error carries the stream id, record index and phase it was raised in
when those are known, so callers can decide whether to retry a batch.
"""

from typing import Optional


class StoreError(Exception):
    """Base class for store errors."""

    def __init__(
        self,
        message: str,
        stream_id: Optional[str] = None,
        index: Optional[int] = None,
        phase: Optional[str] = None,
    ):
        self.message = message
        self.stream_id = stream_id
        self.index = index
        self.phase = phase
        super().__init__(self._describe())

    def _describe(self) -> str:
        context = []
        if self.stream_id is not None:
            context.append(f"stream={self.stream_id!r}")
        if self.index is not None:
            context.append(f"index={self.index}")
        if self.phase is not None:
            context.append(f"phase={self.phase}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class StorageUnavailableError(StoreError):
    """Raised when the substrate cannot open, begin or commit a transaction."""
    pass


class NotFoundError(StoreError):
    """Raised when no record exists at the requested index."""
    pass


class CorruptDataError(StoreError):
    """Raised when stored bytes cannot be decoded by the codec."""
    pass


class EncodingError(StoreError):
    """Raised when a value cannot be serialized; storage is left untouched."""
    pass


DecodeError = CorruptDataError
