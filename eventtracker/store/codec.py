"""
Value codecs.

The store never looks inside records or checkpoints: each Entry is given one
codec for log records and one for the checkpoint, and only ever handles the
bytes they produce.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class Codec(ABC):
    """Converts values to and from bytes."""

    @abstractmethod
    def encode(self, value: Any) -> bytes:
        """
        Serialize a value.

        Raises:
            Exception: Any failure; the store reports it as EncodingError
        """
        pass

    @abstractmethod
    def decode(self, data: bytes) -> Any:
        """
        Deserialize a value.

        Raises:
            Exception: Any failure; the store reports it as CorruptDataError
        """
        pass


class RawCodec(Codec):
    """Stores bytes as given."""

    def encode(self, value: Any) -> bytes:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"Value must be bytes, got {type(value).__name__}")
        return bytes(value)

    def decode(self, data: bytes) -> bytes:
        return data


class JSONCodec(Codec):
    """
    Stores values as UTF-8 JSON.

    With a record type, values are converted through its to_dict/from_dict
    methods (see eventtracker.models); without one, plain JSON values are
    stored as they are.
    """

    def __init__(
        self,
        to_dict: Optional[Callable[[Any], Any]] = None,
        from_dict: Optional[Callable[[Any], Any]] = None,
    ):
        self._to_dict = to_dict
        self._from_dict = from_dict

    @classmethod
    def for_type(cls, record_type: Any) -> "JSONCodec":
        """Build a codec for a class exposing to_dict() and from_dict()."""
        return cls(to_dict=lambda value: value.to_dict(), from_dict=record_type.from_dict)

    def encode(self, value: Any) -> bytes:
        obj = self._to_dict(value) if self._to_dict is not None else value
        return json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")

    def decode(self, data: bytes) -> Any:
        obj = json.loads(data.decode("utf-8"))
        return self._from_dict(obj) if self._from_dict is not None else obj
