"""Tests for record types, events and codecs."""

import json

import pytest

from eventtracker.event import Event
from eventtracker.models import Block, Log, decode_quantity, encode_quantity
from eventtracker.store.codec import JSONCodec, RawCodec


class TestQuantities:
    """Test hex quantity helpers."""

    def test_encode(self):
        assert encode_quantity(0) == "0x0"
        assert encode_quantity(255) == "0xff"

    def test_encode_negative(self):
        with pytest.raises(ValueError, match="non-negative"):
            encode_quantity(-1)

    def test_decode(self):
        assert decode_quantity("0x1a") == 26
        assert decode_quantity(7) == 7

    def test_decode_invalid(self):
        with pytest.raises(ValueError, match="Invalid hex quantity"):
            decode_quantity("26")
        with pytest.raises(TypeError):
            decode_quantity(True)


class TestBlock:
    """Test Block serialization."""

    def test_to_dict(self):
        block = Block(number=16, hash="0xaa", parent_hash="0x99", timestamp=1700000000)

        assert block.to_dict() == {
            "number": "0x10",
            "hash": "0xaa",
            "parentHash": "0x99",
            "timestamp": hex(1700000000),
        }

    def test_from_dict_defaults(self):
        block = Block.from_dict({"number": "0x10", "hash": "0xaa"})

        assert block == Block(number=16, hash="0xaa")

    def test_negative_number(self):
        with pytest.raises(ValueError, match="Block number must be non-negative"):
            Block(number=-1, hash="0x")


class TestLog:
    """Test Log serialization."""

    def test_json_field_names(self):
        """Test logs serialize with JSON-RPC field names."""
        log = Log(
            address="0xdead",
            block_number=5,
            block_hash="0xb5",
            transaction_hash="0xt1",
            transaction_index=2,
            log_index=3,
            topics=["0x01", "0x02"],
            data="0xbeef",
        )

        data = json.loads(JSONCodec.for_type(Log).encode(log))

        assert data["blockNumber"] == "0x5"
        assert data["transactionIndex"] == "0x2"
        assert data["logIndex"] == "0x3"
        assert data["topics"] == ["0x01", "0x02"]
        assert data["removed"] is False

    def test_decode(self):
        codec = JSONCodec.for_type(Log)
        raw = b'{"address":"0xdead","blockNumber":"0x5","removed":true}'

        log = codec.decode(raw)

        assert log.address == "0xdead"
        assert log.block_number == 5
        assert log.removed
        assert log.topics == []


class TestCodecs:
    """Test the built-in codecs."""

    def test_raw_codec(self):
        codec = RawCodec()

        assert codec.encode(bytearray(b"ab")) == b"ab"
        assert codec.decode(b"ab") == b"ab"

    def test_raw_codec_rejects_text(self):
        with pytest.raises(TypeError, match="Value must be bytes"):
            RawCodec().encode("text")

    def test_plain_json_codec(self):
        codec = JSONCodec()

        assert codec.encode({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'
        assert codec.decode(b'{"a":1}') == {"a": 1}

    def test_json_codec_rejects_unserializable(self):
        with pytest.raises(TypeError):
            JSONCodec().encode(object())


class TestEvent:
    """Test Event."""

    def test_empty_event(self):
        assert Event().is_empty()
        assert Event(index=0).is_empty()
        assert not Event(index=3).is_empty()
        assert not Event(block=Block(number=1, hash="0x1")).is_empty()

    def test_negative_index(self):
        with pytest.raises(ValueError, match="Index must be non-negative"):
            Event(index=-1)
