"""
Ethereum-shaped record types stored by the tracker.

Log and Block serialize to the JSON-RPC representation (camelCase keys,
hex-encoded quantities) so stored values read the same as node responses.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


def encode_quantity(value: int) -> str:
    if value < 0:
        raise ValueError(f"Quantity must be non-negative: {value}")
    return hex(value)


def decode_quantity(value: Any) -> int:
    """Parse a hex quantity ("0x1a"); plain integers are accepted too."""
    if isinstance(value, bool):
        raise TypeError("Quantity must be a hex string or int, got bool")
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"Invalid hex quantity: {value!r}")
    return int(value, 16)


@dataclass
class Block:
    """
    A processed block, used as the stream checkpoint.

    Attributes:
        number: Block height
        hash: Block hash (0x-prefixed hex)
        parent_hash: Parent block hash
        timestamp: Block timestamp in seconds
    """

    number: int
    hash: str
    parent_hash: str = ""
    timestamp: int = 0

    def __post_init__(self) -> None:
        if self.number < 0:
            raise ValueError(f"Block number must be non-negative, got {self.number}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": encode_quantity(self.number),
            "hash": self.hash,
            "parentHash": self.parent_hash,
            "timestamp": encode_quantity(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Block":
        return cls(
            number=decode_quantity(data["number"]),
            hash=data["hash"],
            parent_hash=data.get("parentHash", ""),
            timestamp=decode_quantity(data.get("timestamp", 0)),
        )


@dataclass
class Log:
    """
    A contract event log.

    Attributes:
        address: Emitting contract address
        topics: Indexed topics
        data: Non-indexed payload (0x-prefixed hex)
        block_number: Block containing the log
        block_hash: Hash of that block
        transaction_hash: Transaction that emitted the log
        transaction_index: Position of the transaction in the block
        log_index: Position of the log in the block
        removed: True when the log was dropped by a reorganization
    """

    address: str
    block_number: int
    block_hash: str = ""
    transaction_hash: str = ""
    transaction_index: int = 0
    log_index: int = 0
    topics: List[str] = field(default_factory=list)
    data: str = "0x"
    removed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "blockNumber": encode_quantity(self.block_number),
            "blockHash": self.block_hash,
            "transactionHash": self.transaction_hash,
            "transactionIndex": encode_quantity(self.transaction_index),
            "logIndex": encode_quantity(self.log_index),
            "topics": list(self.topics),
            "data": self.data,
            "removed": self.removed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Log":
        return cls(
            address=data["address"],
            block_number=decode_quantity(data["blockNumber"]),
            block_hash=data.get("blockHash", ""),
            transaction_hash=data.get("transactionHash", ""),
            transaction_index=decode_quantity(data.get("transactionIndex", 0)),
            log_index=decode_quantity(data.get("logIndex", 0)),
            topics=list(data.get("topics", [])),
            data=data.get("data", "0x"),
            removed=bool(data.get("removed", False)),
        )
