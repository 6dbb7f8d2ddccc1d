"""
Key layout inside the substrate.

The layout is shared with existing databases and must stay bit-compatible:
    bucket      b"logs" + stream id
    log record  b"logs-" + 8-byte big-endian index
    checkpoint  b"last-block"

Big-endian indices make lexicographic key order equal numeric order, which
is what lets the ordered index answer "highest index" without a scan.
"""

import struct

NAMESPACE_PREFIX = b"logs"
LOG_PREFIX = b"logs-"
CHECKPOINT_KEY = b"last-block"

INDEX_FORMAT = ">Q"
INDEX_SIZE = 8
MAX_INDEX = 2**64 - 1


def namespace_key(stream_id: str) -> bytes:
    """
    Build the bucket name for a stream.

    Args:
        stream_id: Stream identifier (empty string selects the default stream)

    Returns:
        Bucket name
    """
    return NAMESPACE_PREFIX + stream_id.encode("utf-8")


def log_key(index: int) -> bytes:
    """
    Build the key of the record at an index.

    Raises:
        ValueError: If index is outside the unsigned 64-bit range
    """
    if index < 0 or index > MAX_INDEX:
        raise ValueError(f"Index must fit in an unsigned 64-bit integer: {index}")
    return LOG_PREFIX + struct.pack(INDEX_FORMAT, index)


def index_from_key(key: bytes) -> int:
    """
    Recover the index encoded in a log record key.

    Raises:
        ValueError: If the key is not a log record key
    """
    if not key.startswith(LOG_PREFIX):
        raise ValueError(f"Not a log record key: {key!r}")
    raw = key[len(LOG_PREFIX):]
    if len(raw) != INDEX_SIZE:
        raise ValueError(f"Expected {INDEX_SIZE} index bytes, got {len(raw)}")
    return struct.unpack(INDEX_FORMAT, raw)[0]
