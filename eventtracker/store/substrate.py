"""
Ordered, transactional bucket store on top of SQLite.

Keys and values are raw bytes. Keys inside a bucket are kept in a
WITHOUT ROWID B-tree ordered by memcmp, so seeks and last-key lookups are
O(log n). File databases run in WAL mode: one writer at a time, readers see
a consistent snapshot for the lifetime of their transaction.

Connections come from a bounded pool and go back to it when a transaction
ends. Write transactions are serialized by an in-process lock and by
SQLite's BEGIN IMMEDIATE across processes. An in-memory database (":memory:")
has a single connection, so every transaction on it is serialized.
"""

import os
import queue
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from eventtracker.store.errors import StorageUnavailableError
from eventtracker.utils.logging import get_logger

logger = get_logger(__name__)

Item = Tuple[Optional[bytes], Optional[bytes]]

SCHEMA = """
CREATE TABLE IF NOT EXISTS buckets (
    name BLOB PRIMARY KEY
) WITHOUT ROWID;

CREATE TABLE IF NOT EXISTS items (
    bucket BLOB NOT NULL,
    key BLOB NOT NULL,
    value BLOB NOT NULL,
    PRIMARY KEY (bucket, key)
) WITHOUT ROWID;
"""

SYNCHRONOUS_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")

MEMORY_PATH = ":memory:"


def prefix_upper_bound(prefix: bytes) -> Optional[bytes]:
    """
    Smallest key greater than every key starting with prefix.

    Returns None when no such key exists (prefix is empty or all 0xff).
    """
    stripped = prefix.rstrip(b"\xff")
    if not stripped:
        return None
    return stripped[:-1] + bytes([stripped[-1] + 1])


class BucketDB:
    """
    A single database holding any number of named buckets.

    Attributes:
        path: Database file, or ":memory:"
        in_memory: True when the database lives only in this process
        busy_timeout_s: Seconds to wait for a lock, a connection or a busy database
        synchronous: SQLite synchronous level used for every connection
        max_connections: Upper bound on open connections
    """

    FILE_MODE = 0o600
    DEFAULT_MAX_CONNECTIONS = 8

    def __init__(
        self,
        path: Union[Path, str],
        busy_timeout_s: float = 5.0,
        synchronous: str = "FULL",
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
    ):
        """
        Open (or create) a database.

        Args:
            path: Database file path, or ":memory:" for a private in-memory database
            busy_timeout_s: Lock wait timeout in seconds
            synchronous: SQLite synchronous level (OFF, NORMAL, FULL, EXTRA)
            max_connections: Pool size for file databases

        Raises:
            ValueError: If synchronous or max_connections is invalid
            StorageUnavailableError: If the file cannot be created or opened
        """
        synchronous = synchronous.upper()
        if synchronous not in SYNCHRONOUS_LEVELS:
            raise ValueError(f"Unknown synchronous level: {synchronous}")
        if max_connections < 1:
            raise ValueError(f"max_connections must be at least 1, got {max_connections}")

        self.in_memory = str(path) == MEMORY_PATH
        self.path = Path(path)
        self.busy_timeout_s = busy_timeout_s
        self.synchronous = synchronous
        self.max_connections = 1 if self.in_memory else max_connections

        self._lock = threading.Lock()
        self._local = threading.local()
        self._pool: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue()
        self._pool_lock = threading.Lock()
        self._open_connections = 0
        self._closed = False

        if not self.in_memory:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                if not self.path.exists():
                    os.close(os.open(self.path, os.O_RDWR | os.O_CREAT, self.FILE_MODE))
            except OSError as e:
                raise StorageUnavailableError(f"Cannot create database file {self.path}: {e}") from e

        conn = self._acquire()
        try:
            conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            self._release(conn, discard=True)
            raise StorageUnavailableError(f"Cannot initialize database {self.path}: {e}") from e
        self._release(conn)

        logger.info(
            "Opened bucket database",
            path=str(self.path),
            in_memory=self.in_memory,
            synchronous=self.synchronous,
            max_connections=self.max_connections,
        )

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                MEMORY_PATH if self.in_memory else str(self.path),
                timeout=self.busy_timeout_s,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open database {self.path}: {e}") from e

        if self.in_memory:
            return conn

        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(f"PRAGMA synchronous={self.synchronous}")
        except sqlite3.Error as e:
            conn.close()
            raise StorageUnavailableError(f"Cannot open database {self.path}: {e}") from e

        logger.debug("Opened connection", path=str(self.path))
        return conn

    def _acquire(self) -> sqlite3.Connection:
        """
        Borrow a connection, opening one while under max_connections.

        Raises:
            StorageUnavailableError: If no connection frees up within busy_timeout_s
        """
        try:
            return self._pool.get_nowait()
        except queue.Empty:
            pass

        with self._pool_lock:
            can_open = self._open_connections < self.max_connections
            if can_open:
                self._open_connections += 1

        if can_open:
            try:
                return self._connect()
            except StorageUnavailableError:
                with self._pool_lock:
                    self._open_connections -= 1
                raise

        try:
            return self._pool.get(timeout=self.busy_timeout_s)
        except queue.Empty:
            raise StorageUnavailableError(
                f"Timed out waiting for a connection after {self.busy_timeout_s}s"
            ) from None

    def _release(self, conn: sqlite3.Connection, discard: bool = False) -> None:
        """Return a borrowed connection; broken ones and late returns are closed."""
        with self._pool_lock:
            if not discard and not self._closed:
                self._pool.put(conn)
                return
        self._close_connection(conn)

    def _close_connection(self, conn: sqlite3.Connection) -> None:
        try:
            conn.close()
        except sqlite3.Error as e:
            logger.warning("Failed to close connection", error=str(e))
        with self._pool_lock:
            self._open_connections -= 1

    def _release_lock(self) -> None:
        self._local.holds_lock = False
        self._lock.release()

    @property
    def open_connections(self) -> int:
        """Connections currently open, idle or borrowed."""
        return self._open_connections

    def begin(self, writable: bool) -> "Transaction":
        """
        Begin a transaction on a pooled connection.

        Args:
            writable: True for a read-write transaction

        Returns:
            Open transaction; the caller must commit or roll it back

        Raises:
            StorageUnavailableError: If the database is closed, locked or failing
        """
        if self._closed:
            raise StorageUnavailableError(f"Database is closed: {self.path}")

        needs_lock = writable or self.in_memory
        if needs_lock:
            if getattr(self._local, "holds_lock", False):
                raise StorageUnavailableError("A transaction is already open on this thread")
            if not self._lock.acquire(timeout=self.busy_timeout_s):
                raise StorageUnavailableError(
                    f"Timed out waiting for the write lock after {self.busy_timeout_s}s"
                )
            self._local.holds_lock = True

        try:
            conn = self._acquire()
        except StorageUnavailableError:
            if needs_lock:
                self._release_lock()
            raise

        try:
            conn.execute("BEGIN IMMEDIATE" if writable else "BEGIN")
        except sqlite3.Error as e:
            self._release(conn, discard=True)
            if needs_lock:
                self._release_lock()
            logger.error("Failed to begin transaction", writable=writable, error=str(e))
            raise StorageUnavailableError(f"Cannot begin transaction: {e}") from e

        return Transaction(self, conn, writable, holds_lock=needs_lock)

    @contextmanager
    def view(self) -> Iterator["Transaction"]:
        """Run a block inside a read-only transaction."""
        tx = self.begin(writable=False)
        try:
            yield tx
        finally:
            tx.rollback()

    @contextmanager
    def update(self) -> Iterator["Transaction"]:
        """
        Run a block inside a write transaction.

        Commits when the block returns normally, rolls back if it raises.
        """
        tx = self.begin(writable=True)
        try:
            yield tx
            tx.commit()
        finally:
            tx.rollback()

    def close(self) -> None:
        """
        Close the database.

        Idle connections are closed now; borrowed ones when their
        transaction ends.
        """
        with self._pool_lock:
            if self._closed:
                return
            self._closed = True
            idle: List[sqlite3.Connection] = []
            while True:
                try:
                    idle.append(self._pool.get_nowait())
                except queue.Empty:
                    break

        for conn in idle:
            self._close_connection(conn)

        logger.info(
            "Closed bucket database",
            path=str(self.path),
            closed_connections=len(idle),
            in_use=self._open_connections,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "BucketDB":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"BucketDB(path={str(self.path)!r}, closed={self._closed})"


class Transaction:
    """
    A transaction on one borrowed connection.

    Rolling back a finished transaction is a no-op, so rollback() can always
    be called in a finally block after commit().
    """

    def __init__(
        self,
        db: BucketDB,
        conn: sqlite3.Connection,
        writable: bool,
        holds_lock: bool = False,
    ):
        self.db = db
        self.writable = writable
        self._conn = conn
        self._holds_lock = holds_lock
        self._done = False

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """
        Execute a statement inside this transaction.

        Raises:
            RuntimeError: If the transaction is finished
            StorageUnavailableError: If SQLite reports an error
        """
        if self._done:
            raise RuntimeError("Transaction is closed")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.error("Statement failed", error=str(e))
            raise StorageUnavailableError(f"Storage operation failed: {e}") from e

    def require_writable(self) -> None:
        if not self.writable:
            raise RuntimeError("Transaction is read-only")

    def bucket(self, name: bytes) -> Optional["Bucket"]:
        """
        Get an existing bucket.

        Returns:
            Bucket, or None if it was never created
        """
        row = self.execute("SELECT 1 FROM buckets WHERE name = ?", (bytes(name),)).fetchone()
        if row is None:
            return None
        return Bucket(self, bytes(name))

    def create_bucket_if_not_exists(self, name: bytes) -> "Bucket":
        """Get a bucket, creating it first if needed."""
        self.require_writable()
        cursor = self.execute("INSERT OR IGNORE INTO buckets (name) VALUES (?)", (bytes(name),))
        if cursor.rowcount:
            logger.info("Created bucket", bucket=bytes(name))
        return Bucket(self, bytes(name))

    def commit(self) -> None:
        """
        Commit a write transaction.

        Raises:
            RuntimeError: If the transaction is read-only or finished
            StorageUnavailableError: If the commit fails; the transaction is rolled back
        """
        self.require_writable()
        if self._done:
            raise RuntimeError("Transaction is closed")
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error("Commit failed", path=str(self.db.path), error=str(e))
            healthy = self._abort()
            self._finish(discard=not healthy)
            raise StorageUnavailableError(f"Cannot commit transaction: {e}") from e
        self._finish()
        logger.debug("Committed transaction", path=str(self.db.path))

    def rollback(self) -> None:
        """Roll back the transaction if it is still open."""
        if self._done:
            return
        healthy = self._abort()
        self._finish(discard=not healthy)

    def _abort(self) -> bool:
        """Roll back on the connection; False if the connection is unusable."""
        try:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.warning("Rollback failed", error=str(e))
            return False
        return True

    def _finish(self, discard: bool = False) -> None:
        if self._done:
            return
        self._done = True
        try:
            self.db._release(self._conn, discard=discard)
        finally:
            if self._holds_lock:
                self.db._release_lock()

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.rollback()


class Bucket:
    """A named key range inside a transaction."""

    def __init__(self, tx: Transaction, name: bytes):
        self.tx = tx
        self.name = name

    def get(self, key: bytes) -> Optional[bytes]:
        row = self.tx.execute(
            "SELECT value FROM items WHERE bucket = ? AND key = ?",
            (self.name, bytes(key)),
        ).fetchone()
        return bytes(row[0]) if row is not None else None

    def put(self, key: bytes, value: bytes) -> None:
        self.tx.require_writable()
        self.tx.execute(
            "INSERT OR REPLACE INTO items (bucket, key, value) VALUES (?, ?, ?)",
            (self.name, bytes(key), bytes(value)),
        )

    def delete(self, key: bytes) -> None:
        """Delete a key; deleting a missing key is a no-op."""
        self.tx.require_writable()
        self.tx.execute(
            "DELETE FROM items WHERE bucket = ? AND key = ?",
            (self.name, bytes(key)),
        )

    def delete_range(self, start: bytes, end: Optional[bytes] = None) -> int:
        """
        Delete every key in [start, end).

        Args:
            start: First key to delete
            end: Exclusive upper bound, or None for the end of the bucket

        Returns:
            Number of keys deleted
        """
        self.tx.require_writable()
        if end is None:
            cursor = self.tx.execute(
                "DELETE FROM items WHERE bucket = ? AND key >= ?",
                (self.name, bytes(start)),
            )
        else:
            cursor = self.tx.execute(
                "DELETE FROM items WHERE bucket = ? AND key >= ? AND key < ?",
                (self.name, bytes(start), bytes(end)),
            )
        return cursor.rowcount

    def cursor(self) -> "Cursor":
        return Cursor(self)


class Cursor:
    """
    Ordered iteration over a bucket.

    Positioning methods return a (key, value) pair, or (None, None) when
    there is no such item.
    """

    def __init__(self, bucket: Bucket):
        self.bucket = bucket
        self._key: Optional[bytes] = None

    def _fetch(self, condition: str, params: tuple, descending: bool) -> Item:
        order = "DESC" if descending else "ASC"
        row = self.bucket.tx.execute(
            f"SELECT key, value FROM items WHERE bucket = ? {condition} "
            f"ORDER BY key {order} LIMIT 1",
            (self.bucket.name,) + params,
        ).fetchone()
        if row is None:
            self._key = None
            return None, None
        self._key = bytes(row[0])
        return self._key, bytes(row[1])

    def first(self) -> Item:
        return self._fetch("", (), descending=False)

    def last(self, prefix: bytes = b"") -> Item:
        """
        Move to the last key, or the last key starting with prefix.
        """
        if not prefix:
            return self._fetch("", (), descending=True)
        upper = prefix_upper_bound(prefix)
        if upper is None:
            return self._fetch("AND key >= ?", (bytes(prefix),), descending=True)
        return self._fetch(
            "AND key >= ? AND key < ?",
            (bytes(prefix), upper),
            descending=True,
        )

    def seek(self, key: bytes) -> Item:
        """Move to the first key greater than or equal to key."""
        return self._fetch("AND key >= ?", (bytes(key),), descending=False)

    def next(self) -> Item:
        if self._key is None:
            return None, None
        return self._fetch("AND key > ?", (self._key,), descending=False)

    def prev(self) -> Item:
        if self._key is None:
            return None, None
        return self._fetch("AND key < ?", (self._key,), descending=True)

    def delete(self) -> None:
        """
        Delete the item under the cursor.

        The position is kept, so next() continues with the following key.
        """
        if self._key is None:
            raise RuntimeError("Cursor is not positioned on an item")
        self.bucket.delete(self._key)
