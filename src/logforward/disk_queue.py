"""
Disk queue using SQLite for persistent record storage.
"""

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, TypeVar

from .records import Record, dumps

T = TypeVar("T")

logger = logging.getLogger(__name__)


class QueueBatch:
    """
    A leased group of queued records.

    Exactly one of ``ack_all`` or ``retry_all`` may be called. Until then the
    records stay leased and invisible to other consumers; if neither is called
    the lease simply expires.
    """

    def __init__(
        self,
        queue: "DiskQueue",
        ids: List[int],
        records: List[Record],
        attempts: int,
    ):
        self._queue = queue
        self._ids = ids
        self.records = records
        self.attempts = attempts
        self._done = False

    def __len__(self) -> int:
        return len(self.records)

    def _complete(self) -> None:
        if self._done:
            raise RuntimeError("batch was already acknowledged or retried")
        self._done = True

    def ack_all(self) -> None:
        """Remove every record of the batch from the queue."""
        self._complete()
        self._queue.delete(self._ids)

    def retry_all(self, delay: float = 0.0) -> None:
        """Release the batch so it is delivered again after ``delay`` seconds."""
        self._complete()
        self._queue.release(self._ids, delay)


class DiskQueue:
    """
    Queue backed by SQLite.

    Records are leased in insertion order. A leased record is hidden from
    ``lease_batch`` until it is acked, released or its lease runs out. Records
    released after ``max_attempts`` deliveries go to a dead-letter table.
    """

    def __init__(
        self,
        db_path: str,
        max_attempts: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize DiskQueue.

        Args:
            db_path: Path to SQLite database file
            max_attempts: Deliveries allowed before a record is dead-lettered
            clock: Returns the current time in seconds
        """
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")

        self.db_path = db_path
        self.max_attempts = max_attempts
        self.clock = clock
        self.lock = threading.Lock()
        self.conn: Optional[sqlite3.Connection] = None

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connect()

    def _connect(self) -> None:
        """Establish a SQLite connection and ensure schema is ready."""
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._init_db()

    def _ensure_connection(self) -> None:
        """Ensure there is an active SQLite connection."""
        if self.conn is None:
            self._connect()

    def _reconnect(self) -> None:
        """Drop the current connection and open a new one."""
        if self.conn is not None:
            try:
                self.conn.close()
            except sqlite3.Error:
                logger.debug("Error closing SQLite connection", exc_info=True)
        self.conn = None
        self._connect()

    def _run_with_retry(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """Run a DB operation, reopening the connection once if needed."""
        last_exc: Optional[sqlite3.Error] = None
        for _ in range(2):
            self._ensure_connection()
            conn = self.conn
            if conn is None:
                raise RuntimeError("Database connection unavailable")
            try:
                with conn:
                    return operation(conn)
            except sqlite3.Error as exc:
                logger.warning("SQLite operation failed: %s", exc)
                last_exc = exc
                self._reconnect()
        assert last_exc is not None
        raise last_exc

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self.conn
        if conn is None:
            raise RuntimeError("Database connection unavailable")
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS log_queue (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    visible_at REAL NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_log_queue_visible
                ON log_queue(visible_at, id)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS dead_letter (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message TEXT NOT NULL,
                    attempts INTEGER NOT NULL,
                    failed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    def enqueue(self, record: Record) -> None:
        """
        Add a record to the queue.

        Args:
            record: Record to enqueue
        """
        self.enqueue_batch([record])

    def enqueue_batch(self, records: Iterable[Record]) -> None:
        """
        Add multiple records to the queue.

        Args:
            records: Records to enqueue, in order
        """
        rows = [(dumps(r),) for r in records]
        if not rows:
            return

        def operation(conn: sqlite3.Connection) -> None:
            conn.executemany(
                "INSERT INTO log_queue(message) VALUES (?)", rows
            )

        with self.lock:
            self._run_with_retry(operation)

    def lease_batch(
        self, limit: int, lease_seconds: float = 60.0
    ) -> Optional[QueueBatch]:
        """
        Lease up to ``limit`` of the oldest visible records.

        Args:
            limit: Maximum number of records to lease
            lease_seconds: How long the records stay hidden without a signal

        Returns:
            The leased batch, or None if nothing is visible
        """

        def operation(conn: sqlite3.Connection) -> Optional[QueueBatch]:
            now = self.clock()
            rows = conn.execute(
                "SELECT id, message, attempts FROM log_queue "
                "WHERE visible_at <= ? ORDER BY id ASC LIMIT ?",
                (now, limit),
            ).fetchall()
            if not rows:
                return None

            ids = [r[0] for r in rows]
            placeholders = ",".join("?" * len(ids))
            conn.execute(
                "UPDATE log_queue SET attempts = attempts + 1, visible_at = ? "
                f"WHERE id IN ({placeholders})",
                [now + lease_seconds, *ids],
            )
            return QueueBatch(
                self,
                ids,
                [json.loads(r[1]) for r in rows],
                attempts=max(r[2] for r in rows) + 1,
            )

        with self.lock:
            return self._run_with_retry(operation)

    def delete(self, ids: List[int]) -> None:
        """Remove records by id."""
        if not ids:
            return

        def operation(conn: sqlite3.Connection) -> None:
            placeholders = ",".join("?" * len(ids))
            conn.execute(
                f"DELETE FROM log_queue WHERE id IN ({placeholders})", ids
            )

        with self.lock:
            self._run_with_retry(operation)

    def release(self, ids: List[int], delay: float = 0.0) -> None:
        """
        Make leased records visible again after ``delay`` seconds.

        Records that already used up ``max_attempts`` deliveries are moved to
        the dead-letter table instead.
        """
        if not ids:
            return

        def operation(conn: sqlite3.Connection) -> None:
            placeholders = ",".join("?" * len(ids))
            exhausted = f"id IN ({placeholders}) AND attempts >= ?"
            params = [*ids, self.max_attempts]
            dead = conn.execute(
                "INSERT INTO dead_letter(message, attempts) "
                f"SELECT message, attempts FROM log_queue WHERE {exhausted} "
                "ORDER BY id ASC",
                params,
            ).rowcount
            if dead > 0:
                logger.warning(
                    "Moved %d records to dead letter after %d attempts",
                    dead,
                    self.max_attempts,
                )
                conn.execute(
                    f"DELETE FROM log_queue WHERE {exhausted}", params
                )
            conn.execute(
                "UPDATE log_queue SET visible_at = ? "
                f"WHERE id IN ({placeholders})",
                [self.clock() + delay, *ids],
            )

        with self.lock:
            self._run_with_retry(operation)

    def size(self) -> int:
        """
        Get the number of records in the queue, leased ones included.

        Returns:
            Queue size
        """

        def operation(conn: sqlite3.Connection) -> int:
            return conn.execute("SELECT COUNT(*) FROM log_queue").fetchone()[0]

        with self.lock:
            return self._run_with_retry(operation)

    def dead_letter_count(self) -> int:
        """Get the number of dead-lettered records."""

        def operation(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "SELECT COUNT(*) FROM dead_letter"
            ).fetchone()[0]

        with self.lock:
            return self._run_with_retry(operation)

    def clear(self) -> None:
        """Clear all records from the queue."""

        def operation(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM log_queue")

        with self.lock:
            self._run_with_retry(operation)

    def close(self) -> None:
        """Close the database connection."""
        with self.lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
