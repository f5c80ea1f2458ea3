"""
Background consumer that drains the disk queue through the forwarder.
"""

import logging
import threading
from typing import Optional

from .disk_queue import DiskQueue
from .forwarder import BatchForwarder, DeliveryOutcome
from .sender import IngestSender

logger = logging.getLogger(__name__)


class QueueConsumer:
    """
    Periodically leases batches from the queue and forwards them.

    Features:
    - Batches of at most ``max_batch_messages`` records
    - Flush by timer or on demand
    - Whole-batch retry with a delay on any failed chunk

    Example:
        with QueueConsumer(queue, forwarder, flush_interval=5.0) as consumer:
            serve_requests()
    """

    def __init__(
        self,
        queue: DiskQueue,
        forwarder: BatchForwarder,
        max_batch_messages: int = 100,
        flush_interval: float = 5.0,
        lease_seconds: float = 60.0,
        sender: Optional[IngestSender] = None,
    ):
        """
        Initialize QueueConsumer.

        Args:
            queue: Queue to lease batches from
            forwarder: Forwards each leased batch
            max_batch_messages: Maximum number of records per delivery batch
            flush_interval: Seconds between automatic drains
            lease_seconds: Lease applied to each batch while it is in flight
            sender: Sender to close together with the consumer
        """
        if max_batch_messages <= 0:
            raise ValueError("max_batch_messages must be positive")
        if flush_interval <= 0:
            raise ValueError("flush_interval must be positive")

        self.queue = queue
        self.forwarder = forwarder
        self.max_batch_messages = max_batch_messages
        self.flush_interval = flush_interval
        self.lease_seconds = lease_seconds
        self._sender = sender
        self._drain_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._flush_thread = threading.Thread(
            target=self._flush_loop, daemon=True
        )

    def start(self) -> "QueueConsumer":
        """Start the background flush thread."""
        self._flush_thread.start()
        return self

    def drain(self) -> int:
        """
        Forward batches until the queue is empty or a batch is retried.

        Returns:
            Number of records acknowledged
        """
        acked = 0
        with self._drain_lock:
            while True:
                batch = self.queue.lease_batch(
                    self.max_batch_messages, self.lease_seconds
                )
                if batch is None:
                    break

                outcome = self.forwarder.process(batch)
                if outcome is DeliveryOutcome.RETRY:
                    logger.info(
                        "Batch of %d records will be retried (attempt %d)",
                        len(batch),
                        batch.attempts,
                    )
                    break
                acked += len(batch)
        return acked

    def _flush_loop(self) -> None:
        """Background thread that periodically drains the queue."""
        while not self._stop_event.is_set():
            self._stop_event.wait(self.flush_interval)
            if not self._stop_event.is_set():
                try:
                    self.drain()
                except Exception:
                    logger.exception("Queue drain failed")

    def flush(self) -> int:
        """Drain the queue now, in the calling thread."""
        return self.drain()

    def close(self) -> None:
        """Stop the flush thread, drain once more and release resources."""
        self._stop_event.set()
        if self._flush_thread.is_alive():
            self._flush_thread.join(timeout=2.0)

        try:
            self.drain()
        finally:
            self.queue.close()
            if self._sender is not None:
                self._sender.close()

    def __enter__(self):
        """Context manager entry."""
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False
