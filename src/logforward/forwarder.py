"""
Packs delivery batches into byte-bounded chunks and forwards them.
"""

import logging
from enum import Enum
from typing import Iterable, Iterator, List, Protocol, Sequence

from .config import DEFAULT_BATCH_MAX_BYTES
from .records import Record, record_size

logger = logging.getLogger(__name__)


class DeliveryOutcome(Enum):
    """Result of forwarding one delivery batch."""

    ACK = "ack"
    RETRY = "retry"


class ChunkSender(Protocol):
    def send_chunk(self, items: Sequence[Record]) -> bool: ...


class DeliveryBatch(Protocol):
    records: Sequence[Record]

    def ack_all(self) -> None: ...

    def retry_all(self, delay: float = 0.0) -> None: ...


def pack(records: Iterable[Record], max_bytes: int) -> Iterator[List[Record]]:
    """
    Split records into contiguous chunks of at most ``max_bytes``.

    A record is appended to the current chunk unless the chunk is non-empty
    and the record would push it past ``max_bytes``. A record larger than
    ``max_bytes`` therefore still goes out, alone in its own chunk.

    Chunks are produced lazily, so a consumer that stops early leaves the
    remaining records unread.

    Args:
        records: Records in delivery order
        max_bytes: Byte ceiling for a chunk holding more than one record

    Yields:
        Non-empty lists of records, in input order
    """
    chunk: List[Record] = []
    chunk_bytes = 0

    for record in records:
        size = record_size(record)
        if chunk and chunk_bytes + size > max_bytes:
            yield chunk
            chunk = []
            chunk_bytes = 0

        chunk.append(record)
        chunk_bytes += size

    if chunk:
        yield chunk


class BatchForwarder:
    """
    Forwards delivery batches to the ingestion endpoint.

    A batch is acknowledged only when every chunk it packs into is accepted.
    The first failed chunk stops the run and the whole batch is retried,
    including chunks that were already delivered.

    Example:
        forwarder = BatchForwarder(IngestSender("http://ingest:8080/logs"))
        outcome = forwarder.forward(records)
    """

    def __init__(
        self,
        sender: ChunkSender,
        max_bytes: int = DEFAULT_BATCH_MAX_BYTES,
        retry_delay: float = 0.0,
    ):
        """
        Initialize BatchForwarder.

        Args:
            sender: Delivers a single chunk and reports success
            max_bytes: Byte ceiling for multi-record chunks
            retry_delay: Delay passed to ``retry_all`` for failed batches
        """
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")

        self.sender = sender
        self.max_bytes = max_bytes
        self.retry_delay = retry_delay

    def forward(self, records: Sequence[Record]) -> DeliveryOutcome:
        """
        Pack and send a delivery batch.

        Args:
            records: Records of the batch, in order

        Returns:
            ACK if every chunk was delivered, RETRY otherwise
        """
        sent = 0
        for index, chunk in enumerate(pack(records, self.max_bytes)):
            if not self.sender.send_chunk(chunk):
                logger.warning(
                    "Chunk %d failed after %d of %d records were sent; "
                    "retrying batch",
                    index,
                    sent,
                    len(records),
                )
                return DeliveryOutcome.RETRY
            sent += len(chunk)

        return DeliveryOutcome.ACK

    def process(self, batch: DeliveryBatch) -> DeliveryOutcome:
        """Forward a queue batch and signal ack or retry on it."""
        outcome = self.forward(batch.records)
        if outcome is DeliveryOutcome.ACK:
            batch.ack_all()
        else:
            batch.retry_all(delay=self.retry_delay)
        return outcome
