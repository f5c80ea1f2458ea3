"""Tests for the queue consumer."""

import sqlite3
from unittest.mock import MagicMock

import pytest

from logforward.consumer import QueueConsumer
from logforward.disk_queue import DiskQueue
from logforward.forwarder import BatchForwarder


class ScriptedSender:
    def __init__(self, results=None):
        self.results = list(results or [])
        self.chunks = []

    def send_chunk(self, items):
        self.chunks.append(list(items))
        return self.results.pop(0) if self.results else True


@pytest.fixture
def queue(tmp_path):
    return DiskQueue(str(tmp_path / "queue.db"), max_attempts=2)


def test_drain_forwards_in_batches(queue):
    queue.enqueue_batch([{"n": i} for i in range(250)])
    sender = ScriptedSender()
    consumer = QueueConsumer(
        queue, BatchForwarder(sender, max_bytes=1_000_000), max_batch_messages=100
    )

    assert consumer.drain() == 250
    assert [len(c) for c in sender.chunks] == [100, 100, 50]
    assert queue.size() == 0
    queue.close()


def test_drain_stops_on_retry(queue):
    queue.enqueue_batch([{"n": i} for i in range(30)])
    sender = ScriptedSender([True, False])
    consumer = QueueConsumer(
        queue,
        BatchForwarder(sender, max_bytes=1_000_000, retry_delay=60.0),
        max_batch_messages=10,
    )

    assert consumer.drain() == 10
    assert len(sender.chunks) == 2
    assert queue.size() == 20
    queue.close()


def test_close_drains_and_releases(queue):
    queue.enqueue({"n": 1})
    sender = ScriptedSender()
    owned_sender = MagicMock()
    consumer = QueueConsumer(
        queue, BatchForwarder(sender), flush_interval=60.0, sender=owned_sender
    )

    with consumer:
        pass

    assert sender.chunks == [[{"n": 1}]]
    owned_sender.close.assert_called_once()
    assert queue.conn is None


def test_invalid_batch_size(queue):
    with pytest.raises(ValueError):
        QueueConsumer(queue, BatchForwarder(ScriptedSender()), max_batch_messages=0)
    queue.close()


def test_invalid_flush_interval(queue):
    with pytest.raises(ValueError):
        QueueConsumer(queue, BatchForwarder(ScriptedSender()), flush_interval=0)
    queue.close()


def test_close_releases_resources_when_drain_fails():
    queue = MagicMock()
    queue.lease_batch.side_effect = sqlite3.OperationalError("disk I/O error")
    owned_sender = MagicMock()
    consumer = QueueConsumer(
        queue, BatchForwarder(ScriptedSender()), sender=owned_sender
    )

    with pytest.raises(sqlite3.OperationalError):
        consumer.close()

    queue.close.assert_called_once()
    owned_sender.close.assert_called_once()
