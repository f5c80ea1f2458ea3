"""Tests for chunk packing and batch forwarding."""

import pytest

from logforward.forwarder import BatchForwarder, DeliveryOutcome, pack
from logforward.records import record_size


def _record(size: int, tag: int = 0) -> dict:
    """Return a record whose compact JSON is exactly ``size`` bytes."""
    prefix = f"{tag}:"
    record = {"m": prefix + "x" * (size - 8 - len(prefix))}
    assert record_size(record) == size
    return record


class FakeSender:
    def __init__(self, results=None):
        self.results = list(results or [])
        self.chunks = []

    def send_chunk(self, items):
        self.chunks.append(list(items))
        return self.results.pop(0) if self.results else True


class FakeBatch:
    def __init__(self, records):
        self.records = records
        self.signals = []

    def ack_all(self):
        self.signals.append("ack")

    def retry_all(self, delay=0.0):
        self.signals.append(("retry", delay))


def test_record_size_counts_utf8_bytes():
    assert record_size({"city": "Zürich"}) == len('{"city":"Zürich"}'.encode())


def test_pack_preserves_order_and_records():
    records = [_record(40 + i % 7 * 10, tag=i) for i in range(50)]
    chunks = list(pack(records, 200))
    assert [r for chunk in chunks for r in chunk] == records
    assert all(chunks)


def test_pack_multi_record_chunks_stay_under_ceiling():
    records = [_record(30 + i % 5 * 25, tag=i) for i in range(60)]
    for chunk in pack(records, 150):
        if len(chunk) > 1:
            assert sum(record_size(r) for r in chunk) <= 150


def test_pack_ceiling_is_strict():
    records = [_record(100, tag=i) for i in range(3)]
    chunks = list(pack(records, 200))
    assert chunks == [records[:2], records[2:]]


def test_pack_oversized_record_goes_alone():
    small = _record(20, tag=1)
    big = _record(500, tag=2)
    chunks = list(pack([small, big, small], 100))
    assert chunks == [[small], [big], [small]]


def test_pack_empty():
    assert list(pack([], 100)) == []


def test_forward_empty_batch_acks_without_sending():
    sender = FakeSender()
    outcome = BatchForwarder(sender, max_bytes=100).forward([])
    assert outcome is DeliveryOutcome.ACK
    assert sender.chunks == []


def test_forward_single_oversized_record():
    sender = FakeSender()
    big = _record(1000)
    outcome = BatchForwarder(sender, max_bytes=100).forward([big])
    assert outcome is DeliveryOutcome.ACK
    assert sender.chunks == [[big]]


def test_forward_all_in_one_chunk():
    sender = FakeSender()
    records = [_record(50, tag=i) for i in range(10)]
    outcome = BatchForwarder(sender, max_bytes=10_000).forward(records)
    assert outcome is DeliveryOutcome.ACK
    assert sender.chunks == [records]


def test_forward_stops_at_first_failed_chunk():
    sender = FakeSender([True, False, True])
    records = [_record(100, tag=i) for i in range(3)]
    outcome = BatchForwarder(sender, max_bytes=100).forward(records)
    assert outcome is DeliveryOutcome.RETRY
    assert sender.chunks == [[records[0]], [records[1]]]


def test_forward_last_chunk_failure_retries():
    sender = FakeSender([True, False])
    records = [_record(100, tag=i) for i in range(3)]
    outcome = BatchForwarder(sender, max_bytes=200).forward(records)
    assert outcome is DeliveryOutcome.RETRY
    assert len(sender.chunks) == 2


def test_process_acks_batch():
    batch = FakeBatch([_record(30)])
    outcome = BatchForwarder(FakeSender(), max_bytes=100).process(batch)
    assert outcome is DeliveryOutcome.ACK
    assert batch.signals == ["ack"]


def test_process_retries_whole_batch_with_delay():
    batch = FakeBatch([_record(30, tag=i) for i in range(4)])
    forwarder = BatchForwarder(
        FakeSender([True, False]), max_bytes=60, retry_delay=2.5
    )
    assert forwarder.process(batch) is DeliveryOutcome.RETRY
    assert batch.signals == [("retry", 2.5)]


def test_invalid_ceiling():
    with pytest.raises(ValueError):
        BatchForwarder(FakeSender(), max_bytes=0)
