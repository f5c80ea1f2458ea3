"""
Batch HTTP request logs and forward them to an ingestion endpoint.
"""

from .config import Settings
from .consumer import QueueConsumer
from .disk_queue import DiskQueue, QueueBatch
from .forwarder import BatchForwarder, DeliveryOutcome, pack
from .producer import LogCaptureApp, build_record
from .sender import IngestSender

__version__ = "0.1.0"
__all__ = [
    "BatchForwarder",
    "DeliveryOutcome",
    "DiskQueue",
    "IngestSender",
    "LogCaptureApp",
    "QueueBatch",
    "QueueConsumer",
    "Settings",
    "build_record",
    "pack",
]
