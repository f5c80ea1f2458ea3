"""
Run the capture server and the queue consumer in one process.
"""

import logging
from wsgiref.simple_server import make_server

from .config import Settings
from .consumer import QueueConsumer
from .disk_queue import DiskQueue
from .forwarder import BatchForwarder
from .producer import LogCaptureApp
from .sender import IngestSender

logger = logging.getLogger("logforward")


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()

    queue = DiskQueue(settings.queue_db_path, max_attempts=settings.max_attempts)
    sender = IngestSender(
        settings.ingest_endpoint,
        timeout=settings.request_timeout,
        username=settings.username,
        password=settings.password,
    )
    forwarder = BatchForwarder(
        sender,
        max_bytes=settings.batch_max_bytes,
        retry_delay=settings.retry_delay,
    )

    with QueueConsumer(
        queue,
        forwarder,
        max_batch_messages=settings.max_batch_messages,
        flush_interval=settings.flush_interval,
        lease_seconds=settings.lease_seconds,
        sender=sender,
    ):
        with make_server(
            settings.listen_host, settings.listen_port, LogCaptureApp(queue)
        ) as server:
            logger.info(
                "Listening on %s:%d, forwarding to %s",
                settings.listen_host,
                settings.listen_port,
                settings.ingest_endpoint,
            )
            try:
                server.serve_forever()
            except KeyboardInterrupt:
                logger.info("Shutting down")


if __name__ == "__main__":
    main()
