"""
Example of forwarding a batch of request records directly.
"""

import logging

from logforward import BatchForwarder, DeliveryOutcome, IngestSender


def main():
    logging.basicConfig(level=logging.INFO)

    sender = IngestSender(
        ingest_url="http://localhost:8080/ingest",
        timeout=5.0,
    )
    forwarder = BatchForwarder(sender, max_bytes=256 * 1024)

    records = [
        {
            "EdgeStartTimestamp": "2024-05-01T12:00:00.000Z",
            "ClientIP": "203.0.113.7",
            "ClientRequestMethod": "GET",
            "ClientRequestURI": f"/items/{i}",
            "EdgeResponseStatus": 200,
        }
        for i in range(500)
    ]

    try:
        outcome = forwarder.forward(records)
        if outcome is DeliveryOutcome.RETRY:
            print("Delivery failed, the batch should be retried")
        else:
            print("All records delivered")
    finally:
        sender.close()


if __name__ == "__main__":
    main()
