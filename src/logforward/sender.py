"""
HTTP sender for the ingestion endpoint.
"""

import logging
import time
from typing import Callable, Dict, Optional, Sequence

import requests
from requests.auth import HTTPBasicAuth

from .records import Record, dumps

logger = logging.getLogger(__name__)


class IngestSender:
    """
    Posts wire chunks to the ingestion endpoint.

    Each chunk is wrapped in an envelope ``{"sentAt": <ms>, "items": [...]}``.
    Network faults and non-2xx responses are logged and reported as ``False``;
    nothing is raised to the caller.
    """

    def __init__(
        self,
        ingest_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize IngestSender.

        Args:
            ingest_url: URL of the ingestion endpoint
            headers: Additional headers to send with requests
            timeout: Request timeout in seconds
            session: Custom requests.Session to use (e.g., shared by application)
            username: Optional username for Basic Auth
            password: Optional password for Basic Auth
            clock: Returns the current time in seconds, used for ``sentAt``
        """
        if not ingest_url:
            raise ValueError("ingest_url is required")

        self.ingest_url = ingest_url
        self.headers = headers or {}
        self.timeout = timeout
        self.username = username
        self.password = password
        self.clock = clock
        self._owns_session = session is None
        self._session = (
            self._build_session()
            if session is None
            else self._prepare_session(session)
        )

    def _build_session(self) -> requests.Session:
        return self._prepare_session(requests.Session())

    def _prepare_session(self, session: requests.Session) -> requests.Session:
        session.headers.update(
            {
                "Content-Type": "application/json",
                **self.headers,
            }
        )
        if self.username and self.password:
            session.auth = HTTPBasicAuth(self.username, self.password)
        return session

    def reset_session(self) -> None:
        """Close an internally-owned session and open a fresh one."""
        if self._owns_session and self._session:
            self._session.close()

        self._session = self._build_session()
        self._owns_session = True

    def build_envelope(self, items: Sequence[Record]) -> Dict[str, object]:
        """Wrap records in the wire envelope stamped with the send time."""
        return {
            "sentAt": int(self.clock() * 1000),
            "items": list(items),
        }

    def send_chunk(self, items: Sequence[Record]) -> bool:
        """
        Send one wire chunk.

        Args:
            items: Records to send, in order

        Returns:
            True if the endpoint answered with a 2xx status, False otherwise
        """
        if not items:
            return True

        payload = dumps(self.build_envelope(items)).encode("utf-8")
        try:
            response = self._session.post(
                self.ingest_url,
                data=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning(
                "Ingestion failed for %d records: %s", len(items), exc
            )
            if self._owns_session:
                # Refresh internal session so future sends can recover cleanly
                self.reset_session()
            return False

        if 200 <= response.status_code < 300:
            return True

        logger.warning(
            "Ingestion rejected %d records with HTTP %d",
            len(items),
            response.status_code,
        )
        return False

    def close(self) -> None:
        """Close the HTTP session."""
        if self._owns_session:
            self._session.close()
