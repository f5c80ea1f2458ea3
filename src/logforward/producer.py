"""
WSGI front end that captures one log record per inbound request.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Protocol
from urllib.parse import quote

from .records import Record

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": "80", "https": "443"}

# Characters a URL path keeps unescaped
PATH_SAFE = "/:@!$&'()*+,;=~"


class RecordQueue(Protocol):
    def enqueue(self, record: Record) -> None: ...


def _header(environ: Dict[str, Any], name: str) -> str:
    return environ.get("HTTP_" + name.upper().replace("-", "_"), "")


def _host(environ: Dict[str, Any]) -> str:
    host = _header(environ, "host")
    if host:
        return host
    host = environ.get("SERVER_NAME", "")
    port = environ.get("SERVER_PORT", "")
    scheme = environ.get("wsgi.url_scheme", "http")
    if port and port != DEFAULT_PORTS.get(scheme):
        host = f"{host}:{port}"
    return host


def _request_uri(environ: Dict[str, Any]) -> str:
    # WSGI paths are decoded bytes carried as latin-1 text
    path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
    try:
        raw = path.encode("latin-1")
    except UnicodeEncodeError:
        raw = path.encode("utf-8")
    uri = quote(raw, safe=PATH_SAFE) or "/"
    query = environ.get("QUERY_STRING", "")
    if query:
        uri += "?" + query
    return uri


def format_timestamp(moment: datetime) -> str:
    """Format as UTC ISO-8601 with milliseconds and a ``Z`` suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_record(
    environ: Dict[str, Any], now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Derive a log record from a WSGI request environment.

    Client address and geography come from the edge proxy headers
    (``CF-Connecting-IP``, ``X-Real-IP``, ``CF-IPCountry``, ``CF-IPCity``).
    Missing values default to an empty string.

    Args:
        environ: WSGI environment of the request
        now: Capture time (defaults to the current UTC time)

    Returns:
        Flat record of request fields
    """
    if now is None:
        now = datetime.now(timezone.utc)

    return {
        "EdgeStartTimestamp": format_timestamp(now),
        "ClientIP": (
            _header(environ, "cf-connecting-ip")
            or _header(environ, "x-real-ip")
        ),
        "ClientCountry": _header(environ, "cf-ipcountry"),
        "ClientCity": _header(environ, "cf-ipcity"),
        "ClientRequestScheme": environ.get("wsgi.url_scheme", ""),
        "ClientRequestHost": _host(environ),
        "ClientRequestURI": _request_uri(environ),
        "ClientRequestMethod": environ.get("REQUEST_METHOD", ""),
        "ClientRequestUserAgent": _header(environ, "user-agent"),
        "ClientRequestReferer": _header(environ, "referer"),
        "EdgeResponseStatus": 200,
    }


class LogCaptureApp:
    """
    WSGI application that records every request and answers ``200 OK``.

    The response never depends on whether the record could be queued.

    Example:
        from wsgiref.simple_server import make_server

        app = LogCaptureApp(DiskQueue("./logs/queue.db"))
        make_server("0.0.0.0", 8080, app).serve_forever()
    """

    def __init__(
        self,
        queue: RecordQueue,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.queue = queue
        self.clock = clock

    def __call__(
        self, environ: Dict[str, Any], start_response: Callable[..., Any]
    ) -> Iterable[bytes]:
        try:
            self.queue.enqueue(build_record(environ, self.clock()))
        except Exception:
            logger.exception("Failed to enqueue request record")

        start_response(
            "200 OK",
            [("Content-Type", "text/plain"), ("Content-Length", "2")],
        )
        return [b"OK"]
