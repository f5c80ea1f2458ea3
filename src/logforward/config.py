"""
Configuration for the log forwarding service.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# Max payload size accepted by the ingestion endpoint: 256 KB
DEFAULT_BATCH_MAX_BYTES = 256 * 1024


def get_env_str(
    env: Mapping[str, str],
    key: str,
    default: Optional[str] = None,
) -> Optional[str]:
    """Read a string variable, treating blank values as unset."""
    value = env.get(key)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def get_env_int(
    env: Mapping[str, str],
    key: str,
    default: Optional[int] = None,
) -> Optional[int]:
    """Read an integer variable."""
    value = get_env_str(env, key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer (got: {value})") from exc


def get_env_float(
    env: Mapping[str, str],
    key: str,
    default: Optional[float] = None,
) -> Optional[float]:
    """Read a float variable."""
    value = get_env_str(env, key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{key} must be a float (got: {value})") from exc


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for the forwarder, queue and capture server.

    Example:
        settings = Settings.from_env()
        forwarder = BatchForwarder(
            IngestSender(settings.ingest_endpoint),
            max_bytes=settings.batch_max_bytes,
        )
    """

    ingest_endpoint: str
    batch_max_bytes: int = DEFAULT_BATCH_MAX_BYTES
    max_batch_messages: int = 100
    flush_interval: float = 5.0
    request_timeout: float = 10.0
    retry_delay: float = 5.0
    max_attempts: int = 5
    lease_seconds: float = 60.0
    queue_db_path: str = "./logs/queue.db"
    username: Optional[str] = None
    password: Optional[str] = None
    listen_host: str = "0.0.0.0"
    listen_port: int = 8080

    def __post_init__(self) -> None:
        if not self.ingest_endpoint:
            raise ValueError("ingest_endpoint is required")
        if self.batch_max_bytes <= 0:
            raise ValueError("batch_max_bytes must be positive")
        if self.max_batch_messages <= 0:
            raise ValueError("max_batch_messages must be positive")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.flush_interval <= 0:
            raise ValueError("flush_interval must be positive")
        if self.lease_seconds <= 0:
            raise ValueError("lease_seconds must be positive")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must not be negative")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Validated settings
        """
        if env is None:
            env = os.environ

        endpoint = get_env_str(env, "INGEST_ENDPOINT")
        if endpoint is None:
            raise ValueError("INGEST_ENDPOINT is required")

        return cls(
            ingest_endpoint=endpoint,
            batch_max_bytes=get_env_int(
                env, "BATCH_MAX_BYTES", DEFAULT_BATCH_MAX_BYTES
            ),
            max_batch_messages=get_env_int(env, "MAX_BATCH_MESSAGES", 100),
            flush_interval=get_env_float(env, "FLUSH_INTERVAL", 5.0),
            request_timeout=get_env_float(env, "REQUEST_TIMEOUT", 10.0),
            retry_delay=get_env_float(env, "RETRY_DELAY", 5.0),
            max_attempts=get_env_int(env, "MAX_ATTEMPTS", 5),
            lease_seconds=get_env_float(env, "LEASE_SECONDS", 60.0),
            queue_db_path=get_env_str(
                env, "QUEUE_DB_PATH", "./logs/queue.db"
            ),
            username=get_env_str(env, "INGEST_USERNAME"),
            password=get_env_str(env, "INGEST_PASSWORD"),
            listen_host=get_env_str(env, "LISTEN_HOST", "0.0.0.0"),
            listen_port=get_env_int(env, "LISTEN_PORT", 8080),
        )
