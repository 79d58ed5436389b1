"""
=============================================================================
LOGGING
=============================================================================

Two kinds of log output:

    1. Diagnostic logs    logging.getLogger(__name__) in every module
                          (connection open/close, parse failures, startup)

    2. Access logs        one structured entry per answered request on
                          the "echohttp.access" logger

Both go through the standard logging module, configured once by
setup_logging(). The access logger can be routed elsewhere without
touching the code:

    logging.getLogger("echohttp.access").addHandler(file_handler)

=============================================================================
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

access_logger = logging.getLogger("echohttp.access")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """Formats each record as a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure logging for the server process.

    basicConfig() is a no-op when the root logger already has handlers,
    so an embedding application keeps its own setup; the package level
    is applied either way.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    logging.basicConfig(level=numeric_level, handlers=[handler])
    logging.getLogger("echohttp").setLevel(numeric_level)


@dataclass
class RequestLog:
    """
    Structured access log entry for one answered request.

    =========================================================================
    FIELDS
    =========================================================================

    connection_id:   Short id of the connection that carried the request
    client_ip:       Peer address
    method:          Request method token
    path:            Request target token
    version:         Protocol token
    content_length:  Request body length in bytes
    response_bytes:  Size of the serialized response
    duration_ms:     Time from first request byte to response queued
    timestamp:       When the response was queued (UTC, ISO 8601)

    =========================================================================
    """

    connection_id: str
    client_ip: str
    method: str
    path: str
    version: str
    content_length: int
    response_bytes: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        return (
            f'{self.client_ip} [{self.connection_id}] "{self.method} {self.path} '
            f'{self.version}" {self.content_length} {self.response_bytes} '
            f'{self.duration_ms:.2f}ms'
        )


def log_request(
    entry: RequestLog,
    log_format: str = "text",
    logger: Optional[logging.Logger] = None,
) -> None:
    """Emit one access log entry at INFO."""
    target = logger or access_logger
    if log_format == "json":
        target.info(json.dumps(entry.to_dict()))
    else:
        target.info(entry.to_text())


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")
