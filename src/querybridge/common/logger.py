"""Logging setup: per-query context propagation and plain or JSON output."""
import contextvars
import json
import logging
from contextlib import contextmanager
from typing import Optional

TEXT_FORMAT = "%(asctime)s - [%(query_id)s] - %(name)s - %(levelname)s - %(message)s"

# Client libraries that log every request at INFO/DEBUG.
NOISY_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3", "cassandra")

# Attributes every LogRecord carries; anything else was passed via ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "query_id",
}

_query_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("query_id", default=None)


class QueryContextFilter(logging.Filter):
    """Stamps each record with the ref_id of the query being executed, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.query_id = _query_id_ctx.get()
        return True


@contextmanager
def query_context(query_id: str):
    """Binds ``query_id`` to every record logged inside the block, including from nested calls."""
    token = _query_id_ctx.set(query_id)
    try:
        yield
    finally:
        _query_id_ctx.reset(token)


def current_query_id() -> Optional[str]:
    return _query_id_ctx.get()


class JsonFormatter(logging.Formatter):
    """Renders one JSON object per record.

    Fields passed through ``extra`` are emitted as top-level keys. Values that
    are not JSON native go through ``str``, so pydantic ``SecretStr`` fields
    stay masked.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        query_id = getattr(record, "query_id", None)
        if query_id:
            payload["query_id"] = query_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", json_format: bool = False):
    """Replaces the root handlers with a single stream handler.

    Args:
        level (str): Root log level.
        json_format (bool): Emit JSON lines instead of plain text.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.addFilter(QueryContextFilter())
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
