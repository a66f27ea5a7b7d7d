"""Structured JSONL logging with request-scoped correlation IDs."""

import os
import sys
import json
import logging
from datetime import datetime, timezone
from contextvars import ContextVar

from homefix_ai.config import settings
from homefix_ai.redaction import redact_data

LOGGER_NAME = "homefix_ai"

# Request-scoped correlation ID
_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def set_correlation_id(cid: str):
    _correlation_id.set(cid)


def get_correlation_id() -> str:
    return _correlation_id.get()


class JSONLFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects (JSONL)."""

    def format(self, record):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "event": record.msg if isinstance(record.msg, str) else "unknown",
            "data": record.__dict__.get("data", {}),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(log_dir=None, to_stderr=None):
    """Configure the JSONL logger.

    Logs write to ``<log_dir>/homefix_ai.jsonl``, and also to stderr when
    ``LOG_TO_STDERR`` is set (container deployments). Safe to call twice.
    """
    log_dir = log_dir or settings.LOG_DIR
    to_stderr = settings.LOG_TO_STDERR if to_stderr is None else to_stderr
    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, "homefix_ai.jsonl")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(JSONLFormatter())
    logger.addHandler(handler)

    if to_stderr:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(JSONLFormatter())
        logger.addHandler(stream)

    return logger


def log_event(event, data=None, level=logging.INFO, exc_info=None):
    """Emit a structured log entry (with secret and PII redaction)."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.isEnabledFor(level):
        return
    record = logger.makeRecord(
        name=LOGGER_NAME,
        level=level,
        fn="",
        lno=0,
        msg=event,
        args=(),
        exc_info=exc_info,
    )
    record.data = redact_data(data or {})
    logger.handle(record)
