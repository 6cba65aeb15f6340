"""
Logging setup for the ingestion service.

Every record carries the ``correlation_id`` and ``operation`` of the
invocation that produced it. ``StructuredLogger`` passes them through
``extra``; records from plain loggers get ``-`` so the format strings below
never fail on a missing attribute.
"""

import logging
import os
import sys
from typing import Optional

CONTEXT_FIELDS = ("correlation_id", "operation")
NO_CONTEXT = "-"

FORMATS = {
    "structured": (
        "%(asctime)s | %(levelname)-8s | %(name)s | cid=%(correlation_id)s "
        "op=%(operation)s | %(funcName)s:%(lineno)d | %(message)s"
    ),
    "simple": "%(asctime)s - %(levelname)s - [%(correlation_id)s] %(message)s",
}

# Client libraries that log every request at DEBUG.
NOISY_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")


class InvocationContextFilter(logging.Filter):
    """Fill in the correlation fields on records logged without a context."""

    def filter(self, record: logging.LogRecord) -> bool:
        for attr in CONTEXT_FIELDS:
            if not getattr(record, attr, None):
                setattr(record, attr, NO_CONTEXT)
        return True


def resolve_level(level: Optional[str] = None) -> int:
    """Level from the argument, else ``LOG_LEVEL``; unknown names mean INFO."""
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str = "image-ingest",
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Configure a stdout logger for the service.

    ``LOG_FORMAT`` overrides ``format_type``; unknown formats fall back to
    ``structured``. Client libraries are held at WARNING unless the service
    itself logs at DEBUG.
    """
    logger = logging.getLogger(name)
    log_level = resolve_level(level)
    logger.setLevel(log_level)

    if not logger.handlers:
        format_name = os.getenv("LOG_FORMAT", format_type).lower()
        handler = logging.StreamHandler(sys.stdout)
        handler.addFilter(InvocationContextFilter())
        handler.setFormatter(
            logging.Formatter(
                FORMATS.get(format_name, FORMATS["structured"]),
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(
            logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
        )

    logger.propagate = False
    return logger


def get_logger(name: str = "image-ingest") -> logging.Logger:
    return setup_logger(name)
