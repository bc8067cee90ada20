"""
Logging for the kubedebug controller process.

Every record carries a ``trace_id``: the ``namespace/name`` key of the workload
being reconciled, the workload kind for controller-wide messages, or ``-`` for
records coming from kopf and the client libraries. Output goes to stdout as
JSON lines by default, or as plain text for local runs.

Environment Variables:
    KUBEDEBUG_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (default INFO)
    KUBEDEBUG_LOG_FORMAT: json or text (default json)

Usage:
    setup_logging()
    logger = get_logger(__name__, trace_id="default/api")
    logger.info("Patched pod template", extra={"replicas": 2})
"""

import logging
import os
import sys
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

NO_TRACE = "-"

JSON_FIELDS = "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s"
JSON_RENAMES = {"asctime": "timestamp", "name": "logger", "levelname": "level"}
TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(trace_id)s] - %(name)s: %(message)s"

# Kept at WARNING or above whatever the configured level
NOISY_LOGGERS = ("urllib3", "kubernetes", "aiohttp.access")


def parse_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "text":
        return logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    return JsonFormatter(JSON_FIELDS, rename_fields=JSON_RENAMES)


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> logging.Handler:
    """
    Route every logger through one stdout handler.

    Arguments override the environment. Calling this again replaces the
    handler rather than adding a second one.

    Returns:
        The installed handler
    """
    level_no = parse_level(level or os.getenv("KUBEDEBUG_LOG_LEVEL", "INFO"))
    fmt = (log_format or os.getenv("KUBEDEBUG_LOG_FORMAT", "json")).strip().lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_build_formatter(fmt))
    handler.addFilter(TraceIDFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level_no)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level_no, logging.WARNING))
    return handler


def get_logger(name: str, trace_id: Optional[str] = None) -> logging.LoggerAdapter:
    """Logger whose records carry ``trace_id`` alongside any call-site ``extra``."""
    return TraceAdapter(logging.getLogger(name), {"trace_id": trace_id or NO_TRACE})


class TraceAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


class TraceIDFilter(logging.Filter):
    """Give records logged without get_logger() a placeholder trace_id."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trace_id"):
            record.trace_id = NO_TRACE  # type: ignore
        return True
