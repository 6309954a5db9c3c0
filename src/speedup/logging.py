"""Package logger.

Every record carries the process run id so lines from one server process can be
grepped together::

    from speedup.logging import logger
    logger.info("...")
"""
from __future__ import annotations
import logging
import sys
import uuid

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  [%(run_id)s]  %(name)s  %(message)s"

_RUN_ID = uuid.uuid4().hex[:8]


def get_run_id() -> str:
    return _RUN_ID


class _RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _RUN_ID
        return True


def configure_logging(level: str = "INFO", *, force: bool = False) -> logging.Logger:
    """Attach a stderr handler to the package logger. Idempotent unless *force*."""
    pkg_logger = logging.getLogger("speedup")
    if pkg_logger.handlers and not force:
        pkg_logger.setLevel(level.upper())
        return pkg_logger

    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(_RunIdFilter())
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(level.upper())
    return pkg_logger


logger = logging.getLogger("speedup")
