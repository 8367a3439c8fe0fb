"""Logging configuration for tcadjax.

The package logs through a single ``tcadjax`` logger:
- Default: WARNING level only (quiet)
- Performance tracing: DEBUG level, flushed after every record, so pass
  sizes, renumbering and Newton progress interleave with profiler output

Usage:
    from tcadjax._logging import logger, enable_performance_logging

    logger.warning("Shown by default")
    logger.info("Hidden by default")

    enable_performance_logging()
"""

import logging
import sys

logger = logging.getLogger("tcadjax")

# Default: WARNING level only (quiet operation)
logger.setLevel(logging.WARNING)

if not logger.handlers:
    _default_handler = logging.StreamHandler(sys.stdout)
    _default_handler.setLevel(logging.WARNING)
    _default_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(_default_handler)


class FlushingHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit."""

    def emit(self, record):
        super().emit(record)
        self.flush()


def enable_performance_logging():
    """Switch the tcadjax logger to DEBUG with an immediately flushing handler."""
    logger.setLevel(logging.DEBUG)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = FlushingHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)


def set_log_level(level: int):
    """Set the level of the tcadjax logger and all of its handlers.

    Args:
        level: logging.DEBUG, logging.INFO, logging.WARNING, etc.
    """
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
