"""
Logging configuration.

All modules log under the "mnemo" logger tree; the host application decides
where records go by calling setup_logging() once, or by attaching its own
handlers to "mnemo".
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty dependencies: httpx logs every embedding request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure the mnemo logger with stderr and optional file output.

    Calling it again replaces the handlers installed by the previous call.
    """
    logger = logging.getLogger("mnemo")
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # stdout is reserved for command output
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child of the mnemo logger, e.g. get_logger("memory.store")."""
    return logging.getLogger(f"mnemo.{name}")
