"""
Logging setup for Universal Memory MCP

stdout carries the MCP stdio stream, so everything is logged to stderr.
"""

import logging
import sys

from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"

QUIET_LOGGERS = ["httpx", "httpcore", "uvicorn.access"]


def setup_logging(config: LoggingConfig) -> logging.Logger:
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stderr)]
    if config.file:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    return logging.getLogger("universal-memory")
