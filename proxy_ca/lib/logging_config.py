"""JSON logging for the proxy CA library and its operator scripts.

Everything logs through ``LOGGER``. Set ``PROXY_CA_LOG_LEVEL`` (``DEBUG``,
``INFO``, ...) to change its level; cache hits only show up at ``DEBUG``.
"""

import logging
import os
from typing import TextIO

from pythonjsonlogger import jsonlogger

LOGGER_NAME = "proxy_ca"
LEVEL_ENV_VAR = "PROXY_CA_LOG_LEVEL"
LOG_FIELDS = frozenset({"timestamp", "level", "message", "exc_info", "funcName", "lineno"})


class ProxyCAJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record, restricted to LOG_FIELDS."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname

        for key in set(log_record) - LOG_FIELDS:
            del log_record[key]


def level_from_env(default: int = logging.INFO) -> int:
    """Return the level named by PROXY_CA_LOG_LEVEL, or default if unset or unknown."""
    name = os.environ.get(LEVEL_ENV_VAR, "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def setup_logger(name: str = LOGGER_NAME, stream: TextIO | None = None) -> logging.Logger:
    """Attach the JSON handler to the named logger.

    Calling it again for a logger that already has handlers changes nothing.

    Args:
        name: Logger name
        stream: Handler output (default: stderr)

    Returns:
        Non-propagating logger writing JSON lines
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        ProxyCAJsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
            timestamp=True,
        )
    )

    logger.setLevel(level_from_env())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


LOGGER = setup_logger()
