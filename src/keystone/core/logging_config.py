"""Keystone logging configuration.

Console logging for the service and the uvicorn server, configured once at
startup from the validated log level.
"""

import logging
import logging.config
import sys
from typing import Any

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", *, detailed: bool = False) -> None:
    """Configure logging for the application.

    Args:
        level: Log level name for the ``keystone`` and root loggers
        detailed: Include logger name and source location in each record
    """
    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": (
                    "%(asctime)s | %(name)s | %(levelname)s | "
                    "%(filename)s:%(lineno)d | %(funcName)s | %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "simple": {
                "format": "%(asctime)s | %(levelname)s | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if detailed else "simple",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "keystone": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
    }

    logging.config.dictConfig(logging_config)

    logger.debug("Logging configured with level %s", level)
