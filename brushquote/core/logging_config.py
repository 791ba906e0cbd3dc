# brushquote/core/logging_config.py
import logging
import sys

import structlog

from brushquote.core.settings import settings


def setup_logging() -> None:
    """
    Configure structlog + standard logging.
    Logs go to stdout as JSON so the container runtime can pick them up.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# Global logger, importable everywhere
logger = structlog.get_logger("brushquote")
