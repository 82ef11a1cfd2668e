import logging
import sys

import structlog


def setup_logging(level: str = "info", json: bool = True) -> None:
    """
    Configures structlog for the limiter. JSON lines by default, a console
    renderer when ``json`` is False (local development).
    """

    # Common processors for all logs (timestamp, level, etc)
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    log_level = logging.getLevelName(level.upper())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )
