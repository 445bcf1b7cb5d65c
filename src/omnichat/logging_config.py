"""structlog setup."""
import logging

import structlog


def configure_logging(level: str = "INFO", json_output: bool = False):
    """Filter structlog output at `level`; JSON lines in production."""
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, str(level).upper(), logging.INFO)
        ),
        cache_logger_on_first_use=False,
    )
