"""structlog setup for the CLI and library callers.

Events go to stderr so they never mix with answers printed on stdout.
``logging.format`` picks between a colored console view and JSON lines.
"""

import logging
import sys

import structlog

from corex_agent.config import get_config

_RENDERERS = {
    "console": structlog.dev.ConsoleRenderer,
    "json": structlog.processors.JSONRenderer,
}


def _level_number(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: str | None = None) -> None:
    """Install the structlog pipeline.

    ``level`` overrides ``logging.level`` from the loaded config.
    """
    settings = get_config().logging
    renderer = _RENDERERS.get(settings.format, structlog.processors.JSONRenderer)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level or settings.level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    return structlog.get_logger(name) if name else structlog.get_logger()
