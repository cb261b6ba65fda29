"""
Structured logging configuration for QuantRank.

Library modules log through the standard ``logging`` module
(``logging.getLogger(__name__)``); this module routes those records through
structlog so applications get consistent console or JSON output.
"""
import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log events."""
    event_dict["app"] = "quantrank"
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    enable_colors: bool = True,
) -> None:
    """
    Configure structured logging for the application.

    Both structlog loggers and plain ``logging`` loggers end up in the same
    renderer, so backtest modules keep using ``logging.getLogger(__name__)``.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON logs instead of human-readable format
        enable_colors: If True, enable colored output (only for non-JSON logs)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    shared_processors = _shared_processors()

    if json_logs:
        renderer: Processor = structlog.processors.JSONRenderer()
        final_processors: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=enable_colors)
        final_processors = []

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Render stdlib records (logging.getLogger) with the same pipeline
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *final_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)


def configure_from_settings(settings: Any | None = None) -> None:
    """Configure logging from ``QuantRankSettings`` (log_level / json_logs)."""
    if settings is None:
        from quantrank.settings import get_settings

        settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        enable_colors=not settings.json_logs,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("backtest_finished", strategy="hold_winners", total_return=42.0)
    """
    return structlog.get_logger(name)
