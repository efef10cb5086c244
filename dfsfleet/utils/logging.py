"""
Structured logging infrastructure using structlog.

Scheduler events are logged as key/value pairs. Everything logged while an
offer is evaluated carries the offer id and hostname through structlog's
context variables.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, Processor


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log entries."""
    event_dict["app"] = "dfsfleet"
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_output: str = "stdout",
) -> None:
    """
    Configure structured logging for the scheduler.
    
    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_output: stdout, stderr, or a file path
    """
    if log_output == "stdout":
        handler: logging.StreamHandler = logging.StreamHandler(sys.stdout)
    elif log_output == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.FileHandler(log_output)
    
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=getattr(logging, log_level.upper()),
    )
    
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    
    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=handler.stream.isatty())
    
    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def offer_context(offer_id: str, hostname: str) -> Iterator[None]:
    """Bind offer id and hostname to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(offer_id=offer_id, hostname=hostname):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.
    
    Args:
        name: Logger name (typically __name__)
    
    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
