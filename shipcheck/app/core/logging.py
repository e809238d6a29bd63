"""
Structured logging for the Shipping Order Comparator.

Every entry carries the service name and the active LLM and conversion
providers. Request handlers bind a ``request_id`` and workflow steps bind a
``document_id`` through structlog's context variables, so the upstream
calls made on behalf of one document can be followed across services.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from structlog.typing import EventDict, Processor

from app.core.config import get_settings

NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "openai", "anthropic")


def add_service_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp each entry with the service and the providers it talks to."""
    settings = get_settings()
    event_dict.setdefault("service", "shipcheck")
    event_dict.setdefault("llm_provider", settings.llm_provider)
    event_dict.setdefault("conversion_provider", settings.conversion_provider)
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging() -> None:
    """
    Configure structlog and the stdlib root logger.

    ``log_format=json`` (the default) writes one JSON object per line;
    anything else uses the console renderer.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_service_context,
        structlog.processors.format_exc_info,
        _renderer(settings.log_format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(request_id: str, method: str, path: str) -> None:
    """Replace the context of the current request with its id and route."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, method=method, path=path)


@contextmanager
def document_context(document_id: str, file_name: Optional[str] = None) -> Iterator[None]:
    """
    Bind ``document_id`` (and ``file_name`` when known) for the duration of a block.

    Example:
        >>> with document_context("order1"):
        ...     logger.info("document_upload_started")
    """
    bound = {"document_id": document_id}
    if file_name:
        bound["file_name"] = file_name
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
