"""Structured logging for Familiar.

structlog events are rendered by standard library handlers, so the console
and the optional log file receive the same records, including records from
code that logs through :mod:`logging` directly. The console shows the dev
renderer or JSON lines. The log file always holds JSON lines.

Example:
    >>> from familiar.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", log_file="data/familiar.log")
    >>> get_logger(__name__).info("campaign_created", campaign_id="c1")
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor


if TYPE_CHECKING:
    from structlog.types import EventDict, WrappedLogger

HANDLER_PREFIX = "familiar."
"""Name prefix of the handlers installed on the root logger."""


def app_context(app_name: str) -> Processor:
    """Build a processor that tags every event with ``app_name``."""

    def add_app(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", app_name)
        return event_dict

    return add_app


def _formatter(
    pre_chain: list[Processor], *renderers: Processor
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    )


def _replace_handlers(root: logging.Logger, handlers: list[logging.Handler]) -> None:
    for handler in list(root.handlers):
        if (handler.get_name() or "").startswith(HANDLER_PREFIX):
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        root.addHandler(handler)


def configure_logging(
    *,
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | Path | None = None,
    app_name: str = "familiar",
) -> None:
    """Configure application-wide logging.

    Safe to call more than once; handlers from an earlier call are replaced.

    Args:
        level: The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Render console output as JSON lines.
        log_file: Optional file that receives every record as a JSON line.
            Parent directories are created.
        app_name: Value of the ``app`` key added to every event.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        app_context(app_name),
        structlog.processors.StackInfoRenderer(),
    ]
    json_renderers: tuple[Processor, ...] = (
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console = logging.StreamHandler(sys.stdout)
    console.set_name(f"{HANDLER_PREFIX}console")
    if json_format:
        console.setFormatter(_formatter(pre_chain, *json_renderers))
    else:
        console.setFormatter(
            _formatter(
                pre_chain,
                structlog.dev.ConsoleRenderer(
                    colors=sys.stdout.isatty(),
                    exception_formatter=structlog.dev.plain_traceback,
                ),
            )
        )
    handlers: list[logging.Handler] = [console]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.set_name(f"{HANDLER_PREFIX}file")
        file_handler.setFormatter(_formatter(pre_chain, *json_renderers))
        handlers.append(file_handler)

    root = logging.getLogger()
    _replace_handlers(root, handlers)
    root.setLevel(numeric_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger, typically with ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables included in all subsequent logs.

    Example:
        >>> bind_context(database="data/familiar.db")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind context variables for the duration of a block only."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


__all__ = [
    "HANDLER_PREFIX",
    "app_context",
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "bound_context",
]
