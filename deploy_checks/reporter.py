"""Reporter: the message sink that deployment output goes through."""

from __future__ import annotations

import logging
from typing import Any

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for console output at the given level."""
    numeric = getattr(logging, str(level).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx logs every request at INFO; keep the check output readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class Reporter:
    """info/verbose/warn/fail messages for one deployment, bound to its app context."""

    def __init__(self, logger: Any | None = None, **context: Any) -> None:
        base = logger if logger is not None else structlog.get_logger("deploy_checks")
        self._log = base.bind(**context) if context else base

    def bind(self, **context: Any) -> Reporter:
        return Reporter(self._log.bind(**context))

    def info(self, message: str, **kw: Any) -> None:
        self._log.info(message, **kw)

    def verbose(self, message: str, **kw: Any) -> None:
        self._log.debug(message, **kw)

    def warn(self, message: str, **kw: Any) -> None:
        self._log.warning(message, **kw)

    def fail(self, message: str, **kw: Any) -> None:
        self._log.error(message, **kw)
