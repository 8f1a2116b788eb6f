"""structlog setup for the node scoring service and its scripts.

Every log line carries the ``service`` and ``env`` it came from; both are
bound once as context variables by ``configure_logging``. Modules keep
their own ``structlog.get_logger("<area>")`` handles, which pick up this
configuration lazily.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

from .config import BaseConfig

_performance_logger = structlog.get_logger("node_scoring.performance")


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name!r}")
    return level


def configure_logging(config: BaseConfig, service_name: str) -> None:
    """Configure structlog from ``config`` and bind the service context.

    ``ml_log_format`` selects ``json`` output; any other value renders for
    a terminal. Safe to call more than once.
    """
    level = _resolve_level(config.ml_log_level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_logger_name,
    ]
    if config.ml_log_format == "json":
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ])
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name, env=config.ml_env)


def log_performance(operation: str, duration_ms: float, **fields: Any) -> None:
    """Emit one ``Operation completed`` line for a timed lifecycle or ranking call."""
    _performance_logger.info(
        "Operation completed",
        operation=operation,
        duration_ms=round(duration_ms, 3),
        **fields,
    )
