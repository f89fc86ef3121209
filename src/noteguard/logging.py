"""
Structured logging for noteguard.

Modules get their logger through get_logger(); configure_logging() is
called once by the CLI (or by the embedding application) to pick the level
and renderer.
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(log_level: str = "warning", json_output: bool = False) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        log_level: Minimum level to emit (debug, info, warning, error)
        json_output: Render events as JSON lines instead of console text
    """
    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
        force=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger bound to a module name."""
    return structlog.get_logger(name)
