"""
Logging setup for the memory engine.

structlog sits on top of stdlib logging so library users can route events
through their own handlers. Modules call ``get_logger(__name__)`` and log
events with keyword fields.
"""

import logging
import sys
from typing import Any, Optional

import structlog

_configured = False


def configure_logging(level: str = "INFO", json_logs: bool = True, force: bool = False) -> None:
    """
    Configure structlog and the root stdlib logger.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        json_logs: Render JSON lines instead of console output
        force: Reconfigure even if already configured
    """
    global _configured
    if _configured and not force:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        stream=sys.stderr,
        force=force,
    )

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
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
    _configured = True


def get_logger(name: Optional[str] = None) -> Any:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
