"""
Structlog setup shared by the API and the confirmation engine.
"""
import logging
import os

import structlog
from structlog.stdlib import ProcessorFormatter

_configured = False


def _debug_enabled() -> bool:
    return os.getenv("DEBUG", "").lower() in ("1", "true", "yes")


def configure_logging() -> None:
    """Send structlog and stdlib records through one chain: console when DEBUG, JSON lines otherwise."""
    global _configured
    if _configured:
        return

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = structlog.dev.ConsoleRenderer() if _debug_enabled() else structlog.processors.JSONRenderer()
    handler = logging.StreamHandler()
    handler.setFormatter(ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(os.getenv("LOG_LEVEL", "DEBUG" if _debug_enabled() else "INFO").upper())
    _configured = True


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
