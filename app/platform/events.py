"""
Structured engine events.

Engine components never print; they hand an event name plus fields to an
injected logger. Observers pick events out of log records via the ``event``
attribute set through ``extra``.
"""

import logging
from typing import Any, Optional

DISCOVERY_DEGRADED = "discovery-degraded"
FETCH_FAILED = "fetch-failed"
FETCH_ABANDONED = "fetch-abandoned"
UPSTREAM_FAILED = "upstream-failed"
WEIGHT_INVARIANT_VIOLATED = "weight-invariant-violated"

ENGINE_LOGGER_NAME = "app.features.audit"

# Silent unless the host application attaches handlers
logging.getLogger(ENGINE_LOGGER_NAME).addHandler(logging.NullHandler())


def engine_logger(name: str, injected: Optional[logging.Logger] = None) -> logging.Logger:
    """Return the injected logger, or a child of the engine's silent logger tree."""
    if injected is not None:
        return injected
    if name.startswith(ENGINE_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{ENGINE_LOGGER_NAME}.{name}")


def emit_event(
    logger: logging.Logger,
    event: str,
    message: str,
    level: int = logging.WARNING,
    **fields: Any,
) -> None:
    logger.log(level, message, extra={"event": event, "event_fields": fields})
