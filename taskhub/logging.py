"""structlog configuration shared by every taskhub module.

Configured once at import from ``LOG_LEVEL``, ``LOG_JSON`` and
``LOG_DEV_MODE``. The request id is kept in structlog's own context
variables so every event logged while serving a request carries it.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict, Optional

import structlog

_TRUTHY = {"1", "true", "yes", "on"}
_MASKED_KEYS = ("password", "secret", "token", "authorization")


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind the request id for the current context, generating one if absent."""
    value = correlation_id or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=value)
    return value


def get_correlation_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("request_id")


def mask_credentials(_logger: Any, _method: str, event: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in event.items():
        if isinstance(value, str) and any(word in key.lower() for word in _MASKED_KEYS):
            event[key] = "***"
    return event


def configure(level: str, json_output: bool, dev_mode: bool) -> None:
    if dev_mode or not json_output:
        tail = [structlog.dev.ConsoleRenderer()]
    else:
        tail = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            mask_credentials,
            *tail,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure(
    os.getenv("LOG_LEVEL", "INFO"),
    os.getenv("LOG_JSON", "true").lower() in _TRUTHY,
    os.getenv("LOG_DEV_MODE", "false").lower() in _TRUTHY,
)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
