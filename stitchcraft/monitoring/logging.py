"""
Structured logging configuration.

structlog renders events as JSON in production and as aligned key/value
lines elsewhere. Request ids, methods and paths are bound through
contextvars by the API middleware. Credentials never reach the output:
session and tracking tokens, passwords, Paystack keys and webhook
signatures are masked before rendering.
"""
import logging
import sys
from typing import Any, MutableMapping

import structlog
from pythonjsonlogger import jsonlogger

from stitchcraft.config import get_settings

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "password_hash",
        "token",
        "session_token",
        "tracking_token",
        "authorization",
        "secret_key",
        "paystack_secret_key",
        "signature",
    }
)

# Tokens keep a short prefix so related log lines can still be correlated.
VISIBLE_PREFIX = 4


def mask_value(value: Any) -> str:
    text = str(value)
    if len(text) <= VISIBLE_PREFIX * 2:
        return "***"
    return f"{text[:VISIBLE_PREFIX]}***"


def redact_sensitive(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask credential-bearing fields in a log event."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS and event_dict[key] is not None:
            event_dict[key] = mask_value(event_dict[key])
    return event_dict


def add_app_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    settings = get_settings()
    event_dict["app_name"] = settings.app_name
    event_dict["app_env"] = settings.app_env
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and route stdlib loggers (uvicorn, sqlalchemy,
    alembic) through python-json-logger on stdout.
    """
    settings = get_settings()

    renderer: Any
    if settings.is_production:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            add_app_context,
            redact_sensitive,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        )
    )
    root_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured", log_level=settings.log_level, app_env=settings.app_env
    )
