"""Structured JSON logging with credential redaction."""

import logging
import sys
from typing import Any, Dict

import structlog

REDACTED = "REDACTED"

# Any key containing one of these is a credential
SENSITIVE_SUBSTRINGS = (
    "password",
    "secret",
    "authorization",
    "api_key",
)

# Exact keys holding raw tokens; token ids and hashes stay visible
SENSITIVE_KEYS = frozenset({
    "token",
    "raw_token",
    "access_token",
    "refresh_token",
})

# Libraries whose INFO output duplicates request_completed or is noise
QUIET_LOGGERS = ("uvicorn.access", "aiosmtplib", "asyncio")


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    return key_lower in SENSITIVE_KEYS or any(s in key_lower for s in SENSITIVE_SUBSTRINGS)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if isinstance(k, str) and _is_sensitive(k) else _redact(v)
            for k, v in value.items()
        }
    return value


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Replace credential and raw-token values with REDACTED.

    Key matching is case-insensitive and also applies inside nested dicts,
    e.g. a logged headers mapping.
    """
    for key in list(event_dict.keys()):
        if _is_sensitive(key):
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _redact(event_dict[key])

    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog to emit one JSON object per line on stdout.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a logger, bound to logger_name when a name is given."""
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger_name=name)
    return logger
