import logging
import re
import sys
from typing import Any, cast

import structlog

from idlescan.shared.core.config import get_settings

_SENSITIVE_KEYS = frozenset(
    {
        "password",
        "token",
        "secret",
        "authorization",
        "credentials",
        "aws_secret_access_key",
        "aws_session_token",
        "secretaccesskey",
        "sessiontoken",
    }
)
_SENSITIVE_SUFFIXES = ("_token", "_secret", "_password")
# Shape of an AWS secret access key: 40 base64 characters with at least one
# "/" or "+", which keeps hex digests and access key ids (AKIA...) visible.
_SECRET_VALUE_RE = re.compile(r"^(?=[^/+]*[/+])[A-Za-z0-9/+]{40}$")
_REDACTED = "[REDACTED]"


def _is_sensitive_key(key: Any) -> bool:
    normalized = str(key).strip().lower().replace("-", "_")
    if normalized in _SENSITIVE_KEYS or normalized.endswith(_SENSITIVE_SUFFIXES):
        return True
    return any(part in _SENSITIVE_KEYS for part in re.split(r"[^a-z0-9]+", normalized) if part)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: _REDACTED if _is_sensitive_key(k) else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    if isinstance(value, str) and _SECRET_VALUE_RE.match(value):
        return _REDACTED
    return value


def secret_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Strip credential material from a log event before it is rendered.

    Scans run with live AWS credentials and log raw API payloads on failure,
    so both secret-looking keys and secret-key-shaped values are masked.
    """
    return cast(dict[str, Any], _redact(event_dict))


def setup_logging() -> None:
    """Configure structlog for the CLI: console output in DEBUG, JSON lines otherwise."""
    settings = get_settings()
    level = logging.DEBUG if settings.DEBUG else logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        secret_redactor,
    ]
    if settings.DEBUG:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.extend(
            [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # botocore and aiobotocore log through the stdlib; keep them on stderr and quiet.
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    for noisy in ("botocore", "aiobotocore", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
