"""Logging for schoolcore.

Everything here sits on the stdlib ``logging`` module:

- ``setup_logging`` installs one stderr handler on the root logger, sized
  by ``SchoolCoreConfig.log_level`` and formatted as JSON or plain text
- ``safe_log_value`` bounds and redacts caller-supplied values; passwords,
  bearer tokens and bcrypt hashes never reach a log line
- ``get_request_logger`` binds the authenticated identity of a request
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from .config import LogLevel, SchoolCoreConfig

REDACTED = "[REDACTED]"

# Order matters: key=value pairs first, then bare tokens and hashes.
SECRET_PATTERNS = [
    re.compile(
        r'(?:password|passwd|pwd|secret|token|api[_-]?key|auth[_-]?token)\s*[:=]\s*["\']?([^"\'\s,}]+)',
        re.IGNORECASE,
    ),
    re.compile(r"(?:bearer|basic)\s+([a-zA-Z0-9+/=._-]+)", re.IGNORECASE),
    # kid.payload.signature
    re.compile(r"[A-Za-z0-9_-]+\.[A-Za-z0-9+/=_-]{16,}\.[A-Za-z0-9+/=_-]{16,}"),
    # bcrypt
    re.compile(r"\$2[aby]?\$\d{2}\$[./A-Za-z0-9]{53}"),
]

_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}

# Fields the formatter places itself, in this order.
IDENTITY_FIELDS = ("auth_id", "user_id")

# Attribute names of a bare LogRecord; anything else arrived through ``extra``.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def safe_preview(value: Any, limit: int = 240) -> str:
    """Render ``value`` on one line, at most ``limit`` characters long.

    Dicts and lists are rendered as JSON. Runs of whitespace collapse to a
    single space; a cut preview ends with an ellipsis.
    """
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        try:
            text = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            text = str(value)
    else:
        text = value if isinstance(value, str) else str(value)

    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def redact_secrets(text: str, replacement: str = REDACTED) -> str:
    """Replace every match of ``SECRET_PATTERNS`` in ``text``."""
    if not isinstance(text, str):
        return text
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    preview = safe_preview(value, limit=limit)
    return redact_secrets(preview) if redact else preview


class SchoolCoreFormatter(logging.Formatter):
    """JSON or plain-text formatter aware of the request identity fields."""

    def __init__(self, json_format: bool = True, redact_secrets: bool = True, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.json_format = json_format
        self.redact = redact_secrets

    def _fields(self, record: logging.LogRecord) -> dict[str, Any]:
        message = record.getMessage()
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_secrets(message) if self.redact else message,
        }
        for name in IDENTITY_FIELDS:
            value = getattr(record, name, None)
            if value:
                fields[name] = value
        for name, value in vars(record).items():
            if name not in _STANDARD_ATTRS and name not in IDENTITY_FIELDS:
                fields[name] = safe_log_value(value, redact=self.redact)
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)
        return fields

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        if self.json_format:
            return json.dumps(fields, default=str, ensure_ascii=False)

        head = f"[{fields['timestamp']}] {fields['level']} {fields['logger']}"
        if "user_id" in fields:
            head += f" user_id={fields['user_id']}"
        line = f"{head} : {fields['message']}"
        if "exception" in fields:
            line += "\n" + fields["exception"]
        return line


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Adds the request's ``auth_id``/``user_id`` to every record.

    Usage:
        log = get_request_logger(__name__, auth_id=ctx.auth_id, user_id=ctx.user_id)
        log.info("classroom %s created", classroom_id)
    """

    def __init__(self, logger: logging.Logger, auth_id: Optional[str] = None, user_id: Optional[str] = None):
        identity = {"auth_id": auth_id, "user_id": user_id}
        super().__init__(logger, {k: v for k, v in identity.items() if v})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_request_logger(
    name: str,
    auth_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> RequestLoggerAdapter:
    return RequestLoggerAdapter(logging.getLogger(name), auth_id=auth_id, user_id=user_id)


def setup_logging(config: Optional[SchoolCoreConfig] = None, redact_secrets: bool = True) -> None:
    """Replace the root logger's handlers with one configured handler.

    Args:
        config: Settings to apply; read from the environment when omitted.
        redact_secrets: Run messages and extra fields through redaction.
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    level = _LEVELS.get(config.log_level, logging.INFO)
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(SchoolCoreFormatter(json_format=config.log_json, redact_secrets=redact_secrets))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(level)
    root.addHandler(handler)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "SchoolCoreFormatter",
    "RequestLoggerAdapter",
    "setup_logging",
    "get_request_logger",
]
