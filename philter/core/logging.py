"""Structured logging for the storage API.

Every record leaving a handler carries the current request id (from a
contextvar set by the HTTP middleware) and is scrubbed: credentials for the
remote counter store and raw client addresses are replaced by
``[REDACTED]``, and long strings (stored payloads, compressed chunks) are
clipped so a single log line never embeds a whole document.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from philter.core.config import PROJECT_ROOT, LogSettings, settings

REDACTED = "[REDACTED]"
MAX_STRING_CHARS = 512

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "authorization",
        "token",
        "secret",
        "password",
        "cookie",
        "set-cookie",
        "remote_token",
        "rate_limit_remote_token",
        "upstash_redis_rest_token",
        # client addresses are only logged hashed (see core.rate_limit)
        "x-forwarded-for",
        "x-real-ip",
        "cf-connecting-ip",
        "client_ip",
    }
)

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def _scrub(value: Any, sensitive_keys: frozenset[str]) -> Any:
    """Redact sensitive mapping keys and clip long strings, recursively."""

    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in sensitive_keys else _scrub(v, sensitive_keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v, sensitive_keys) for v in value)
    if isinstance(value, str) and len(value) > MAX_STRING_CHARS:
        suffix = f"...[{len(value)} chars]"
        return value[: MAX_STRING_CHARS - len(suffix)] + suffix
    return value


def record_extras(record: LogRecord, sensitive_keys: frozenset[str] = SENSITIVE_KEYS_DEFAULT) -> dict[str, Any]:
    """Return the ``extra`` fields of ``record``, scrubbed."""

    extras = {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }
    return _scrub(extras, sensitive_keys)


class RequestIdFilter(logging.Filter):
    """Stamp the contextvar request id on records that lack one."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class RedactingFilter(logging.Filter):
    """Scrub ``extra`` fields in place so every formatter sees clean data."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in record_extras(record, self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, extras."""

    def __init__(self, *, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {k: v for k, v in record_extras(record, self.sensitive_keys).items() if v is not None}
        )
        if "request_id" not in payload and get_request_id():
            payload["request_id"] = get_request_id()
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/philter.log")
    if not file_path.is_absolute():
        file_path = PROJECT_ROOT / file_path
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes:
        return RotatingFileHandler(
            file_path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single scrubbing handler on the root logger.

    Args:
        log_settings: Logging settings; the global ``settings.log`` when omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(RedactingFilter())
    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
    # httpx logs every counter-store round trip at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
