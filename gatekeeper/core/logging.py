"""Structured logging for the admission-control engine.

This module centralizes logging configuration, including:
- Context-aware request_id propagation via contextvars
- Two tiers of protection on structured fields: secrets (admin keys,
  credentials) are replaced by ``[REDACTED]``; client identifiers (IPs,
  user ids, raw limiter keys) are replaced by a stable truncated hash so
  one client's events can still be correlated
- JSON formatter emitting one object per event, exceptions included
- Configurable stdout/file handlers with rotation support

Events are logged by name (``rate_limit.exceeded``, ``admin_auth.success``)
with their attributes passed through ``extra``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from gatekeeper.core.config import LogSettings, settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

REDACTED = "[REDACTED]"

SECRET_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "x-api-key",
        "admin_api_key",
        "x-admin-key",
        "app_admin_api_keys",
        "authorization",
        "token",
        "secret",
        "password",
        "cookie",
        "set-cookie",
    }
)

IDENTIFIER_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "user_id",
        "client_ip",
        "peer_address",
        "cf-connecting-ip",
        "x-real-ip",
        "x-forwarded-for",
        "limiter_key",
    }
)

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def hash_identifier(value: str) -> str:
    """Return a short, stable digest of a client identifier or key."""

    return hashlib.sha256(value.encode()).hexdigest()[:16]


def set_request_id(request_id: str | None) -> None:
    """Store the current request id in a context variable."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


class FieldMasker:
    """Apply secret redaction and identifier hashing to structured values.

    Matching is case-insensitive on mapping keys and recurses into nested
    mappings, lists and tuples.
    """

    def __init__(
        self,
        secret_keys: Iterable[str] | None = None,
        identifier_keys: Iterable[str] | None = None,
    ) -> None:
        self.secret_keys = {k.lower() for k in (secret_keys or SECRET_KEYS_DEFAULT)}
        self.identifier_keys = {
            k.lower() for k in (identifier_keys or IDENTIFIER_KEYS_DEFAULT)
        }

    def mask_field(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if lowered in self.secret_keys:
            return REDACTED
        if lowered in self.identifier_keys:
            if value is None or (isinstance(value, str) and value.startswith("hash:")):
                return value
            return f"hash:{hash_identifier(str(value))}"
        return self.mask_value(value)

    def mask_value(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {k: self.mask_field(str(k), v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.mask_value(v) for v in value)
        return value

    def extras(self, record: LogRecord) -> dict[str, Any]:
        """Return the record's ``extra`` fields, masked."""

        return {
            key: self.mask_field(key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Mask sensitive ``extra`` fields in place, for any formatter."""

    def __init__(self, masker: FieldMasker | None = None) -> None:
        super().__init__()
        self.masker = masker or FieldMasker()

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in self.masker.extras(record).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """Format each record as a single JSON object."""

    def __init__(self, *, masker: FieldMasker | None = None, ensure_ascii: bool = True) -> None:
        super().__init__()
        self.masker = masker or FieldMasker()
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
            "thread": record.threadName,
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        payload.update(self.masker.extras(record))

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() == "file":
        file_path = Path(log_settings.file_path or "logs/gatekeeper.log")
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if log_settings.max_bytes:
            return RotatingFileHandler(
                file_path,
                maxBytes=log_settings.max_bytes,
                backupCount=log_settings.backup_count,
                encoding="utf-8",
            )
        return logging.FileHandler(file_path, encoding="utf-8")

    return logging.StreamHandler(sys.stdout)


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Configure the root logger with request correlation and masking.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log
    masker = FieldMasker()

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter(masker))

    if cfg.format.lower() == "plain":
        formatter: logging.Formatter = logging.Formatter(
            "%(asctime)s %(levelname)s [%(threadName)s] %(name)s %(message)s"
        )
    else:
        formatter = JsonFormatter(masker=masker)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # Avoid double logging from uvicorn if it gets re-configured
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
