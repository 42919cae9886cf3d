"""Logging for the ``certkeeper`` logger tree.

Console output is JSON lines (``logging.format: json``) or a compact
text layout.  Records emitted inside a Flask request carry the request
id, client address, authenticated user, method and path.  Security
events on ``certkeeper.security`` may also go to a rotating audit file
and syslog, always as JSON.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler, SysLogHandler
from typing import TYPE_CHECKING

from certkeeper.logging.sanitize import sanitize_pem

if TYPE_CHECKING:
    from certkeeper.config.settings import AuditLogSettings, LoggingSettings

# Request attributes in output order, with their value outside a request
_CONTEXT_DEFAULTS = {
    "request_id": "-",
    "client_ip": "-",
    "user_id": None,
    "method": None,
    "path": None,
}

# Anything on a record that is not in here came from ``extra=``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__,
) | {"message", "asctime", *_CONTEXT_DEFAULTS}

_NOISY_LOGGERS = ("werkzeug", "gunicorn", "gunicorn.access", "gunicorn.error")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: core fields, request context, extras.

    PEM bodies that end up in a message are redacted.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if "-----BEGIN " in message:
            message = sanitize_pem(message)
        record.message = message

        data: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        for attr in _CONTEXT_DEFAULTS:
            value = getattr(record, attr, None)
            if value is not None:
                data[attr] = value
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Console layout for development."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(request_id)s] %(client_ip)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class RequestContextFilter(logging.Filter):
    """Stamp request context onto records; placeholders outside a request."""

    CONTEXT_ATTRS = frozenset(_CONTEXT_DEFAULTS)

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        for attr, default in _CONTEXT_DEFAULTS.items():
            if not hasattr(record, attr):
                setattr(record, attr, default)

        from flask import g, has_request_context, request  # noqa: PLC0415

        if not has_request_context():
            return True

        record.request_id = getattr(g, "request_id", record.request_id)  # type: ignore[attr-defined]
        record.client_ip = request.remote_addr or record.client_ip  # type: ignore[attr-defined]
        record.method = request.method  # type: ignore[attr-defined]
        record.path = request.path  # type: ignore[attr-defined]
        # g.current_user is set once the bearer token has been resolved
        user = getattr(g, "current_user", None)
        if user is not None:
            record.user_id = str(user.id)  # type: ignore[attr-defined]
        return True


def _handler(
    handler: logging.Handler,
    formatter: logging.Formatter,
    context: logging.Filter,
) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.addFilter(context)
    return handler


def _audit_handlers(
    audit: AuditLogSettings,
    context: logging.Filter,
    warn: logging.Logger,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if audit.file:
        try:
            file_handler = RotatingFileHandler(
                audit.file,
                maxBytes=audit.max_file_size_bytes,
                backupCount=audit.backup_count,
            )
        except OSError as exc:
            warn.warning("Could not open audit log file %s: %s", audit.file, exc)
        else:
            handlers.append(_handler(file_handler, StructuredFormatter(), context))
    if audit.syslog:
        handlers.append(_handler(SysLogHandler(), StructuredFormatter(), context))
    return handlers


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Install handlers on the ``certkeeper`` logger and return it.

    Handlers from an earlier call are replaced, so calling this again
    after the config changes is safe.
    """
    context = RequestContextFilter()
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    root = logging.getLogger("certkeeper")
    root.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    root.propagate = False
    root.handlers[:] = [_handler(logging.StreamHandler(sys.stderr), formatter, context)]

    logging.getLogger("certkeeper.access").setLevel(logging.INFO)

    security = logging.getLogger("certkeeper.security")
    security.handlers.clear()
    if settings.audit.enabled:
        security.setLevel(logging.INFO)
        for handler in _audit_handlers(settings.audit, context, root):
            security.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root
