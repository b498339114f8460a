"""Structured logging helpers shared across pipeline components."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

_ROOT_LOGGER = "GcsCensus"
_SENSITIVE_KEYS = {
    "authorization",
    "cookie",
    "set-cookie",
    "token",
    "static_token",
    "access_token",
    "secret",
    "password",
}
_BEARER_PATTERN = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+")

# LogRecord attributes that are not user-supplied ``extra`` fields.
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credentials and cookies masked."""

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if key_hint is not None and key_hint.lower() in _SENSITIVE_KEYS:
            return "***masked***"
        if isinstance(value, dict):
            return {k: _mask_value(v, str(k)) for k, v in value.items()}
        if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str):
            return (value[0], _mask_value(value[1], value[0]))
        if isinstance(value, (list, tuple)):
            return [_mask_value(item, key_hint) for item in value]
        if isinstance(value, str):
            return _BEARER_PATTERN.sub("Bearer ***masked***", value)
        return value

    return {key: _mask_value(value, key) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries with ``extra`` fields inlined."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a single-line JSON document."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def setup_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    stream: Optional[TextIO] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``GcsCensus`` logger with a single managed stream handler.

    Re-running the function replaces previously installed handlers rather than
    stacking duplicates, so the CLI and tests can call it repeatedly.
    """

    logger = logging.getLogger(_ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_gcscensus_managed", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    handler._gcscensus_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)

    logger.propagate = propagate
    return logger
