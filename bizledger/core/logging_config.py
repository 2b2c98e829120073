"""Structured JSON logging for the financial core."""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

LOGGER_NAMESPACE = "bizledger"

_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


class LogContext:
    """Request-scoped fields stamped onto every record, safe across asyncio tasks."""

    FIELDS = ("organization_id", "user_id", "request_id")
    _vars = {name: ContextVar(f"bizledger_{name}", default=None) for name in FIELDS}

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {name: var.get() for name, var in cls._vars.items() if var.get() is not None}

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        tokens = [
            (cls._vars[name], cls._vars[name].set(str(value)))
            for name, value in fields.items()
            if name in cls._vars and value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: base fields, bound context, then ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            payload["traceback"] = self.formatException(record.exc_info)

        # UUID, Decimal and date values fall back to str()
        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def configure_logging(level: Any = logging.INFO, json_output: bool = True, stream: Optional[Any] = None) -> None:
    """Attach one handler to the ``bizledger`` logger; later calls are no-ops."""
    logger = logging.getLogger(LOGGER_NAMESPACE)
    if logger.handlers:
        return
    handler = logging.StreamHandler(stream or sys.stderr)
    if json_output:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
