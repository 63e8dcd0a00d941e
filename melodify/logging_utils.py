from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator


@dataclass(frozen=True)
class RequestContext:
    request_id: str = "-"
    route: str = "-"
    method: str = "-"


_EMPTY_REQUEST = RequestContext()
_request: contextvars.ContextVar[RequestContext] = contextvars.ContextVar("melodify_request", default=_EMPTY_REQUEST)
_seed: contextvars.ContextVar[int | None] = contextvars.ContextVar("melodify_seed", default=None)

_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message"}
_HEAD_FIELDS = ("timestamp", "level", "event", "request_id", "method", "route", "seed")


class RequestContextFilter(logging.Filter):
    """Stamp request and composition context onto records that do not carry their own."""

    def filter(self, record: logging.LogRecord) -> bool:
        request = _request.get()
        for field in ("request_id", "route", "method"):
            if not hasattr(record, field):
                setattr(record, field, getattr(request, field))
        seed = _seed.get()
        if seed is not None and not hasattr(record, "seed"):
            record.seed = seed
        if not hasattr(record, "event"):
            record.event = record.msg if isinstance(record.msg, str) else "log"
        if not hasattr(record, "status_code"):
            record.status_code = None
        return True


def _render(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.4g}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_render(item) for item in value) + "]"
    return str(value)


class StructuredFormatter(logging.Formatter):
    def __init__(self, json_output: bool) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if not key.startswith("_") and key not in _RECORD_ATTRIBUTES and value is not None
        )
        payload.setdefault("event", "log")
        message = record.getMessage()
        if message and message != payload["event"]:
            payload["message"] = message
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if self.json_output:
            return json.dumps(payload, default=str)

        payload.pop("logger")
        head = [f"{key}={_render(payload.pop(key))}" for key in _HEAD_FIELDS if key in payload]
        return " ".join(head + [f"{key}={_render(value)}" for key, value in payload.items()])


def configure_logging() -> None:
    root = logging.getLogger()
    if getattr(root, "_melodify_logging_configured", False):
        return

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    json_output = os.getenv("LOG_FORMAT", "text").lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(json_output=json_output))
    context_filter = RequestContextFilter()
    handler.addFilter(context_filter)

    root.handlers.clear()
    root.addHandler(handler)
    root.addFilter(context_filter)
    root.setLevel(level)
    root._melodify_logging_configured = True  # type: ignore[attr-defined]


def set_request_context(*, request_id: str, route: str, method: str) -> None:
    _request.set(RequestContext(request_id=request_id, route=route, method=method))


def clear_request_context() -> None:
    _request.set(_EMPTY_REQUEST)
    _seed.set(None)


def current_request_id() -> str:
    return _request.get().request_id


def new_request_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def composition_seed(seed: int) -> Iterator[int]:
    """Tag every event logged inside the block with the seed being composed."""
    token = _seed.set(seed)
    try:
        yield seed
    finally:
        _seed.reset(token)


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    if not logger.isEnabledFor(level):
        return
    logger.log(level, event, extra={"event": event, **fields})


def request_elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)
