"""Logging helpers with run correlation and stage context."""

from __future__ import annotations

import contextvars
import logging
import uuid
from contextlib import contextmanager
from typing import Iterator

_RUN_ID_VAR: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")
_STAGE_VAR: contextvars.ContextVar[str] = contextvars.ContextVar("stage", default="-")

LOG_FORMAT = "%(asctime)s | %(levelname)s | run=%(run_id)s | stage=%(stage)s | %(name)s | %(message)s"


class _RunContextFilter(logging.Filter):
    """Inject run correlation fields into all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _RUN_ID_VAR.get("-")
        record.stage = _STAGE_VAR.get("-")
        return True


def configure_logging(level: int = logging.WARNING) -> None:
    """Configure root logging format with run/stage context."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    else:
        root_logger.setLevel(level)
        formatter = logging.Formatter(LOG_FORMAT)
        for handler in root_logger.handlers:
            handler.setFormatter(formatter)
    for handler in root_logger.handlers:
        if not any(isinstance(f, _RunContextFilter) for f in handler.filters):
            handler.addFilter(_RunContextFilter())


def set_run_id(run_id: str | None = None) -> str:
    """Set or generate the run correlation ID."""
    value = run_id or uuid.uuid4().hex[:12]
    _RUN_ID_VAR.set(value)
    return value


def get_run_id() -> str:
    return _RUN_ID_VAR.get("-")


@contextmanager
def stage_scope(stage: str) -> Iterator[None]:
    """Temporarily set the driver stage for emitted logs."""
    token = _STAGE_VAR.set(stage)
    try:
        yield
    finally:
        _STAGE_VAR.reset(token)
