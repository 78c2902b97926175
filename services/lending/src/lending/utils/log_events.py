"""Structured log events: a stable `event` name plus context fields on the LogRecord."""

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# LogRecord attributes that must not be overwritten through `extra`
_RESERVED = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


class EventFormatter(logging.Formatter):
    """Appends `event` and its fields as key=value pairs after the message."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        event = getattr(record, "event", None)
        if event is None:
            return base
        fields = getattr(record, "fields", {}) or {}
        pairs = " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
        return f"{base} [event={event}{' ' + pairs if pairs else ''}]"


def configure_logging(level: int = logging.INFO) -> None:
    """Root logging setup for jobs and the API process."""
    handler = logging.StreamHandler()
    handler.setFormatter(EventFormatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler])


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    message: str,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    """Log `message` tagged with `event`; `fields` are attached to the record."""
    clean = {k: v for k, v in fields.items() if k not in _RESERVED}
    logger.log(
        level,
        message,
        exc_info=exc_info,
        extra={"event": event, "fields": clean},
    )
