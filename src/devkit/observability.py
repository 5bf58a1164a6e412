from __future__ import annotations

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

_configured = False
_logging_handler: logging.Handler | None = None

_RESERVED_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class _ExtraFieldsFormatter(logging.Formatter):
    """Appends the ``extra={...}`` fields of a record as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_FIELDS and not key.startswith("_")
        }
        if not extras:
            return line
        fields = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return f"{line} {fields}"


def configure_logging(level: str | int = "INFO") -> None:
    global _logging_handler
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    if _logging_handler is not None:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(_ExtraFieldsFormatter(LOG_FORMAT))
    root.addHandler(handler)
    _logging_handler = handler


def configure_otel(service_name: str) -> None:
    global _configured
    if _configured:
        return
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    trace.set_tracer_provider(provider)
    _configured = True
