"""Internal telemetry events.

An event is a name plus flat scalar attributes. Attribute names that may carry
credentials or message bodies are redacted before any sink sees them, so
sinks can write what they receive verbatim.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import structlog

TELEMETRY_LOGGER_NAME = "threatrelay.telemetry"
REDACTED = "[redacted]"
_REDACTED_KEY_FRAGMENTS: tuple[str, ...] = (
    "authorization",
    "content",
    "payload",
    "secret",
    "token",
    "webhook",
)
_STRING_LIMIT = 160

AttributeValue = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        del event_name, attributes


class StructuredLogTelemetrySink:
    """Writes each event as one structlog entry on the telemetry logger."""

    def __init__(self, logger_name: str = TELEMETRY_LOGGER_NAME) -> None:
        self._logger = structlog.get_logger(logger_name)

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **attributes)


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink = field(default_factory=NoOpTelemetrySink)

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False)

    def emit(self, event_name: str, **attributes: Any) -> None:
        if self.enabled:
            self.sink.emit(event_name=event_name, attributes=redact_attributes(attributes))

    @contextmanager
    def timed(self, event_name: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """Emit `event_name` when the block completes, with `duration_ms` added.

        The yielded dict can be filled in inside the block. Nothing is emitted
        when the block raises.
        """
        collected = dict(attributes)
        started = time.perf_counter()
        yield collected
        collected["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
        self.emit(event_name, **collected)


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())
    if enabled and sink != "none":
        logging.getLogger(TELEMETRY_LOGGER_NAME).warning(
            "unknown telemetry sink; telemetry disabled sink=%s",
            sink,
        )
    return TelemetryClient.disabled()


def redact_attributes(attributes: Mapping[str, Any]) -> dict[str, AttributeValue]:
    cleaned: dict[str, AttributeValue] = {}
    for raw_key, value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(fragment in key for fragment in _REDACTED_KEY_FRAGMENTS):
            cleaned[key] = REDACTED
        else:
            cleaned[key] = _flatten(value)
    return cleaned


def _flatten(value: Any) -> AttributeValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, bytes | bytearray):
        return f"<{len(value)} bytes>"
    if isinstance(value, str):
        text = " ".join(value.split())
        return text if len(text) <= _STRING_LIMIT else f"{text[:_STRING_LIMIT]}..."
    return type(value).__name__
