from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, cast

from pydantic import ValidationError
from structlog.contextvars import bind_contextvars, reset_contextvars

from threatrelay.models.report_contracts import ThreatRecord
from threatrelay.repositories.sent_log_repository import SentLogRepository
from threatrelay.services.country_resolver import CountryResolver
from threatrelay.services.embed_builder import WebhookMessage, build_message
from threatrelay.telemetry import TelemetryClient

LOGGER = logging.getLogger("threatrelay.relay")


class RelayInputError(Exception):
    pass


class MessageSender(Protocol):
    def send(self, message: WebhookMessage) -> None:
        ...


@dataclass(frozen=True)
class RelayStats:
    sent: int
    skipped: int


def load_records(path: Path) -> list[ThreatRecord]:
    """Read the extracted records file, skipping entries that are not usable records."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RelayInputError(f"Cannot read {path}: {exc.strerror or exc}") from exc
    try:
        parsed = cast(object, json.loads(raw))
    except json.JSONDecodeError as exc:
        raise RelayInputError(f"{path.name} is not valid JSON: {exc.msg}") from exc
    if not isinstance(parsed, list):
        raise RelayInputError(f"{path.name} must be an array")

    records: list[ThreatRecord] = []
    for position, entry in enumerate(cast(list[object], parsed)):
        if not isinstance(entry, dict):
            LOGGER.warning("skipping non-object record position=%s", position)
            continue
        try:
            records.append(ThreatRecord.model_validate(entry))
        except ValidationError as exc:
            LOGGER.warning(
                "skipping invalid record position=%s errors=%s",
                position,
                exc.error_count(),
            )
    return records


class RelayService:
    def __init__(
        self,
        *,
        sender: MessageSender,
        sent_log: SentLogRepository,
        country_resolver: CountryResolver,
        max_image_bytes: int,
        role_id: str | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._sender = sender
        self._sent_log = sent_log
        self._country_resolver = country_resolver
        self._max_image_bytes = max_image_bytes
        self._role_id = role_id
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    def run(self, records_path: Path) -> RelayStats:
        return self.relay(load_records(records_path))

    def relay(self, records: list[ThreatRecord]) -> RelayStats:
        sent = 0
        skipped = 0
        with self._telemetry.timed("relay.run.completed") as event:
            for record in records:
                record_id = record.id.strip()
                if self._sent_log.contains(record_id):
                    skipped += 1
                    continue
                self._deliver(record, record_id)
                sent += 1
            event.update(sent=sent, skipped=skipped)
        return RelayStats(sent=sent, skipped=skipped)

    def _deliver(self, record: ThreatRecord, record_id: str) -> None:
        tokens = bind_contextvars(record_id=record_id)
        try:
            message = build_message(
                record,
                country_resolver=self._country_resolver,
                max_image_bytes=self._max_image_bytes,
                role_id=self._role_id,
                telemetry=self._telemetry,
            )
            self._sender.send(message)
            self._sent_log.append(record_id)
            LOGGER.info("Sent %s", record_id)
        finally:
            reset_contextvars(**tokens)
