from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import pytest
from pydantic import ValidationError

from threatrelay.models.report_contracts import ThreatRecord
from threatrelay.services.report_parser import parse_threat_reports, sort_records
from threatrelay.telemetry import TelemetryClient


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def test_parse_threat_reports_orders_newest_first(reports_document: str) -> None:
    records = parse_threat_reports(reports_document)

    assert [record.id for record in records] == ["205", "101"]
    assert records[1].threat_actor == "ShadowCrew"
    assert records[0].threat_actor == "Team & Co"


def test_parse_threat_reports_json_shape(reports_document: str) -> None:
    records = parse_threat_reports(reports_document)

    payload = json.loads(json.dumps([record.to_json_dict() for record in records]))
    assert payload[0] == {
        "id": "205",
        "image": None,
        "threatActor": "Team & Co",
        "timestamp": "2025-02-30",
        "origin": "Americans",
        "sector": "Government",
        "title": "Ministry portal defaced",
        "sourceUrl": "https://news.example.org/story",
    }


def test_parse_threat_reports_emits_telemetry(reports_document: str) -> None:
    sink = _CaptureSink()

    parse_threat_reports(reports_document, telemetry=TelemetryClient(enabled=True, sink=sink))

    assert len(sink.events) == 1
    event_name, attributes = sink.events[0]
    assert event_name == "reports.parse.completed"
    assert attributes["record_count"] == 2
    assert attributes["skipped_blocks"] == 1
    assert attributes["duration_ms"] >= 0


def test_parse_threat_reports_without_blocks() -> None:
    assert parse_threat_reports("") == []
    assert parse_threat_reports("<html><body>maintenance</body></html>") == []


def test_block_without_fields_yields_record_with_only_id() -> None:
    records = parse_threat_reports("<div id='modal-content-9'></div>")

    assert records == [ThreatRecord(id="9")]
    assert records[0].title is None


def test_sort_records_numeric_descending_then_others_in_input_order() -> None:
    records = [ThreatRecord(id=value) for value in ("5", "abc", "12", "x-1", "007")]

    assert [record.id for record in sort_records(records)] == ["12", "007", "5", "abc", "x-1"]


def test_threat_record_accepts_camel_and_snake_keys() -> None:
    from_json = ThreatRecord.model_validate(
        {"id": 42, "threatActor": "  Crew ", "sourceUrl": "https://x.example", "extra": "ignored"}
    )
    from_python = ThreatRecord(id="42", threat_actor="Crew", source_url="https://x.example")

    assert from_json == from_python
    assert from_json.id == "42"


def test_threat_record_blank_optional_fields_become_none() -> None:
    record = ThreatRecord.model_validate({"id": "1", "title": "   ", "sector": 17})

    assert record.title is None
    assert record.sector is None


@pytest.mark.parametrize("bad_id", [True, "", "   ", None])
def test_threat_record_rejects_unusable_ids(bad_id: object) -> None:
    with pytest.raises(ValidationError):
        ThreatRecord.model_validate({"id": bad_id})
