from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from threatrelay.models.report_contracts import ThreatRecord
from threatrelay.services.block_segmenter import segment_document
from threatrelay.services.field_resolver import resolve_record
from threatrelay.telemetry import TelemetryClient

LOGGER = logging.getLogger("threatrelay.report_parser")

_NUMERIC_ID_PATTERN = re.compile(r"[0-9]+")


def parse_threat_reports(
    document: str,
    *,
    telemetry: TelemetryClient | None = None,
) -> list[ThreatRecord]:
    """Extract every report block from `document`, newest (highest id) first."""
    telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
    with telemetry.timed("reports.parse.completed") as event:
        segmentation = segment_document(document)
        ordered = sort_records(resolve_record(block) for block in segmentation.blocks)
        event.update(record_count=len(ordered), skipped_blocks=segmentation.skipped)

    LOGGER.info(
        "parsed threat reports records=%s skipped_blocks=%s",
        len(ordered),
        segmentation.skipped,
    )
    return ordered


def sort_records(records: Iterable[ThreatRecord]) -> list[ThreatRecord]:
    """Numeric ids descending; non-numeric ids after them in original order."""
    return sorted(records, key=_sort_key)


def _sort_key(record: ThreatRecord) -> tuple[int, int]:
    if _NUMERIC_ID_PATTERN.fullmatch(record.id):
        return (0, -int(record.id))
    return (1, 0)
