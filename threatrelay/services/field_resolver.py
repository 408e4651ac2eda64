"""Per-block field extraction for the two report layouts.

"Detail" blocks render label/value pairs as `div.detail-label` +
`div.detail-val`; "legacy" blocks use bold prose labels such as
`<strong>ACTOR:</strong> value`. A block counts as detail-layout when any
element carries the `detail-label` class. The flag only decides which
strategy is tried first for each field; the other one is still the fallback.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from threatrelay.models.report_contracts import ThreatRecord
from threatrelay.services.block_segmenter import ReportBlock
from threatrelay.services.markup_scanner import MarkupFragment
from threatrelay.services.source_link_ranker import rank_source_url
from threatrelay.services.text_normalizer import (
    attribute_text,
    normalize_text,
    normalized_text_from_tokens,
)

DETAIL_LABEL_CLASS = "detail-label"
FLAG_IMAGE_MARKER = "flag-img"
FLAG_IMAGE_HOST = "flagcdn.com"
_LEADING_PROMPT_PATTERN = re.compile(r"^>\s*")

FieldStrategy = Callable[[MarkupFragment], str | None]


def first_resolved(fragment: MarkupFragment, strategies: Sequence[FieldStrategy]) -> str | None:
    for strategy in strategies:
        value = strategy(fragment)
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class FieldRule:
    name: str
    detail: FieldStrategy
    legacy: FieldStrategy

    def strategies(self, *, detail_layout: bool) -> tuple[FieldStrategy, FieldStrategy]:
        if detail_layout:
            return (self.detail, self.legacy)
        return (self.legacy, self.detail)

    def resolve(self, fragment: MarkupFragment, *, detail_layout: bool) -> str | None:
        return first_resolved(fragment, self.strategies(detail_layout=detail_layout))


def element_text(tag: str, class_marker: str) -> FieldStrategy:
    """Text of the first `tag` element whose class contains `class_marker`."""

    def _extract(fragment: MarkupFragment) -> str | None:
        start_index = fragment.first_start(tag, class_marker)
        if start_index is None:
            return None
        end_index = fragment.close_index(start_index)
        if end_index is None:
            return None
        return normalized_text_from_tokens(fragment.between(start_index, end_index))

    return _extract


def labelled_value(
    label: str,
    *,
    label_tag: str = "div",
    label_class: str = DETAIL_LABEL_CLASS,
    value_tag: str = "div",
    value_class: str = "detail-val",
) -> FieldStrategy:
    """Value element that immediately follows a label element with exact text."""
    wanted = label.casefold()

    def _extract(fragment: MarkupFragment) -> str | None:
        for label_index in fragment.iter_starts(label_tag, label_class):
            label_end = fragment.close_index(label_index)
            if label_end is None:
                continue
            if _plain_text(fragment, label_index, label_end) != wanted:
                continue
            value_index = fragment.next_significant(label_end)
            if value_index is None or not fragment[value_index].is_start(value_tag, value_class):
                continue
            value_end = fragment.close_index(value_index)
            if value_end is None:
                continue
            return normalized_text_from_tokens(fragment.between(value_index, value_end))
        return None

    return _extract


def bold_label_value(label: str) -> FieldStrategy:
    """Prose after `<strong>LABEL</strong>`, up to the enclosing `</div>`."""
    wanted = label.casefold()

    def _extract(fragment: MarkupFragment) -> str | None:
        for strong_index in fragment.iter_starts("strong"):
            strong_end = fragment.next_end(strong_index, "strong")
            if strong_end is None:
                continue
            if _plain_text(fragment, strong_index, strong_end) != wanted:
                continue
            value_end = fragment.next_end(strong_end, "div")
            if value_end is None:
                continue
            return normalized_text_from_tokens(fragment.between(strong_end, value_end))
        return None

    return _extract


def _plain_text(fragment: MarkupFragment, start_index: int, end_index: int) -> str | None:
    # Labels are bare text; any nested markup disqualifies the element.
    inner = fragment.between(start_index, end_index)
    if any(token.kind != "text" for token in inner):
        return None
    text = normalized_text_from_tokens(inner)
    return text.casefold() if text is not None else None


def _legacy_sector(fragment: MarkupFragment) -> str | None:
    value = element_text("div", "sector-badge")(fragment)
    if value is None:
        return None
    return normalize_text(_LEADING_PROMPT_PATTERN.sub("", value))


FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        name="title",
        detail=element_text("h5", "text-white"),
        legacy=element_text("h6", "card-title-tech"),
    ),
    FieldRule(
        name="threat_actor",
        detail=labelled_value("THREAT ACTOR"),
        legacy=bold_label_value("ACTOR:"),
    ),
    FieldRule(
        name="timestamp",
        detail=labelled_value("TIMESTAMP"),
        legacy=bold_label_value("DATE:"),
    ),
    FieldRule(
        name="origin",
        detail=labelled_value("ORIGIN"),
        legacy=bold_label_value("TARGET:"),
    ),
    FieldRule(
        name="sector",
        detail=labelled_value(
            "SECTOR:",
            label_tag="span",
            value_tag="span",
            value_class="tech-badge",
        ),
        legacy=_legacy_sector,
    ),
)


def is_detail_layout(fragment: MarkupFragment) -> bool:
    return fragment.has_class_marker(DETAIL_LABEL_CLASS)


def extract_image(fragment: MarkupFragment) -> str | None:
    """First `<img>` source that is not a flag icon."""
    for index in fragment.iter_starts("img"):
        token = fragment[index]
        source = attribute_text(token, "src")
        if source is None:
            continue
        if FLAG_IMAGE_MARKER in token.raw.lower() or FLAG_IMAGE_HOST in source.lower():
            continue
        return source
    return None


def resolve_fields(fragment: MarkupFragment) -> dict[str, str | None]:
    detail_layout = is_detail_layout(fragment)
    fields: dict[str, str | None] = {
        rule.name: rule.resolve(fragment, detail_layout=detail_layout) for rule in FIELD_RULES
    }
    fields["image"] = extract_image(fragment)
    fields["source_url"] = rank_source_url(fragment)
    return fields


def resolve_record(block: ReportBlock) -> ThreatRecord:
    return ThreatRecord(id=block.record_id, **resolve_fields(block.fragment))
