from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from threatrelay.services.markup_scanner import MarkupFragment, MarkupToken, tokenize

LOGGER = logging.getLogger("threatrelay.segmenter")

CONTAINER_TAG = "div"
CONTAINER_ID_PREFIX = "modal-content-"
_NUMERIC_ID_PATTERN = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class ReportBlock:
    record_id: str
    text: str
    fragment: MarkupFragment


@dataclass(frozen=True)
class SegmentationResult:
    blocks: tuple[ReportBlock, ...]
    skipped: int


def segment_document(document: str) -> SegmentationResult:
    """Split a document into one block per report container.

    A container is a `div` whose `id` starts with `modal-content-`. Each block
    runs from its container's opening tag to the next container's opening tag
    (or the end of the document). Containers whose id suffix is not numeric
    still end the previous block but produce no block themselves.
    """
    tokens = tokenize(document)
    starts = [index for index, token in enumerate(tokens) if _is_container_start(token)]

    blocks: list[ReportBlock] = []
    skipped = 0
    for position, start_index in enumerate(starts):
        end_index = starts[position + 1] if position + 1 < len(starts) else len(tokens)
        container = tokens[start_index]
        record_id = _container_id(container)
        if record_id is None:
            skipped += 1
            LOGGER.debug(
                "skipping report container without numeric id offset=%s id=%s",
                container.offset,
                container.attr("id"),
            )
            continue
        block_tokens = tokens[start_index:end_index]
        end_offset = tokens[end_index].offset if end_index < len(tokens) else len(document)
        blocks.append(
            ReportBlock(
                record_id=record_id,
                text=document[container.offset : end_offset],
                fragment=MarkupFragment(block_tokens),
            )
        )

    return SegmentationResult(blocks=tuple(blocks), skipped=skipped)


def segment_blocks(document: str) -> list[tuple[str, str]]:
    return [(block.record_id, block.text) for block in segment_document(document).blocks]


def _is_container_start(token: MarkupToken) -> bool:
    if not token.is_start(CONTAINER_TAG):
        return False
    element_id = token.attr("id")
    return element_id is not None and element_id.strip().lower().startswith(CONTAINER_ID_PREFIX)


def _container_id(token: MarkupToken) -> str | None:
    element_id = (token.attr("id") or "").strip()
    suffix = element_id[len(CONTAINER_ID_PREFIX) :]
    if _NUMERIC_ID_PATTERN.fullmatch(suffix) is None:
        return None
    return suffix
