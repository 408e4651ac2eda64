"""Tolerant markup tokenizer and the navigation helpers built on it.

The document is never turned into a DOM. `tokenize` flattens markup into a
sequence of start/end/text tokens that keep their exact source text and
offset, and `MarkupFragment` answers the handful of structural questions the
extractors ask: where does an element start, where does it close, what comes
next.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Literal

TokenKind = Literal["start", "end", "text", "other"]

_TAG_OPEN_PATTERN = re.compile(r"<[^\s/>]+")
_ATTRIBUTE_PATTERN = re.compile(
    r"""([^\s/>"'=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]*)))?"""
)


@dataclass(frozen=True)
class MarkupToken:
    kind: TokenKind
    offset: int
    raw: str
    tag: str | None = None
    attrs: dict[str, str] = field(default_factory=dict)

    def is_start(self, tag: str, class_marker: str | None = None) -> bool:
        if self.kind != "start" or self.tag != tag:
            return False
        return class_marker is None or self.has_class(class_marker)

    def is_end(self, tag: str) -> bool:
        return self.kind == "end" and self.tag == tag

    def has_class(self, marker: str) -> bool:
        return marker.lower() in self.attrs.get("class", "").lower()

    def attr(self, name: str) -> str | None:
        return self.attrs.get(name)


@dataclass(frozen=True)
class _PendingToken:
    kind: TokenKind
    offset: int
    tag: str | None
    attrs: dict[str, str]


class _TokenCollector(HTMLParser):
    # Character references stay in text and attribute values; callers decode them.
    def __init__(self, source: str) -> None:
        super().__init__(convert_charrefs=False)
        self._line_starts = _line_starts(source)
        self.pending: list[_PendingToken] = []

    def _offset(self) -> int:
        line, column = self.getpos()
        return self._line_starts[line - 1] + column

    def _push(self, kind: TokenKind, tag: str | None = None, attrs: dict[str, str] | None = None) -> None:
        self.pending.append(_PendingToken(kind, self._offset(), tag, attrs or {}))

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        # `attrs` arrives unescaped with the full HTML5 entity table.
        self._push("start", tag.lower(), _raw_attributes(self.get_starttag_text()))

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag: str) -> None:
        self._push("end", tag.lower())

    def handle_data(self, data: str) -> None:
        self._push("text")

    def handle_entityref(self, name: str) -> None:
        self._push("text")

    def handle_charref(self, name: str) -> None:
        self._push("text")

    def handle_comment(self, data: str) -> None:
        self._push("other")

    def handle_decl(self, decl: str) -> None:
        self._push("other")

    def handle_pi(self, data: str) -> None:
        self._push("other")

    def unknown_decl(self, data: str) -> None:
        self._push("other")


def _raw_attributes(start_tag: str | None) -> dict[str, str]:
    """Attribute values exactly as written in `start_tag`, quotes removed."""
    if not start_tag:
        return {}
    opening = _TAG_OPEN_PATTERN.match(start_tag)
    body = start_tag[opening.end() if opening else 0 :]
    if body.endswith(">"):
        body = body[:-1]
    attributes: dict[str, str] = {}
    for match in _ATTRIBUTE_PATTERN.finditer(body):
        name, double_quoted, single_quoted, bare = match.groups()
        value = next((part for part in (double_quoted, single_quoted, bare) if part is not None), "")
        attributes[name.lower()] = value
    return attributes


def _line_starts(source: str) -> list[int]:
    starts = [0]
    index = source.find("\n")
    while index != -1:
        starts.append(index + 1)
        index = source.find("\n", index + 1)
    return starts


def tokenize(source: str) -> list[MarkupToken]:
    """Split markup into tokens whose `raw` slices reassemble the input exactly."""
    if not source:
        return []
    collector = _TokenCollector(source)
    collector.feed(source)
    collector.close()

    pending = _merge_text_runs(collector.pending)
    tokens: list[MarkupToken] = []
    for index, item in enumerate(pending):
        end = pending[index + 1].offset if index + 1 < len(pending) else len(source)
        tokens.append(
            MarkupToken(
                kind=item.kind,
                offset=item.offset,
                raw=source[item.offset : end],
                tag=item.tag,
                attrs=item.attrs,
            )
        )
    if tokens and tokens[0].offset > 0:
        # Leading bytes the parser never reported.
        tokens.insert(0, MarkupToken(kind="text", offset=0, raw=source[: tokens[0].offset]))
    return tokens


def _merge_text_runs(pending: Sequence[_PendingToken]) -> list[_PendingToken]:
    merged: list[_PendingToken] = []
    for item in pending:
        if merged and item.offset == merged[-1].offset:
            # Empty report at a boundary; the later construct owns the offset.
            merged[-1] = item
            continue
        if merged and item.kind == "text" and merged[-1].kind == "text":
            continue
        merged.append(item)
    return merged


class MarkupFragment:
    """A token slice with the structural queries used by the extractors."""

    def __init__(self, tokens: Sequence[MarkupToken]) -> None:
        self._tokens = tuple(tokens)

    @classmethod
    def parse(cls, source: str) -> MarkupFragment:
        return cls(tokenize(source))

    @property
    def tokens(self) -> tuple[MarkupToken, ...]:
        return self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def __getitem__(self, index: int) -> MarkupToken:
        return self._tokens[index]

    def source(self) -> str:
        return "".join(token.raw for token in self._tokens)

    def iter_starts(self, tag: str | None = None, class_marker: str | None = None) -> Iterator[int]:
        for index, token in enumerate(self._tokens):
            if token.kind != "start":
                continue
            if tag is not None and token.tag != tag:
                continue
            if class_marker is not None and not token.has_class(class_marker):
                continue
            yield index

    def first_start(self, tag: str | None = None, class_marker: str | None = None) -> int | None:
        return next(self.iter_starts(tag, class_marker), None)

    def has_class_marker(self, marker: str) -> bool:
        return self.first_start(class_marker=marker) is not None

    def close_index(self, start_index: int) -> int | None:
        """Index of the end tag closing the element opened at `start_index`.

        Nesting of the same tag name is honored; other tags are ignored, so
        unbalanced inner markup does not derail the search. Returns `None`
        when the element is never closed.
        """
        tag = self._tokens[start_index].tag
        depth = 0
        for index in range(start_index + 1, len(self._tokens)):
            token = self._tokens[index]
            if token.tag != tag:
                continue
            if token.kind == "start" and not token.raw.rstrip().endswith("/>"):
                depth += 1
            elif token.kind == "end":
                if depth == 0:
                    return index
                depth -= 1
        return None

    def next_end(self, after_index: int, tag: str) -> int | None:
        for index in range(after_index + 1, len(self._tokens)):
            if self._tokens[index].is_end(tag):
                return index
        return None

    def next_significant(self, after_index: int) -> int | None:
        """Next token that is a tag or non-blank text, skipping comments."""
        for index in range(after_index + 1, len(self._tokens)):
            token = self._tokens[index]
            if token.kind == "other":
                continue
            if token.kind == "text" and not token.raw.strip():
                continue
            return index
        return None

    def between(self, start_index: int, end_index: int) -> tuple[MarkupToken, ...]:
        """Tokens strictly between two indexes."""
        return self._tokens[start_index + 1 : end_index]

