from __future__ import annotations

import re
from collections.abc import Iterable

from threatrelay.services.markup_scanner import MarkupToken, tokenize

_WHITESPACE_PATTERN = re.compile(r"\s+")
_ENTITY_PATTERN = re.compile(r"&(?:#[xX]([0-9a-fA-F]+)|#([0-9]+)|(amp|lt|gt|quot|nbsp));")
_NAMED_ENTITIES: dict[str, str] = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "nbsp": " ",
}
_MAX_CODE_POINT = 0x10FFFF


def normalize_text(value: str | None) -> str | None:
    """Collapse whitespace runs and trim; blank or missing input becomes `None`."""
    if not value:
        return None
    normalized = _WHITESPACE_PATTERN.sub(" ", value).strip()
    return normalized or None


def decode_entities(value: str) -> str:
    """Decode numeric references and the small named set in a single pass.

    Output of one replacement is never rescanned, so `&amp;lt;` becomes the
    visible text `&lt;`. Unknown names and out-of-range code points are left
    untouched.
    """
    return _ENTITY_PATTERN.sub(_replace_entity, value)


def _replace_entity(match: re.Match[str]) -> str:
    hex_digits, decimal_digits, name = match.groups()
    if name is not None:
        return _NAMED_ENTITIES[name]
    code_point = int(hex_digits, 16) if hex_digits is not None else int(decimal_digits)
    if code_point > _MAX_CODE_POINT or 0xD800 <= code_point <= 0xDFFF:
        return match.group(0)
    return chr(code_point)


def text_from_tokens(tokens: Iterable[MarkupToken]) -> str:
    # Every tag counts as a word break.
    parts = [token.raw if token.kind == "text" else " " for token in tokens]
    return _WHITESPACE_PATTERN.sub(" ", decode_entities("".join(parts))).strip()


def strip_tags(value: str) -> str:
    """Drop markup, decode entities and collapse whitespace."""
    return text_from_tokens(tokenize(value))


def normalized_text_from_tokens(tokens: Iterable[MarkupToken]) -> str | None:
    return normalize_text(text_from_tokens(tokens))


def attribute_text(token: MarkupToken, name: str) -> str | None:
    """Attribute value decoded like element text, trimmed, `None` when blank."""
    value = token.attr(name)
    if value is None:
        return None
    return normalize_text(decode_entities(value))
