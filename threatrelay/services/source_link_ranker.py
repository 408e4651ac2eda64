from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from threatrelay.services.markup_scanner import MarkupFragment
from threatrelay.services.text_normalizer import attribute_text, normalized_text_from_tokens

FORUM_HOST_FRAGMENTS: tuple[str, ...] = (
    "breachforums",
    "darkforums",
    "leakbase",
    "raidforums",
    "xss",
    "exploit",
)
MESSAGING_HOSTS: frozenset[str] = frozenset({"t.me", "telegram.me", "telegram.org"})
_FORUM_PATH_PATTERN = re.compile(r"/thread-|/thread/|/topic/|/forums?/", re.IGNORECASE)
_SOURCE_LABEL_PATTERN = re.compile(r"source", re.IGNORECASE)

SCORE_FORUM = 3
SCORE_GENERIC = 2
SCORE_MESSAGING = 1


@dataclass(frozen=True)
class CandidateLink:
    href: str
    text: str


def collect_links(fragment: MarkupFragment) -> list[CandidateLink]:
    candidates: list[CandidateLink] = []
    for start_index in fragment.iter_starts("a"):
        href = attribute_text(fragment[start_index], "href")
        if href is None:
            continue
        end_index = fragment.next_end(start_index, "a")
        if end_index is None:
            continue
        text = normalized_text_from_tokens(fragment.between(start_index, end_index)) or ""
        candidates.append(CandidateLink(href=href, text=text))
    return candidates


def is_forum_url(url: str) -> bool:
    lowered = url.lower()
    if any(fragment in lowered for fragment in FORUM_HOST_FRAGMENTS):
        return True
    return _FORUM_PATH_PATTERN.search(lowered) is not None


def is_messaging_url(url: str) -> bool:
    try:
        parsed = urlparse(url if "//" in url else f"//{url}")
    except ValueError:
        return False
    host = (parsed.hostname or "").lower()
    return host in MESSAGING_HOSTS


def score_url(url: str) -> int:
    if is_forum_url(url):
        return SCORE_FORUM
    if is_messaging_url(url):
        return SCORE_MESSAGING
    return SCORE_GENERIC


def choose_source_url(candidates: list[CandidateLink]) -> str | None:
    """Pick the best evidentiary link.

    Links whose visible text mentions "source" win outright; within the pool,
    the highest score wins and ties go to the earliest link.
    """
    if not candidates:
        return None
    labelled = [candidate for candidate in candidates if _SOURCE_LABEL_PATTERN.search(candidate.text)]
    pool = labelled or candidates
    best = max(pool, key=lambda candidate: score_url(candidate.href))
    return best.href


def rank_source_url(fragment: MarkupFragment) -> str | None:
    return choose_source_url(collect_links(fragment))
