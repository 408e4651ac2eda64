from __future__ import annotations

import logging
from pathlib import Path
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

LOGGER = logging.getLogger("threatrelay.document_source")


class DocumentSourceError(Exception):
    pass


def read_document_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise DocumentSourceError(f"Failed to read {path}: {exc.strerror or exc}") from exc


def fetch_document(url: str, *, timeout_seconds: float, user_agent: str) -> str:
    try:
        request = Request(
            url,
            headers={
                "Accept": "text/html,application/xhtml+xml",
                "User-Agent": user_agent,
            },
            method="GET",
        )
        with urlopen(request, timeout=timeout_seconds) as response:
            charset = response.headers.get_content_charset() or "utf-8"
            payload = response.read()
    except HTTPError as exc:
        raise DocumentSourceError(f"Failed to fetch {url}: {exc.code} {exc.reason}") from exc
    except (URLError, TimeoutError, OSError) as exc:
        raise DocumentSourceError(
            f"Failed to fetch {url}: network_error:{type(exc).__name__}"
        ) from exc
    except ValueError as exc:
        raise DocumentSourceError(f"Failed to fetch {url}: {exc}") from exc

    try:
        body = payload.decode(charset, errors="replace")
    except LookupError:
        body = payload.decode("utf-8", errors="replace")
    LOGGER.debug("fetched document url=%s chars=%s", url, len(body))
    return body


def read_document(
    *,
    file_path: Path | None,
    url: str | None,
    fallback_url: str | None,
    timeout_seconds: float = 30.0,
    user_agent: str = "threatrelay/0.1",
) -> str:
    """Load the raw document: a file wins over a URL, which wins over the configured URL."""
    if file_path is not None:
        return read_document_file(file_path)

    source_url = url or fallback_url
    if not source_url:
        raise DocumentSourceError("No input provided. Use --file, --url, or set SOURCE_URL.")
    return fetch_document(source_url, timeout_seconds=timeout_seconds, user_agent=user_agent)
