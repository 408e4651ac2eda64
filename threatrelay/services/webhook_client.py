from __future__ import annotations

import json
import logging
import mimetypes
import time
from collections.abc import Callable
from typing import Any, cast
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen
from uuid import uuid4

from threatrelay.services.embed_builder import Attachment, WebhookMessage

LOGGER = logging.getLogger("threatrelay.webhook")

DEFAULT_MAX_RATE_LIMIT_RETRIES = 3
_MAX_RETRY_AFTER_SECONDS = 60.0


class WebhookDeliveryError(Exception):
    def __init__(self, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class WebhookClient:
    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 30.0,
        user_agent: str = "threatrelay/0.1",
        max_rate_limit_retries: int = DEFAULT_MAX_RATE_LIMIT_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._url = url
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._user_agent = user_agent
        self._max_rate_limit_retries = max(0, max_rate_limit_retries)
        self._sleep = sleep

    def send(self, message: WebhookMessage) -> None:
        body, content_type = encode_message(message)
        attempt = 0
        while True:
            try:
                self._post(body, content_type)
                return
            except HTTPError as exc:
                status_code = int(exc.code)
                if status_code == 429 and attempt < self._max_rate_limit_retries:
                    attempt += 1
                    wait_seconds = _retry_after_seconds(exc)
                    LOGGER.info(
                        "webhook rate limited attempt=%s wait_seconds=%s",
                        attempt,
                        wait_seconds,
                    )
                    self._sleep(wait_seconds)
                    continue
                raise WebhookDeliveryError(
                    f"Webhook rejected message: http_{status_code}",
                    http_status=status_code,
                ) from exc
            except (URLError, TimeoutError, OSError) as exc:
                raise WebhookDeliveryError(
                    f"Webhook delivery failed: network_error:{type(exc).__name__}"
                ) from exc

    def _post(self, body: bytes, content_type: str) -> None:
        request = Request(
            self._url,
            data=body,
            headers={
                "Content-Type": content_type,
                "User-Agent": self._user_agent,
            },
            method="POST",
        )
        with urlopen(request, timeout=self._timeout_seconds) as response:
            response.read()


def encode_message(message: WebhookMessage) -> tuple[bytes, str]:
    """Serialize a message as JSON, or as multipart form data when it has files."""
    if not message.files:
        return json.dumps(message.payload).encode("utf-8"), "application/json"

    payload = dict(message.payload)
    payload["attachments"] = [
        {"id": index, "filename": attachment.filename}
        for index, attachment in enumerate(message.files)
    ]
    boundary = f"threatrelay-{uuid4().hex}"
    parts: list[bytes] = [
        _form_part(
            boundary,
            disposition='form-data; name="payload_json"',
            content_type="application/json",
            data=json.dumps(payload).encode("utf-8"),
        )
    ]
    for index, attachment in enumerate(message.files):
        parts.append(_file_part(boundary, index, attachment))
    parts.append(f"--{boundary}--\r\n".encode("ascii"))
    return b"".join(parts), f"multipart/form-data; boundary={boundary}"


def _file_part(boundary: str, index: int, attachment: Attachment) -> bytes:
    content_type = mimetypes.guess_type(attachment.filename)[0] or "application/octet-stream"
    return _form_part(
        boundary,
        disposition=f'form-data; name="files[{index}]"; filename="{attachment.filename}"',
        content_type=content_type,
        data=attachment.data,
    )


def _form_part(boundary: str, *, disposition: str, content_type: str, data: bytes) -> bytes:
    header = (
        f"--{boundary}\r\n"
        f"Content-Disposition: {disposition}\r\n"
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode("utf-8")
    return header + data + b"\r\n"


def _retry_after_seconds(exc: HTTPError) -> float:
    raw_body = b""
    try:
        raw_body = exc.read()
    except OSError:
        raw_body = b""
    retry_after: Any = None
    try:
        parsed = cast(object, json.loads(raw_body.decode("utf-8", errors="replace") or "{}"))
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        retry_after = cast(dict[str, Any], parsed).get("retry_after")
    if retry_after is None and exc.headers is not None:
        retry_after = exc.headers.get("Retry-After")
    try:
        seconds = float(retry_after)
    except (TypeError, ValueError):
        return 1.0
    return min(_MAX_RETRY_AFTER_SECONDS, max(0.0, seconds))
