from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from threatrelay.models.report_contracts import ThreatRecord
from threatrelay.services.country_resolver import CountryResolver
from threatrelay.services.image_encoder import encode_within_budget
from threatrelay.telemetry import TelemetryClient

LOGGER = logging.getLogger("threatrelay.embed_builder")

PLACEHOLDER = "N/A"
EMBED_COLOR = 2326507
MAX_IMAGE_URL_LENGTH = 2048
FLAG_THUMBNAIL_TEMPLATE = "https://flagcdn.com/48x36/{code}.png"
_DATA_URI_PATTERN = re.compile(r"data:(image/[\w.+-]+);base64,(.+)", re.IGNORECASE | re.DOTALL)
_HTTP_URL_PATTERN = re.compile(r"https?://", re.IGNORECASE)
_ISO_DATE_PATTERN = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


@dataclass(frozen=True)
class Attachment:
    filename: str
    data: bytes


@dataclass(frozen=True)
class ImageReference:
    url: str | None
    files: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class WebhookMessage:
    payload: dict[str, Any]
    files: tuple[Attachment, ...] = field(default_factory=tuple)


def display_value(value: object) -> str:
    if value is None:
        return PLACEHOLDER
    text = str(value).strip()
    return text or PLACEHOLDER


def defang_url(value: str | None) -> str:
    text = display_value(value)
    if text == PLACEHOLDER:
        return text
    return re.sub(r"^http(s?)://", r"hxxp\1://", text, count=1, flags=re.IGNORECASE)


def format_human_date(value: str | None) -> str:
    text = display_value(value)
    match = _ISO_DATE_PATTERN.fullmatch(text)
    if match is None:
        return text
    year, month, day = (int(part) for part in match.groups())
    try:
        parsed = date(year, month, day)
    except ValueError:
        return text
    return f"{_MONTH_NAMES[parsed.month - 1]} {parsed.day}, {parsed.year}"


def build_image_reference(
    image: str | None,
    record_id: str,
    *,
    max_bytes: int,
    telemetry: TelemetryClient | None = None,
) -> ImageReference:
    """Turn a record's image into an embeddable URL plus any attachment it needs."""
    text = display_value(image)
    if text == PLACEHOLDER:
        return ImageReference(url=None)

    data_uri = _DATA_URI_PATTERN.fullmatch(text)
    if data_uri is not None:
        mime_type, encoded = data_uri.groups()
        try:
            raw = base64.b64decode(encoded)
        except (binascii.Error, ValueError):
            LOGGER.warning("dropping undecodable data URI image record_id=%s", record_id)
            return ImageReference(url=None)
        if not raw:
            return ImageReference(url=None)
        processed = encode_within_budget(raw, mime_type, max_bytes, telemetry=telemetry)
        filename = f"threat-{record_id}.{processed.extension}"
        return ImageReference(
            url=f"attachment://{filename}",
            files=(Attachment(filename=filename, data=processed.data),),
        )

    if _HTTP_URL_PATTERN.match(text) and len(text) <= MAX_IMAGE_URL_LENGTH:
        return ImageReference(url=text)

    LOGGER.debug("ignoring unsupported image reference record_id=%s length=%s", record_id, len(text))
    return ImageReference(url=None)


def build_message(
    record: ThreatRecord,
    *,
    country_resolver: CountryResolver,
    max_image_bytes: int,
    role_id: str | None = None,
    telemetry: TelemetryClient | None = None,
) -> WebhookMessage:
    image = build_image_reference(
        record.image,
        record.id,
        max_bytes=max_image_bytes,
        telemetry=telemetry,
    )
    embed: dict[str, Any] = {
        "title": display_value(record.title),
        "color": EMBED_COLOR,
        "fields": [
            {"name": "Date", "value": format_human_date(record.timestamp), "inline": True},
            {"name": "Actor", "value": display_value(record.threat_actor), "inline": False},
            {"name": "Origin", "value": display_value(record.origin), "inline": False},
            {"name": "Sector", "value": display_value(record.sector), "inline": True},
            {"name": "Source", "value": defang_url(record.source_url), "inline": False},
        ],
    }

    country_code = country_resolver.resolve(record.origin)
    if country_code is not None:
        embed["thumbnail"] = {"url": FLAG_THUMBNAIL_TEMPLATE.format(code=country_code)}
    if image.url is not None:
        embed["image"] = {"url": image.url}

    role = (role_id or "").strip()
    payload: dict[str, Any] = {
        "content": f"<@&{role}>" if role else "",
        "tts": False,
        "embeds": [embed],
    }
    return WebhookMessage(payload=payload, files=image.files)
