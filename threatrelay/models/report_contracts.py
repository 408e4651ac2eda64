from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


def _normalize_optional_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized


class ThreatRecord(BaseModel):
    """One report block, normalized.

    Unresolved fields are `None`. Placeholder text such as "N/A" belongs to
    the presentation layer and is never stored here. JSON uses camelCase keys
    (`threatActor`, `sourceUrl`).
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str
    image: str | None = None
    threat_actor: str | None = None
    timestamp: str | None = None
    origin: str | None = None
    sector: str | None = None
    title: str | None = None
    source_url: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        if isinstance(value, bool):
            raise ValueError("id must be a string or a number")
        if isinstance(value, int | float):
            return str(value)
        normalized = _normalize_optional_text(value)
        if normalized is None:
            raise ValueError("id must not be empty")
        return normalized

    @field_validator(
        "image",
        "threat_actor",
        "timestamp",
        "origin",
        "sector",
        "title",
        "source_url",
        mode="before",
    )
    @classmethod
    def _normalize_optional_fields(cls, value: object) -> str | None:
        return _normalize_optional_text(value)

    def to_json_dict(self) -> dict[str, str | None]:
        return self.model_dump(by_alias=True)
