from __future__ import annotations

from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path(".threatrelay")
DEFAULT_MAX_IMAGE_BYTES = 1_048_576
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "threatrelay/0.1"
_LOG_DIR_NAME = "logs"
_BOOLEAN_WORDS: dict[str, bool] = {
    "1": True,
    "true": True,
    "yes": True,
    "on": True,
    "0": False,
    "false": False,
    "no": False,
    "off": False,
}


def _blank_to_none(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def resolve_max_image_bytes(value: Any) -> int:
    """Coerce a configured byte budget, falling back to the default when unusable."""
    if isinstance(value, bool):
        return DEFAULT_MAX_IMAGE_BYTES
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return DEFAULT_MAX_IMAGE_BYTES
    if isinstance(value, int) and value > 0:
        return value
    return DEFAULT_MAX_IMAGE_BYTES


class AppSettings(BaseSettings):
    """Runtime configuration for both commands.

    Every option reads `THREATRELAY_<NAME>` (or `.env`). The source URL, image
    budget, webhook and role also accept the bare variable names used by the
    older parse/send scripts.
    """

    model_config = SettingsConfigDict(
        env_prefix="THREATRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    data_dir: Path = Field(
        default=DEFAULT_DATA_DIR,
        description="Directory holding runtime artifacts such as logs.",
    )
    log_dir: Path = Field(
        default=DEFAULT_DATA_DIR / _LOG_DIR_NAME,
        description="Log file directory. Follows `data_dir` unless set explicitly.",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stderr). The log file always records DEBUG.",
    )
    forums_path: Path = Field(
        default=Path("forums.json"),
        description="JSON array of extracted records consumed by the send command.",
    )
    sent_log_path: Path = Field(
        default=Path("logs.txt"),
        description="Append-only log of record ids that were already delivered.",
    )

    source_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("THREATRELAY_SOURCE_URL", "SOURCE_URL"),
        description="Page fetched by `parse` when neither --file nor --url is given.",
    )
    fetch_timeout_seconds: float = Field(
        default=DEFAULT_FETCH_TIMEOUT_SECONDS,
        description="Timeout for page fetches and webhook calls, at least one second.",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header for outgoing requests.",
    )

    max_image_bytes: int = Field(
        default=DEFAULT_MAX_IMAGE_BYTES,
        validation_alias=AliasChoices("THREATRELAY_MAX_IMAGE_BYTES", "MAX_IMAGE_BYTES"),
        description="Attachment byte budget. Unusable values fall back to 1048576.",
    )
    webhook_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("THREATRELAY_WEBHOOK_URL", "DISCORD_WEBHOOK_URL"),
        description="Messaging webhook URL. Only the send command needs it.",
    )
    role_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("THREATRELAY_ROLE_ID", "DISCORD_ROLE_ID"),
        description="Role mentioned at the top of every delivered message.",
    )

    telemetry_enabled: bool = Field(
        default=True,
        description="Emit internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="`log` writes telemetry to its own log file, `none` drops it.",
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _lowercase_sink(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("telemetry_enabled", mode="before")
    @classmethod
    def _coerce_telemetry_enabled(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return _BOOLEAN_WORDS.get(value.strip().lower(), True)
        if value in (0, 1):
            return bool(value)
        return True

    @field_validator("max_image_bytes", mode="before")
    @classmethod
    def _coerce_max_image_bytes(cls, value: Any) -> int:
        return resolve_max_image_bytes(value)

    @field_validator("fetch_timeout_seconds", mode="before")
    @classmethod
    def _clamp_fetch_timeout(cls, value: Any) -> float:
        try:
            return max(1.0, float(value))
        except (TypeError, ValueError):
            return DEFAULT_FETCH_TIMEOUT_SECONDS

    @field_validator("user_agent", mode="before")
    @classmethod
    def _default_user_agent(cls, value: Any) -> str:
        return _blank_to_none(value) or DEFAULT_USER_AGENT

    @field_validator("source_url", "webhook_url", "role_id", mode="before")
    @classmethod
    def _strip_optional_text(cls, value: Any) -> str | None:
        return _blank_to_none(value)


def _finalize_paths(settings: AppSettings) -> AppSettings:
    log_dir = settings.log_dir
    if "log_dir" not in settings.model_fields_set:
        log_dir = settings.data_dir / _LOG_DIR_NAME
    return settings.model_copy(
        update={
            "data_dir": settings.data_dir.expanduser().resolve(),
            "log_dir": log_dir.expanduser().resolve(),
            "forums_path": settings.forums_path.expanduser().resolve(),
            "sent_log_path": settings.sent_log_path.expanduser().resolve(),
        }
    )


def _check_webhook_url(webhook_url: str | None) -> list[str]:
    if webhook_url is None:
        return ["THREATRELAY_WEBHOOK_URL (or DISCORD_WEBHOOK_URL) is required for delivery."]
    parsed = urlparse(webhook_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return [f"Webhook URL must be an absolute http/https URL: {webhook_url}"]
    return []


def load_settings(*, require_webhook: bool = False) -> AppSettings:
    """Read settings from the environment.

    With `require_webhook=True` a missing or malformed webhook URL raises
    `ValueError` listing every problem.
    """
    settings = _finalize_paths(AppSettings())
    if require_webhook:
        problems = _check_webhook_url(settings.webhook_url)
        if problems:
            bullets = "\n".join(f"- {problem}" for problem in problems)
            raise ValueError(f"Invalid delivery configuration:\n{bullets}")
    return settings
