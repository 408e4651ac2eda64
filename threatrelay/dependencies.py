from __future__ import annotations

from functools import lru_cache

from threatrelay.config import AppSettings, load_settings
from threatrelay.repositories.sent_log_repository import SentLogRepository
from threatrelay.services.country_resolver import CountryResolver
from threatrelay.services.relay_service import RelayService
from threatrelay.services.webhook_client import WebhookClient
from threatrelay.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_country_resolver() -> CountryResolver:
    return CountryResolver()


def build_relay_service() -> RelayService:
    settings = load_settings(require_webhook=True)
    assert settings.webhook_url is not None
    return RelayService(
        sender=WebhookClient(
            settings.webhook_url,
            timeout_seconds=settings.fetch_timeout_seconds,
            user_agent=settings.user_agent,
        ),
        sent_log=SentLogRepository(settings.sent_log_path),
        country_resolver=get_country_resolver(),
        max_image_bytes=settings.max_image_bytes,
        role_id=settings.role_id,
        telemetry=get_telemetry(),
    )


def reset_cached_dependencies() -> None:
    get_country_resolver.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
