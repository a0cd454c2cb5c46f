"""
Environment-driven configuration for the fulfillment service.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

SANDBOX_API_URL = "https://api.sandbox.lulu.com"
PRODUCTION_API_URL = "https://api.lulu.com"


@dataclass(frozen=True)
class Settings:
    environment: str
    supabase_url: str | None
    supabase_service_role_key: str | None
    artifact_bucket: str
    drawings_bucket: str
    page_images_bucket: str
    asset_url_ttl_seconds: int
    download_url_ttl_seconds: int
    print_source_url_ttl_seconds: int
    asset_fetch_retries: int
    request_timeout_seconds: float
    fulfillment_max_attempts: int
    processing_lease_seconds: int
    provider_use_sandbox: bool
    provider_client_key: str | None
    provider_client_secret: str | None
    provider_status_map_path: str | None
    notification_endpoint: str | None

    @property
    def provider_api_url(self) -> str:
        return SANDBOX_API_URL if self.provider_use_sandbox else PRODUCTION_API_URL

    @property
    def provider_environment(self) -> str:
        return "sandbox" if self.provider_use_sandbox else "production"

    @property
    def uses_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


def parse_str_env(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip()
    if not normalized:
        return default
    return normalized


def parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer value, got {raw!r}") from exc


def parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a numeric value, got {raw!r}") from exc


def parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    environment = (parse_str_env("ENVIRONMENT", "development") or "development").lower()
    supabase_url = parse_str_env("SUPABASE_URL")
    if supabase_url:
        supabase_url = supabase_url.rstrip("/")

    use_sandbox = parse_bool_env("LULU_USE_SANDBOX", True)
    prefix = "LULU_SANDBOX" if use_sandbox else "LULU_PRODUCTION"
    client_key = parse_str_env(f"{prefix}_CLIENT_KEY")
    client_secret = parse_str_env(f"{prefix}_CLIENT_SECRET")
    if environment in {"production", "prod"} and not client_secret:
        raise ValueError(f"{prefix}_CLIENT_SECRET is required in production")

    max_attempts = parse_int_env("FULFILLMENT_MAX_ATTEMPTS", 3)
    if max_attempts < 1:
        raise ValueError("FULFILLMENT_MAX_ATTEMPTS must be at least 1")

    default_notification_endpoint = (
        f"{supabase_url}/functions/v1/send-email" if supabase_url else None
    )

    return Settings(
        environment=environment,
        supabase_url=supabase_url,
        supabase_service_role_key=parse_str_env("SUPABASE_SERVICE_ROLE_KEY"),
        artifact_bucket=parse_str_env("ARTIFACT_BUCKET", "book-pdfs") or "book-pdfs",
        drawings_bucket=parse_str_env("DRAWINGS_BUCKET", "drawings") or "drawings",
        page_images_bucket=parse_str_env("PAGE_IMAGES_BUCKET", "page-images") or "page-images",
        asset_url_ttl_seconds=parse_int_env("ASSET_URL_TTL_SECONDS", 60 * 60),
        download_url_ttl_seconds=parse_int_env("DOWNLOAD_URL_TTL_SECONDS", 60 * 60 * 24 * 7),
        print_source_url_ttl_seconds=parse_int_env("PRINT_SOURCE_URL_TTL_SECONDS", 60 * 60 * 24),
        asset_fetch_retries=max(parse_int_env("ASSET_FETCH_RETRIES", 3), 0),
        request_timeout_seconds=parse_float_env("REQUEST_TIMEOUT_SECONDS", 30.0),
        fulfillment_max_attempts=max_attempts,
        processing_lease_seconds=parse_int_env("PROCESSING_LEASE_SECONDS", 600),
        provider_use_sandbox=use_sandbox,
        provider_client_key=client_key,
        provider_client_secret=client_secret,
        provider_status_map_path=parse_str_env("PROVIDER_STATUS_MAP_PATH"),
        notification_endpoint=parse_str_env("NOTIFICATION_ENDPOINT", default_notification_endpoint),
    )
