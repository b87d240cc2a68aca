from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./staysync.db"
    app_version: str = "2026-10-19.v1"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth (external collaborator; dev headers only) ----
    auth_mode: str = "dev"
    dev_auto_provision: bool = True
    dev_header_user_email: str = "X-User-Email"

    # ---- Public URLs ----
    public_base_url: str = "http://localhost:8000"

    # ---- iCal import ----
    ical_fetch_timeout_seconds: float = 15.0
    ical_user_agent: str = "StaySync/1.0 iCal Sync"
    ical_max_event_days: int = 365
    sync_lease_ttl_seconds: int = 300
    # celery beat cadence for sync_all_ical_subscriptions; unset leaves scheduling to cron
    ical_sync_interval_seconds: int | None = None

    # ---- iCal export ----
    ical_prodid: str = "-//StaySync//Calendar Feed//EN"
    ical_uid_domain: str = "staysync.app"
    feed_token_bytes: int = 32

    # ---- Plans / entitlements ----
    free_calendar_months_limit: int | None = 2
    free_report_months_limit: int | None = 2

    # ---- Celery ----
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")

        if int(self.feed_token_bytes) < 24:
            # token_urlsafe(24) is the smallest size that still yields 32 chars
            raise ValueError("feed_token_bytes must be >= 24")


settings = Settings()
