"""Application configuration loaded from config.yaml + environment variables."""

from __future__ import annotations

import yaml
from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings

_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

DEFAULT_OFFER_TEMPLATE = (
    "We have an installation slot available for your order {{ order_number }} "
    "on {{ offered_date }} with engineer {{ engineer_name }} ({{ time_window }}). "
    "Please click the link to accept or reject: {{ offer_url }}"
)


def _load_yaml() -> dict:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


_yaml = _load_yaml()


class SchedulingConfig(BaseSettings):
    max_jobs_per_day: int = 3
    day_lenience_minutes: int = 15
    default_job_duration_hours: float = 3.0
    allow_weekend_bookings: bool = False
    minimum_advance_hours: int = 48
    recommendation_search_horizon_days: int = 120
    top_recommendations_count: int = 3
    reservation_retries: int = 3


class OfferConfig(BaseSettings):
    default_ttl_hours: int = 24
    base_url: str = "http://localhost:8000"
    fallback_channel: str | None = None  # email | sms | whatsapp
    auto_book_on_accept: bool = False
    message_template: str = DEFAULT_OFFER_TEMPLATE
    subject_template: str = "Installation Date Offered - {{ order_number }}"
    expiry_sweep_interval_seconds: int = 60


class DispatchConfig(BaseSettings):
    urgent_hours: int = 48
    warning_days: int = 5


class NotificationConfig(BaseSettings):
    resend_api_key: str = ""
    email_from: str = "Scheduling <no-reply@installflow.local>"
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_sms_from: str = ""
    twilio_whatsapp_from: str = ""


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/installflow.db"
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    offers: OfferConfig = Field(default_factory=OfferConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def get_settings() -> Settings:
    """Build Settings by merging YAML defaults with env overrides."""
    y = _yaml
    sched = SchedulingConfig(**y.get("scheduling", {}))
    offers = OfferConfig(**y.get("offers", {}))
    disp = DispatchConfig(**y.get("dispatch", {}))
    notif = NotificationConfig(**y.get("notifications", {}))
    db_url = y.get("database", {}).get("url", "sqlite+aiosqlite:///data/installflow.db")
    return Settings(
        database_url=db_url,
        scheduling=sched,
        offers=offers,
        dispatch=disp,
        notifications=notif,
    )
