"""FastAPI dependency providers for settings, notifications and offers."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from installflow.config import Settings, get_settings
from installflow.services.clock import Clock, utcnow
from installflow.services.notifications import NotificationRouter, build_router
from installflow.services.offers import OfferManager


@lru_cache
def get_settings_dep() -> Settings:
    return get_settings()


def get_notification_router(settings: Settings = Depends(get_settings_dep)) -> NotificationRouter:
    return build_router(settings.notifications)


def get_clock() -> Clock:
    return utcnow


def get_offer_manager(
    settings: Settings = Depends(get_settings_dep),
    notifier: NotificationRouter = Depends(get_notification_router),
    clock: Clock = Depends(get_clock),
) -> OfferManager:
    return OfferManager(settings, notifier, clock=clock)
