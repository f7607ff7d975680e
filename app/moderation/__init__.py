# Copyright (c) 2025 sprowii
"""Модуль модерации антиспам-бота.

Компоненты:
- ModerationController: Центральная точка входа для всех событий платформы
- CaptchaManager: Капча для новых участников с таймером истечения
- SettingsRepository: Чаты, владельцы и переключатели фильтров в Redis
- contains_banned_content: Фильтры мата и ссылок
- ModLogger: Журнал действий модерации
"""

from app.moderation.controller import ModerationController
from app.moderation.captcha import CaptchaManager
from app.moderation.content_filter import FilterCheckResult, contains_banned_content
from app.moderation.errors import (
    AlreadyPending,
    MalformedPayload,
    ModerationError,
    NotChatOwner,
    NotFound,
    StoreError,
    UnknownField,
    UpstreamActionFailed,
)
from app.moderation.events import parse_update
from app.moderation.logger import ModLogger
from app.moderation.models import FILTER_FIELDS, FilterSettings, ManagedChat, ModAction, PendingVerification
from app.moderation.storage import SettingsRepository, create_redis_client

__all__ = [
    # Controller
    "ModerationController",
    # Captcha
    "CaptchaManager",
    # Content Filter
    "FilterCheckResult",
    "contains_banned_content",
    # Errors
    "AlreadyPending",
    "MalformedPayload",
    "ModerationError",
    "NotChatOwner",
    "NotFound",
    "StoreError",
    "UnknownField",
    "UpstreamActionFailed",
    # Events
    "parse_update",
    # Logger
    "ModLogger",
    # Models
    "FILTER_FIELDS",
    "FilterSettings",
    "ManagedChat",
    "ModAction",
    "PendingVerification",
    # Storage
    "SettingsRepository",
    "create_redis_client",
]
