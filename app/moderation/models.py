# Copyright (c) 2025 sprowii
"""Модели данных для системы модерации."""
import asyncio
import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

from app.moderation.errors import UnknownField


@dataclass(frozen=True)
class FilterSettings:
    """Переключатели фильтров чата.

    Набор имён закрыт: переключить можно только поле из FILTER_FIELDS.
    По умолчанию включена только капча.
    """
    captcha: bool = True
    bad_words: bool = False
    links: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FilterSettings":
        """Собрать настройки из JSON-блоба хранилища.

        Отсутствующие переключатели получают значение по умолчанию,
        посторонние ключи игнорируются.
        """
        data = data or {}
        defaults = cls()
        values = {
            name: bool(data.get(name, getattr(defaults, name)))
            for name in FILTER_FIELDS
        }
        return cls(**values)

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)

    def toggled(self, field_name: str) -> "FilterSettings":
        """Вернуть копию с инвертированным значением одного переключателя."""
        if field_name not in FILTER_FIELDS:
            raise UnknownField(field_name)
        values = self.to_dict()
        values[field_name] = not values[field_name]
        return FilterSettings(**values)


FILTER_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(FilterSettings))


@dataclass(frozen=True)
class Owner:
    """Пользователь, администрирующий один или несколько чатов."""
    user_id: int
    created_at: float = field(default_factory=time.time)


@dataclass
class ManagedChat:
    """Чат под модерацией бота."""
    chat_id: int
    owner_id: int
    title: Optional[str] = None
    enabled: bool = True
    settings: FilterSettings = field(default_factory=FilterSettings)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManagedChat":
        return cls(
            chat_id=int(data["chat_id"]),
            owner_id=int(data["owner_id"]),
            title=data.get("title"),
            enabled=bool(data.get("enabled", True)),
            settings=FilterSettings.from_dict(data.get("settings")),
            created_at=float(data.get("created_at", 0.0)),
        )


@dataclass
class PendingVerification:
    """Активная проверка нового участника.

    Существование записи означает, что участник замучен в чате.
    """
    chat_id: int
    user_id: int
    created_at: float
    expires_at: float
    message_id: Optional[str] = None
    expiry_task: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    @classmethod
    def create(cls, chat_id: int, user_id: int, timeout_sec: float) -> "PendingVerification":
        """Создать запись с временем истечения now + timeout_sec."""
        now = time.time()
        return cls(
            chat_id=chat_id,
            user_id=user_id,
            created_at=now,
            expires_at=now + timeout_sec,
        )


@dataclass
class ModAction:
    """Действие модерации для журнала."""
    id: str
    chat_id: int
    action_type: str  # mute, unmute, kick, delete
    target_user_id: Optional[int]
    reason: str
    timestamp: float
    auto: bool = True

    @classmethod
    def create(
        cls,
        chat_id: int,
        action_type: str,
        target_user_id: Optional[int],
        reason: str,
        auto: bool = True
    ) -> "ModAction":
        """Создать новое действие модерации с автоматическим ID и timestamp."""
        return cls(
            id=str(uuid.uuid4()),
            chat_id=chat_id,
            action_type=action_type,
            target_user_id=target_user_id,
            reason=reason,
            timestamp=time.time(),
            auto=auto
        )
