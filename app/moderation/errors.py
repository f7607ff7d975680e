# Copyright (c) 2025 sprowii
"""Исключения модерации.

NotFound на путях resolve/toggle - это сигнал идемпотентности, а не ошибка:
пользователю ничего не показывается. Остальные исключения логируются и
прерывают обработку текущего события.
"""
from typing import Optional


class ModerationError(Exception):
    """Базовое исключение модерации."""


class AlreadyPending(ModerationError):
    """У пользователя уже есть активная проверка."""

    def __init__(self, user_id: int):
        super().__init__(f"Проверка для пользователя {user_id} уже выдана")
        self.user_id = user_id


class NotFound(ModerationError):
    """Запись (чат или проверка) не найдена."""


class UnknownField(ModerationError):
    """Неизвестное имя переключателя фильтра."""

    def __init__(self, field_name: str):
        super().__init__(f"Неизвестный фильтр: {field_name!r}")
        self.field_name = field_name


class MalformedPayload(ModerationError):
    """Некорректные данные callback-кнопки."""

    def __init__(self, payload: Optional[str]):
        super().__init__(f"Некорректный payload: {payload!r}")
        self.payload = payload


class NotChatOwner(ModerationError):
    """Действие с настройками чата запрошено не его владельцем."""

    def __init__(self, user_id: int, chat_id: int):
        super().__init__(f"Пользователь {user_id} не владеет чатом {chat_id}")
        self.user_id = user_id
        self.chat_id = chat_id


class UpstreamActionFailed(ModerationError):
    """Вызов API платформы завершился ошибкой."""

    def __init__(self, action: str, detail: str):
        super().__init__(f"{action}: {detail}")
        self.action = action
        self.detail = detail


class StoreError(ModerationError):
    """Хранилище настроек недоступно или конфликт не разрешился."""
