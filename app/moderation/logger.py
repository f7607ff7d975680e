# Copyright (c) 2025 sprowii
"""Журнал действий модерации.

В Redis сохраняются реальные ID (журнал читают владельцы чатов),
в application logs - псевдонимы.
"""
from typing import Optional

from app.logging_config import log
from app.moderation.errors import StoreError
from app.moderation.models import ModAction
from app.security.data_protection import safe_log_action


class ModLogger:
    """Запись действий модерации в лог и в Redis."""

    def __init__(self, repository):
        """
        Args:
            repository: SettingsRepository с операциями журнала
        """
        self.repository = repository

    async def log_action(
        self,
        chat_id: int,
        action_type: str,
        target_user_id: Optional[int],
        reason: str,
        auto: bool = True,
    ) -> ModAction:
        """Записать действие модерации.

        Ошибка записи в Redis не прерывает само действие, только логируется.
        """
        action = ModAction.create(
            chat_id=chat_id,
            action_type=action_type,
            target_user_id=target_user_id,
            reason=reason,
            auto=auto,
        )
        log.info(safe_log_action(action_type, target_user_id, chat_id, reason, auto))
        try:
            await self.repository.save_mod_action_async(action)
        except StoreError as exc:
            log.error(f"Failed to save mod action to Redis: {exc}")
        return action
