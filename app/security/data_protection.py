# Copyright (c) 2025 sprowii
"""Псевдонимизация идентификаторов для журналов приложения.

В application logs не пишутся открытые user_id и chat_id: вместо них
используется HMAC-SHA256 с солью из DATA_HASH_SALT. Реальные ID остаются
только в журнале модерации в Redis (он нужен владельцам чатов).
"""
import hashlib
import hmac
import os
import secrets
from typing import Optional

from app.logging_config import log


# Соль для хэширования ID - должна быть в переменных окружения!
# Если не задана, генерируется при запуске (псевдонимы изменятся после рестарта)
_HASH_SALT = os.getenv("DATA_HASH_SALT")
if not _HASH_SALT:
    log.warning(
        "DATA_HASH_SALT не задан! Генерирую временную соль. "
        "Задайте DATA_HASH_SALT, чтобы псевдонимы в логах были стабильными."
    )
    _HASH_SALT = secrets.token_hex(32)


def pseudonymize_id(user_id: int, context: str = "default") -> str:
    """Псевдонимизирует user_id через HMAC-SHA256.

    Args:
        user_id: Реальный user_id платформы
        context: Контекст использования (для разных хэшей в разных местах)

    Returns:
        Псевдоним в формате "u_<hash[:16]>"

    Note:
        - Один и тот же user_id всегда даёт один и тот же псевдоним
        - Невозможно восстановить user_id из псевдонима без соли
    """
    message = f"{context}:{user_id}".encode()
    h = hmac.new(_HASH_SALT.encode(), message, hashlib.sha256)
    return f"u_{h.hexdigest()[:16]}"


def pseudonymize_chat_id(chat_id: int) -> str:
    """Псевдонимизирует chat_id."""
    return pseudonymize_id(chat_id, context="chat")


def safe_log_action(
    action_type: str,
    target_user_id: int,
    chat_id: int,
    reason: Optional[str] = None,
    auto: bool = True,
) -> str:
    """Строка для журнала приложения о действии модерации без открытых ID."""
    parts = [
        f"action={action_type}",
        f"user={pseudonymize_id(target_user_id)}",
        f"chat={pseudonymize_chat_id(chat_id)}",
    ]
    if auto:
        parts.append("auto")
    if reason:
        parts.append(f"reason={reason[:100]}")
    return "ModAction: " + " ".join(parts)
