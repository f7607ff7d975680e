# Copyright (c) 2025 sprowii
"""Входящие события платформы.

parse_update превращает JSON вебхука MAX в одно из событий ниже;
всё, что бот не обрабатывает, даёт None.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class DirectMessage:
    chat_id: int
    user_id: int
    text: str


@dataclass(frozen=True)
class MemberJoined:
    chat_id: int
    user_id: int
    chat_title: Optional[str] = None


@dataclass(frozen=True)
class GroupMessage:
    chat_id: int
    message_id: str
    text: str
    user_id: Optional[int] = None


@dataclass(frozen=True)
class Callback:
    chat_id: int
    user_id: int
    payload: str


@dataclass(frozen=True)
class BotAdded:
    chat_id: int
    user_id: int
    chat_title: Optional[str] = None


@dataclass(frozen=True)
class BotRemoved:
    chat_id: int
    user_id: Optional[int] = None


Event = Union[DirectMessage, MemberJoined, GroupMessage, Callback, BotAdded, BotRemoved]


def _id(section: Optional[Dict[str, Any]], key: str = "id") -> Optional[int]:
    if not isinstance(section, dict) or section.get(key) is None:
        return None
    try:
        return int(section[key])
    except (TypeError, ValueError):
        return None


def parse_update(update: Any) -> Optional[Event]:
    """Разобрать обновление вебхука.

    Args:
        update: JSON тела запроса

    Returns:
        Событие или None, если обновление не поддерживается или неполное
    """
    if not isinstance(update, dict):
        return None

    update_type = update.get("type")
    chat = update.get("chat") or {}
    user = update.get("user")
    chat_id = _id(chat)
    user_id = _id(user)
    if chat_id is None:
        return None

    if update_type == "message_new":
        message = update.get("message") or {}
        text = message.get("text") or ""
        if chat.get("type") == "direct":
            if user_id is None:
                return None
            return DirectMessage(chat_id=chat_id, user_id=user_id, text=text)
        if chat.get("type") == "group":
            message_id = message.get("id")
            if message_id is None:
                return None
            sender_id = user_id if user_id is not None else _id(message.get("sender"))
            return GroupMessage(chat_id=chat_id, message_id=str(message_id), text=text, user_id=sender_id)
        return None

    if update_type == "user_joined" and user_id is not None:
        return MemberJoined(chat_id=chat_id, user_id=user_id, chat_title=chat.get("title"))

    if update_type == "message_callback" and user_id is not None:
        return Callback(chat_id=chat_id, user_id=user_id, payload=str(update.get("data") or ""))

    if update_type == "bot_added" and user_id is not None:
        return BotAdded(chat_id=chat_id, user_id=user_id, chat_title=chat.get("title"))

    if update_type == "bot_removed":
        return BotRemoved(chat_id=chat_id, user_id=user_id)

    return None
