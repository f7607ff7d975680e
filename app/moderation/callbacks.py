# Copyright (c) 2025 sprowii
"""Данные inline-кнопок.

Строка payload разбирается один раз в decode_payload, дальше обработчики
работают только с типизированными вариантами.

Форматы:
- verify_<user_id>
- show_chats_<owner_id>
- settings_<chat_id>
- toggle_<field>_<chat_id> (имя поля само может содержать "_")
"""
from dataclasses import dataclass
from typing import Optional, Union

from app.moderation.errors import MalformedPayload

VERIFY_PREFIX = "verify_"
SHOW_CHATS_PREFIX = "show_chats_"
SETTINGS_PREFIX = "settings_"
TOGGLE_PREFIX = "toggle_"


@dataclass(frozen=True)
class Verify:
    user_id: int

    def encode(self) -> str:
        return f"{VERIFY_PREFIX}{self.user_id}"


@dataclass(frozen=True)
class ShowChats:
    owner_id: int

    def encode(self) -> str:
        return f"{SHOW_CHATS_PREFIX}{self.owner_id}"


@dataclass(frozen=True)
class OpenSettings:
    chat_id: int

    def encode(self) -> str:
        return f"{SETTINGS_PREFIX}{self.chat_id}"


@dataclass(frozen=True)
class ToggleFilter:
    field: str
    chat_id: int

    def encode(self) -> str:
        return f"{TOGGLE_PREFIX}{self.field}_{self.chat_id}"


CallbackPayload = Union[Verify, ShowChats, OpenSettings, ToggleFilter]


def _parse_id(raw: str, payload: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise MalformedPayload(payload) from None


def decode_payload(payload: Optional[str]) -> CallbackPayload:
    """Разобрать payload кнопки.

    Имя фильтра в toggle_ не проверяется здесь: неизвестные имена
    отклоняет хранилище (UnknownField).

    Raises:
        MalformedPayload: строка не соответствует ни одному формату
    """
    if not payload:
        raise MalformedPayload(payload)

    if payload.startswith(VERIFY_PREFIX):
        return Verify(user_id=_parse_id(payload[len(VERIFY_PREFIX):], payload))

    if payload.startswith(SHOW_CHATS_PREFIX):
        return ShowChats(owner_id=_parse_id(payload[len(SHOW_CHATS_PREFIX):], payload))

    if payload.startswith(SETTINGS_PREFIX):
        return OpenSettings(chat_id=_parse_id(payload[len(SETTINGS_PREFIX):], payload))

    if payload.startswith(TOGGLE_PREFIX):
        field, sep, raw_chat_id = payload[len(TOGGLE_PREFIX):].rpartition("_")
        if not sep or not field:
            raise MalformedPayload(payload)
        return ToggleFilter(field=field, chat_id=_parse_id(raw_chat_id, payload))

    raise MalformedPayload(payload)
