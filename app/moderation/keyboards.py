# Copyright (c) 2025 sprowii
from dataclasses import dataclass
from typing import List, Sequence

from app.moderation import texts
from app.moderation.callbacks import OpenSettings, ShowChats, ToggleFilter, Verify
from app.moderation.models import FILTER_FIELDS, FilterSettings, ManagedChat


@dataclass(frozen=True)
class Button:
    """Inline-кнопка: подпись и payload, который вернётся в callback."""
    text: str
    payload: str


ButtonGrid = List[List[Button]]

# Кнопок настроек в одном ряду
SETTINGS_ROW_SIZE = 2


def build_challenge_keyboard(user_id: int) -> ButtonGrid:
    return [[Button(texts.CHALLENGE_BUTTON, Verify(user_id).encode())]]


def build_welcome_keyboard(user_id: int) -> ButtonGrid:
    return [[Button(texts.MY_CHATS_BUTTON, ShowChats(user_id).encode())]]


def build_chats_keyboard(chats: Sequence[ManagedChat]) -> ButtonGrid:
    """По одной кнопке на чат: название и статус модерации."""
    return [
        [Button(
            f"{chat.title or texts.UNTITLED_CHAT} ({texts.mark(chat.enabled)})",
            OpenSettings(chat.chat_id).encode(),
        )]
        for chat in chats
    ]


def build_settings_keyboard(chat_id: int, settings: FilterSettings) -> ButtonGrid:
    """Сетка переключателей с текущим состоянием каждого фильтра."""
    buttons = [
        Button(
            f"{texts.FILTER_LABELS.get(name, name)} {texts.mark(getattr(settings, name))}",
            ToggleFilter(name, chat_id).encode(),
        )
        for name in FILTER_FIELDS
    ]
    return [buttons[i:i + SETTINGS_ROW_SIZE] for i in range(0, len(buttons), SETTINGS_ROW_SIZE)]
