# Copyright (c) 2025 sprowii
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from app import config
from app.moderation.models import FilterSettings

LINK_PATTERN = re.compile(r"https?://\S+|www\.\S+", re.IGNORECASE)

REASON_BAD_WORDS = "bad_words"
REASON_LINKS = "links"


@dataclass(frozen=True)
class FilterCheckResult:
    """Результат проверки сообщения фильтрами чата."""
    violated: bool
    reason: Optional[str] = None


def contains_bad_words(text: str, bad_words: Iterable[str]) -> bool:
    """Поиск подстроки без учёта регистра.

    Ложные срабатывания ("плохоеобъявление") допустимы.
    """
    lowered = text.lower()
    return any(word and word.lower() in lowered for word in bad_words)


def contains_link(text: str) -> bool:
    return LINK_PATTERN.search(text) is not None


def contains_banned_content(
    text: str,
    settings: FilterSettings,
    bad_words: Optional[Iterable[str]] = None,
) -> FilterCheckResult:
    """Проверить текст фильтрами, включёнными в настройках чата.

    Выключенный фильтр не выполняется вовсе. Фильтр мата проверяется первым,
    поэтому при нескольких нарушениях причиной считается он.

    Args:
        text: Текст сообщения
        settings: Переключатели фильтров чата
        bad_words: Список запрещённых слов (по умолчанию из конфигурации)

    Returns:
        FilterCheckResult с флагом нарушения и причиной
    """
    if not text:
        return FilterCheckResult(violated=False)

    if settings.bad_words:
        words = config.BAD_WORDS if bad_words is None else bad_words
        if contains_bad_words(text, words):
            return FilterCheckResult(violated=True, reason=REASON_BAD_WORDS)

    if settings.links and contains_link(text):
        return FilterCheckResult(violated=True, reason=REASON_LINKS)

    return FilterCheckResult(violated=False)
