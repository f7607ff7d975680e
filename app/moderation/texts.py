# Copyright (c) 2025 sprowii
"""Тексты сообщений бота."""

HELP_TEXT = (
    "📖 Команды бота:\n"
    "/start — показать меню\n"
    "/help — справка\n\n"
    "🛡 Антиспам работает автоматически после подключения:\n"
    "- капча при входе в чат\n"
    "- фильтр мата и ссылок (настраивается)\n"
    "- удаление нарушений\n\n"
    "Чтобы настроить антиспам — нажмите «Мои чаты» в меню."
)

WELCOME_TEXT = (
    "👋 Привет! Я антиспам-бот для чатов. Добавь меня в свою группу и настрой фильтры.\n\n"
    "Выберите действие:"
)
MY_CHATS_BUTTON = "📋 Мои чаты"

CHALLENGE_TEXT = "Добро пожаловать! Пожалуйста, нажмите кнопку ниже, чтобы подтвердить, что вы не бот."
CHALLENGE_BUTTON = "Пройти проверку ✅"
VERIFIED_TEXT = "✅ Вы успешно прошли проверку, добро пожаловать!"
EXPIRED_TEXT = "⛔ {user_id} не прошёл проверку и был удалён."

VIOLATION_TEXT = "⛔ Сообщение удалено: запрещённый контент."

NO_CHATS_TEXT = "У вас пока нет чатов. Добавьте меня в группу и я появлюсь здесь."
CHATS_LIST_TEXT = "Ваши чаты:\nНажмите на чат, чтобы изменить фильтры."
UNTITLED_CHAT = "Без названия"

SETTINGS_TEXT = "⚙ Настройки фильтров:"
TOGGLED_TEXT = "🔄 Фильтр «{label}» переключён: {state}."

FILTER_LABELS = {
    "captcha": "Капча",
    "bad_words": "Мат",
    "links": "Ссылки",
}

ON_MARK = "✅"
OFF_MARK = "❌"


def mark(value: bool) -> str:
    return ON_MARK if value else OFF_MARK
