# Copyright (c) 2025 sprowii
from typing import Optional

from app.logging_config import log
from app.moderation import texts
from app.moderation.callbacks import (
    OpenSettings,
    ShowChats,
    ToggleFilter,
    Verify,
    decode_payload,
)
from app.moderation.captcha import CaptchaManager
from app.moderation.content_filter import contains_banned_content
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
from app.moderation.events import (
    BotAdded,
    BotRemoved,
    Callback,
    DirectMessage,
    Event,
    GroupMessage,
    MemberJoined,
)
from app.moderation.keyboards import (
    build_chats_keyboard,
    build_settings_keyboard,
    build_welcome_keyboard,
)
from app.moderation.logger import ModLogger
from app.moderation.models import ManagedChat, PendingVerification
from app.moderation.storage import SettingsRepository
from app.security.data_protection import pseudonymize_chat_id, pseudonymize_id

HELP_COMMAND = "/help"


class ModerationController:
    """Центральный контроллер модерации.

    Объединяет хранилище настроек, капчу и фильтры и предоставляет
    единую точку входа handle_event для событий платформы.
    """

    def __init__(
        self,
        actions,
        repository: SettingsRepository,
        captcha_manager: Optional[CaptchaManager] = None,
        captcha_timeout_sec: Optional[float] = None,
    ):
        """Инициализация контроллера.

        Args:
            actions: Клиент API платформы (MaxActionApi)
            repository: Хранилище чатов и настроек
            captcha_manager: Реестр проверок (по умолчанию создаётся свой)
            captcha_timeout_sec: Время на прохождение капчи
        """
        self.actions = actions
        self.repository = repository
        self.mod_logger = ModLogger(repository)
        self.captcha = captcha_manager or CaptchaManager(
            actions,
            on_expire=self.on_verification_expired,
            timeout_sec=captcha_timeout_sec,
        )
        if self.captcha.on_expire is None:
            self.captcha.on_expire = self.on_verification_expired

    async def handle_event(self, event: Event) -> None:
        """Обработать одно событие платформы.

        Никогда не выбрасывает исключений: транспорт подтверждает событие
        независимо от результата обработки.
        """
        try:
            if isinstance(event, DirectMessage):
                await self.on_direct_message(event)
            elif isinstance(event, MemberJoined):
                await self.on_member_joined(event)
            elif isinstance(event, GroupMessage):
                await self.on_group_message(event)
            elif isinstance(event, Callback):
                await self.on_callback(event)
            elif isinstance(event, BotAdded):
                await self.on_bot_added(event)
            elif isinstance(event, BotRemoved):
                await self.on_bot_removed(event)
            else:
                log.debug(f"Неподдерживаемое событие: {type(event).__name__}")
        except NotFound as exc:
            log.debug(f"{type(event).__name__}: {exc}")
        except (UnknownField, MalformedPayload, NotChatOwner) as exc:
            log.warning(f"{type(event).__name__} отклонено: {exc}")
        except (UpstreamActionFailed, StoreError) as exc:
            log.error(f"Ошибка обработки {type(event).__name__}: {exc}")
        except ModerationError as exc:
            log.error(f"Ошибка модерации {type(event).__name__}: {exc}")
        except Exception:
            log.exception(f"Непредвиденная ошибка обработки {type(event).__name__}")

    # ========================================================================
    # DIRECT MESSAGES
    # ========================================================================

    async def on_direct_message(self, event: DirectMessage) -> None:
        if event.text.strip().lower() == HELP_COMMAND:
            await self.actions.send_message(event.chat_id, texts.HELP_TEXT)
            return
        await self.actions.send_message(
            event.chat_id,
            texts.WELCOME_TEXT,
            build_welcome_keyboard(event.user_id),
        )

    # ========================================================================
    # USER JOIN / VERIFICATION
    # ========================================================================

    async def on_member_joined(self, event: MemberJoined) -> None:
        """Вход нового участника: мут, затем капча.

        Мут выполняется после резервирования проверки и до появления капчи.
        Если у пользователя уже есть проверка (в этом или другом чате),
        мута нет. Если мут не удался, капча не выдаётся.
        """
        await self.repository.ensure_owner_and_chat_async(event.user_id, event.chat_id, event.chat_title)
        chat = await self.repository.get_chat_async(event.chat_id)
        if chat is None or not chat.enabled or not chat.settings.captcha:
            return

        async def _mute() -> None:
            await self.actions.set_member_can_send(event.chat_id, event.user_id, False)
            await self.mod_logger.log_action(event.chat_id, "mute", event.user_id, "Капча при входе")

        try:
            await self.captcha.issue(event.chat_id, event.user_id, before_send=_mute)
        except AlreadyPending:
            log.debug(f"Повторный вход {pseudonymize_id(event.user_id)}: проверка уже выдана")

    async def on_verify(self, event: Callback, payload: Verify) -> None:
        """Нажатие кнопки капчи.

        Чужая кнопка, повторное нажатие или нажатие после истечения
        ничего не делают.
        """
        if payload.user_id != event.user_id:
            log.debug(f"Пользователь {pseudonymize_id(event.user_id)} нажал чужую капчу")
            return

        record = self.captcha.resolve(event.chat_id, event.user_id)
        if record is None:
            return

        await self.actions.set_member_can_send(record.chat_id, record.user_id, True)
        await self.mod_logger.log_action(record.chat_id, "unmute", record.user_id, "Капча пройдена")
        await self._delete_message_quietly(record.chat_id, record.message_id)
        await self.actions.send_message(record.chat_id, texts.VERIFIED_TEXT)
        log.info(
            f"Пользователь {pseudonymize_id(record.user_id)} прошёл капчу "
            f"в чате {pseudonymize_chat_id(record.chat_id)}"
        )

    async def on_verification_expired(self, record: PendingVerification) -> None:
        """Таймаут капчи: удалить сообщение, уведомить чат, удалить участника.

        Кик выполняется даже если админ успел вручную вернуть права.
        """
        await self._delete_message_quietly(record.chat_id, record.message_id)
        try:
            await self.actions.send_message(
                record.chat_id,
                texts.EXPIRED_TEXT.format(user_id=record.user_id),
            )
        except UpstreamActionFailed as exc:
            log.warning(f"Не удалось отправить уведомление о таймауте: {exc}")

        try:
            await self.actions.remove_member(record.chat_id, record.user_id)
        except UpstreamActionFailed as exc:
            log.error(f"Не удалось удалить пользователя {pseudonymize_id(record.user_id)}: {exc}")
            return
        await self.mod_logger.log_action(record.chat_id, "kick", record.user_id, "Провал капчи (таймаут)")

    # ========================================================================
    # GROUP MESSAGES
    # ========================================================================

    async def on_group_message(self, event: GroupMessage) -> None:
        """Проверка сообщения фильтрами чата.

        Настройки читаются заново для каждого сообщения, поэтому
        переключение фильтра действует со следующего сообщения.
        """
        chat = await self.repository.get_chat_async(event.chat_id)
        if chat is None or not chat.enabled:
            return

        result = contains_banned_content(event.text, chat.settings)
        if not result.violated:
            return

        await self.actions.delete_message(event.chat_id, event.message_id)
        await self.mod_logger.log_action(event.chat_id, "delete", event.user_id, f"filter:{result.reason}")
        await self.actions.send_message(event.chat_id, texts.VIOLATION_TEXT)

    # ========================================================================
    # CALLBACKS
    # ========================================================================

    async def on_callback(self, event: Callback) -> None:
        payload = decode_payload(event.payload)
        if isinstance(payload, Verify):
            await self.on_verify(event, payload)
        elif isinstance(payload, ShowChats):
            await self.on_show_chats(event, payload)
        elif isinstance(payload, OpenSettings):
            await self.on_open_settings(event, payload)
        elif isinstance(payload, ToggleFilter):
            await self.on_toggle_filter(event, payload)

    async def on_show_chats(self, event: Callback, payload: ShowChats) -> None:
        if payload.owner_id != event.user_id:
            raise NotChatOwner(event.user_id, event.chat_id)

        chats = await self.repository.list_chats_async(payload.owner_id)
        if not chats:
            await self.actions.send_message(event.chat_id, texts.NO_CHATS_TEXT)
            return
        await self.actions.send_message(
            event.chat_id,
            texts.CHATS_LIST_TEXT,
            build_chats_keyboard(chats),
        )

    async def on_open_settings(self, event: Callback, payload: OpenSettings) -> None:
        chat = await self._get_owned_chat(payload.chat_id, event.user_id)
        await self.actions.send_message(
            event.chat_id,
            texts.SETTINGS_TEXT,
            build_settings_keyboard(chat.chat_id, chat.settings),
        )

    async def on_toggle_filter(self, event: Callback, payload: ToggleFilter) -> None:
        await self._get_owned_chat(payload.chat_id, event.user_id)
        settings = await self.repository.toggle_settings_async(payload.chat_id, payload.field)
        value = getattr(settings, payload.field)
        label = texts.FILTER_LABELS.get(payload.field, payload.field)
        await self.actions.send_message(
            event.chat_id,
            texts.TOGGLED_TEXT.format(label=label, state=texts.mark(value)),
            build_settings_keyboard(payload.chat_id, settings),
        )

    # ========================================================================
    # BOT MEMBERSHIP
    # ========================================================================

    async def on_bot_added(self, event: BotAdded) -> None:
        """Бота добавили в чат: добавивший становится владельцем."""
        created = await self.repository.ensure_owner_and_chat_async(event.user_id, event.chat_id, event.chat_title)
        if not created:
            await self.repository.set_enabled_async(event.chat_id, True)

    async def on_bot_removed(self, event: BotRemoved) -> None:
        """Бота удалили из чата: модерация выключается, настройки сохраняются."""
        try:
            await self.repository.set_enabled_async(event.chat_id, False)
        except NotFound:
            return
        log.info(f"Модерация чата {pseudonymize_chat_id(event.chat_id)} выключена")

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _get_owned_chat(self, chat_id: int, user_id: int) -> ManagedChat:
        chat = await self.repository.get_chat_async(chat_id)
        if chat is None:
            raise NotFound(f"Чат {chat_id} не найден")
        if chat.owner_id != user_id:
            raise NotChatOwner(user_id, chat_id)
        return chat

    async def _delete_message_quietly(self, chat_id: int, message_id: Optional[str]) -> None:
        if not message_id:
            return
        try:
            await self.actions.delete_message(chat_id, message_id)
        except UpstreamActionFailed as exc:
            log.warning(f"Не удалось удалить сообщение с капчей: {exc}")
