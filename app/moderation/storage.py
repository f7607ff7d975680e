# Copyright (c) 2025 sprowii
"""Хранилище чатов, владельцев и журнала модерации в Redis.

Ключи:
- owner:{user_id} - владелец (создаётся лениво)
- chat:{chat_id} - чат под модерацией с переключателями фильтров (JSON)
- owner_chats:{user_id} - sorted set чатов владельца по времени создания
- modlog:{chat_id} - лог действий модерации

Все изменения записи чата - атомарный read-modify-write через WATCH/MULTI,
без блокировок внутри процесса: хранилище может быть общим для нескольких
экземпляров бота.
"""
import asyncio
import json
from dataclasses import asdict
from functools import partial
from typing import Callable, List, Optional

import redis
from redis.exceptions import RedisError, WatchError

from app import config
from app.logging_config import log
from app.moderation.errors import NotFound, StoreError, UnknownField
from app.moderation.models import FILTER_FIELDS, FilterSettings, ManagedChat, ModAction, Owner
from app.security.data_protection import pseudonymize_chat_id, pseudonymize_id

# Префиксы ключей
OWNER_PREFIX = "owner:"
CHAT_PREFIX = "chat:"
OWNER_CHATS_PREFIX = "owner_chats:"
MODLOG_PREFIX = "modlog:"


def _owner_key(user_id: int) -> str:
    return f"{OWNER_PREFIX}{user_id}"


def _chat_key(chat_id: int) -> str:
    return f"{CHAT_PREFIX}{chat_id}"


def _owner_chats_key(user_id: int) -> str:
    return f"{OWNER_CHATS_PREFIX}{user_id}"


def _modlog_key(chat_id: int) -> str:
    return f"{MODLOG_PREFIX}{chat_id}"


def create_redis_client(url: Optional[str] = None) -> redis.Redis:
    """Создать Redis клиент для хранилища настроек."""
    return redis.Redis.from_url(url or config.REDIS_URL, decode_responses=True)


def _decode_chat(raw: Optional[str]) -> Optional[ManagedChat]:
    if not raw:
        return None
    try:
        return ManagedChat.from_dict(json.loads(raw))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        raise StoreError(f"Некорректная запись чата: {exc}") from exc


def _encode_chat(chat: ManagedChat) -> str:
    return json.dumps(chat.to_dict(), ensure_ascii=False)


class SettingsRepository:
    """CRUD над записями владельцев и чатов.

    Синхронные методы работают с Redis напрямую; у каждого есть *_async
    вариант, выполняющий его в executor, чтобы не блокировать event loop.
    """

    def __init__(self, client: redis.Redis, max_retries: Optional[int] = None):
        self.client = client
        self.max_retries = max_retries or config.STORE_MAX_RETRIES

    async def _run(self, func: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    # ========================================================================
    # OWNER / CHAT RECORDS
    # ========================================================================

    def ensure_owner_and_chat(self, owner_id: int, chat_id: int, title: Optional[str] = None) -> bool:
        """Создать владельца и чат, если их ещё нет.

        Существующий чат не перезаписывается: владелец и настройки
        сохраняются. Безопасно при одновременном вызове для одного чата.

        Returns:
            True если чат был создан этим вызовом
        """
        chat_key = _chat_key(chat_id)
        try:
            self.client.set(
                _owner_key(owner_id),
                json.dumps(asdict(Owner(user_id=owner_id))),
                nx=True,
            )
            with self.client.pipeline() as pipe:
                for _ in range(self.max_retries):
                    try:
                        pipe.watch(chat_key)
                        if pipe.exists(chat_key):
                            return False
                        chat = ManagedChat(chat_id=chat_id, owner_id=owner_id, title=title)
                        pipe.multi()
                        pipe.set(chat_key, _encode_chat(chat))
                        pipe.zadd(_owner_chats_key(owner_id), {str(chat_id): chat.created_at})
                        pipe.execute()
                        log.info(
                            f"Чат {pseudonymize_chat_id(chat_id)} зарегистрирован "
                            f"за владельцем {pseudonymize_id(owner_id)}"
                        )
                        return True
                    except WatchError:
                        continue
        except RedisError as exc:
            raise StoreError(f"Не удалось зарегистрировать чат: {exc}") from exc
        raise StoreError(f"Конфликт при регистрации чата {chat_id}")

    async def ensure_owner_and_chat_async(self, owner_id: int, chat_id: int, title: Optional[str] = None) -> bool:
        return await self._run(self.ensure_owner_and_chat, owner_id, chat_id, title)

    def get_chat(self, chat_id: int) -> Optional[ManagedChat]:
        """Загрузить чат или None, если бот о нём не знает."""
        try:
            raw = self.client.get(_chat_key(chat_id))
        except RedisError as exc:
            raise StoreError(f"Не удалось загрузить чат: {exc}") from exc
        return _decode_chat(raw)

    async def get_chat_async(self, chat_id: int) -> Optional[ManagedChat]:
        return await self._run(self.get_chat, chat_id)

    def get_settings(self, chat_id: int) -> FilterSettings:
        chat = self.get_chat(chat_id)
        if chat is None:
            raise NotFound(f"Чат {chat_id} не найден")
        return chat.settings

    async def get_settings_async(self, chat_id: int) -> FilterSettings:
        return await self._run(self.get_settings, chat_id)

    def list_chats(self, owner_id: int) -> List[ManagedChat]:
        """Чаты владельца в порядке регистрации."""
        try:
            chat_ids = self.client.zrange(_owner_chats_key(owner_id), 0, -1)
            if not chat_ids:
                return []
            raw_values = self.client.mget([_chat_key(chat_id) for chat_id in chat_ids])
        except RedisError as exc:
            raise StoreError(f"Не удалось загрузить чаты владельца: {exc}") from exc

        chats = []
        for raw in raw_values:
            chat = _decode_chat(raw)
            if chat is not None and chat.owner_id == owner_id:
                chats.append(chat)
        return chats

    async def list_chats_async(self, owner_id: int) -> List[ManagedChat]:
        return await self._run(self.list_chats, owner_id)

    # ========================================================================
    # ATOMIC UPDATES
    # ========================================================================

    def _compare_and_set(self, chat_id: int, mutate: Callable[[ManagedChat], ManagedChat]) -> ManagedChat:
        """Атомарно изменить запись чата (optimistic locking через WATCH).

        Raises:
            NotFound: чата нет
            StoreError: Redis недоступен или конфликт не разрешился за max_retries
        """
        chat_key = _chat_key(chat_id)
        try:
            with self.client.pipeline() as pipe:
                for _ in range(self.max_retries):
                    try:
                        pipe.watch(chat_key)
                        chat = _decode_chat(pipe.get(chat_key))
                        if chat is None:
                            raise NotFound(f"Чат {chat_id} не найден")
                        updated = mutate(chat)
                        pipe.multi()
                        pipe.set(chat_key, _encode_chat(updated))
                        pipe.execute()
                        return updated
                    except WatchError:
                        log.debug(f"Конфликт записи чата {pseudonymize_chat_id(chat_id)}, повтор")
                        continue
        except RedisError as exc:
            raise StoreError(f"Не удалось обновить чат: {exc}") from exc
        raise StoreError(f"Конфликт при обновлении чата {chat_id}")

    def toggle_settings(self, chat_id: int, field_name: str) -> FilterSettings:
        """Инвертировать один переключатель фильтра.

        Returns:
            Настройки в том виде, в каком их записала эта транзакция
        """
        if field_name not in FILTER_FIELDS:
            raise UnknownField(field_name)

        def _flip(chat: ManagedChat) -> ManagedChat:
            chat.settings = chat.settings.toggled(field_name)
            return chat

        updated = self._compare_and_set(chat_id, _flip)
        log.info(
            f"Фильтр {field_name} в чате {pseudonymize_chat_id(chat_id)} -> "
            f"{getattr(updated.settings, field_name)}"
        )
        return updated.settings

    async def toggle_settings_async(self, chat_id: int, field_name: str) -> FilterSettings:
        return await self._run(self.toggle_settings, chat_id, field_name)

    def toggle(self, chat_id: int, field_name: str) -> bool:
        """Инвертировать переключатель и вернуть его новое значение."""
        return getattr(self.toggle_settings(chat_id, field_name), field_name)

    async def toggle_async(self, chat_id: int, field_name: str) -> bool:
        return await self._run(self.toggle, chat_id, field_name)

    def set_enabled(self, chat_id: int, enabled: bool) -> bool:
        """Включить или выключить модерацию чата.

        Returns:
            True если значение изменилось
        """
        changed = []

        def _set(chat: ManagedChat) -> ManagedChat:
            changed.append(chat.enabled != enabled)
            chat.enabled = enabled
            return chat

        self._compare_and_set(chat_id, _set)
        return changed[-1]

    async def set_enabled_async(self, chat_id: int, enabled: bool) -> bool:
        return await self._run(self.set_enabled, chat_id, enabled)

    # ========================================================================
    # MODLOG OPERATIONS
    # ========================================================================

    def save_mod_action(self, action: ModAction) -> None:
        """Сохранить действие модерации в лог."""
        key = _modlog_key(action.chat_id)
        try:
            data = asdict(action)
            with self.client.pipeline() as pipe:
                pipe.lpush(key, json.dumps(data, ensure_ascii=False))
                # Ограничиваем размер лога
                pipe.ltrim(key, 0, config.MAX_MODLOG_ENTRIES - 1)
                pipe.execute()
        except RedisError as exc:
            raise StoreError(f"Не удалось сохранить действие модерации: {exc}") from exc

    async def save_mod_action_async(self, action: ModAction) -> None:
        await self._run(self.save_mod_action, action)

    def load_mod_log(self, chat_id: int, limit: int = 20) -> List[ModAction]:
        """Загрузить последние действия модерации чата (новые первыми)."""
        try:
            raw_values = self.client.lrange(_modlog_key(chat_id), 0, limit - 1)
        except RedisError as exc:
            raise StoreError(f"Не удалось загрузить лог модерации: {exc}") from exc

        actions = []
        for raw in raw_values:
            try:
                actions.append(ModAction(**json.loads(raw)))
            except (json.JSONDecodeError, TypeError) as exc:
                log.warning(f"Некорректные данные действия модерации: {exc}")
        return actions
