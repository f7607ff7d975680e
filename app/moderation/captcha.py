# Copyright (c) 2025 sprowii
"""Проверка новых участников кнопкой-капчей.

CaptchaManager - единственный владелец активных проверок. Завершить проверку
можно только через resolve(): он атомарно забирает запись, поэтому из двух
исходов (пользователь нажал кнопку / истёк таймаут) финальное действие
выполняет ровно один.

Проверки живут только в памяти процесса: после рестарта участники остаются
замученными, но кик по таймауту не произойдёт.
"""
import asyncio
import threading
import time
from typing import Awaitable, Callable, Dict, List, Optional

from app import config
from app.logging_config import log
from app.moderation import texts
from app.moderation.errors import AlreadyPending, UpstreamActionFailed
from app.moderation.keyboards import build_challenge_keyboard
from app.moderation.models import PendingVerification
from app.security.data_protection import pseudonymize_chat_id, pseudonymize_id

ExpiryCallback = Callable[[PendingVerification], Awaitable[None]]


class CaptchaManager:
    """Реестр активных проверок с таймером истечения на каждую.

    Отвечает за:
    - Выдачу проверки (сообщение с кнопкой) не более одной на пользователя
    - Атомарное завершение проверки
    - Таймер истечения и вызов on_expire для победившего таймера
    """

    def __init__(
        self,
        actions,
        on_expire: Optional[ExpiryCallback] = None,
        timeout_sec: Optional[float] = None,
    ):
        """
        Args:
            actions: Клиент API платформы (send_message, delete_message)
            on_expire: Корутина, вызываемая с записью истёкшей проверки
            timeout_sec: Время на прохождение проверки
        """
        self.actions = actions
        self.on_expire = on_expire
        self.timeout_sec = config.CAPTCHA_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        # {user_id: PendingVerification}
        self._pending: Dict[int, PendingVerification] = {}
        self._lock = threading.Lock()

    async def issue(
        self,
        chat_id: int,
        user_id: int,
        before_send: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> PendingVerification:
        """Выдать проверку новому участнику.

        Слот пользователя резервируется до отправки сообщения, поэтому
        два одновременных вызова не отправят две капчи. before_send (мут)
        выполняется уже после резервирования: участник с проверкой в другом
        чате не будет замучен без капчи. Если before_send или отправка
        упали, слот освобождается.

        Raises:
            AlreadyPending: у пользователя уже есть проверка (в любом чате)
            UpstreamActionFailed: мут или отправка сообщения не удались
        """
        record = PendingVerification.create(chat_id, user_id, self.timeout_sec)
        with self._lock:
            if user_id in self._pending:
                raise AlreadyPending(user_id)
            self._pending[user_id] = record

        sent = False
        try:
            if before_send is not None:
                await before_send()
            message_id = await self.actions.send_message(
                chat_id,
                texts.CHALLENGE_TEXT,
                build_challenge_keyboard(user_id),
            )
            sent = True
        finally:
            if not sent:
                self._take(record)

        with self._lock:
            record.message_id = message_id
            still_pending = self._pending.get(user_id) is record
            if still_pending:
                record.expiry_task = asyncio.create_task(self._expire_later(record))

        if not still_pending:
            # Проверку завершили, пока отправлялось сообщение
            await self._delete_challenge(chat_id, message_id)
            return record

        log.info(
            f"Капча выдана пользователю {pseudonymize_id(user_id)} "
            f"в чате {pseudonymize_chat_id(chat_id)}"
        )
        return record

    def resolve(self, chat_id: int, user_id: int) -> Optional[PendingVerification]:
        """Атомарно забрать проверку пользователя.

        Повторный вызов возвращает None: дубликат нажатия или нажатие
        после истечения ничего не делают. Таймер забранной записи
        отменяется.

        Returns:
            Запись проверки или None, если её уже нет
        """
        with self._lock:
            record = self._pending.get(user_id)
            if record is None or record.chat_id != chat_id:
                return None
            del self._pending[user_id]
        self._cancel_expiry(record)
        return record

    def get(self, user_id: int) -> Optional[PendingVerification]:
        with self._lock:
            return self._pending.get(user_id)

    def has_pending(self, chat_id: int, user_id: int) -> bool:
        record = self.get(user_id)
        return record is not None and record.chat_id == chat_id

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def shutdown(self) -> int:
        """Отменить все таймеры без финальных действий (остановка процесса).

        Returns:
            Количество отменённых проверок
        """
        return len(self._cancel_all())

    async def close(self) -> int:
        """shutdown() с ожиданием завершения отменённых таймеров.

        Вызывается в loop перед его остановкой.
        """
        records = self._cancel_all()
        tasks = [record.expiry_task for record in records if record.expiry_task is not None]
        await asyncio.gather(*tasks, return_exceptions=True)
        return len(records)

    def _cancel_all(self) -> List[PendingVerification]:
        with self._lock:
            records = list(self._pending.values())
            self._pending.clear()
        for record in records:
            self._cancel_expiry(record)
        if records:
            log.warning(f"Остановка: {len(records)} проверок отменено, участники остаются замученными")
        return records

    def _take(self, record: PendingVerification) -> bool:
        """Забрать именно эту запись (не более позднюю запись того же пользователя)."""
        with self._lock:
            if self._pending.get(record.user_id) is not record:
                return False
            del self._pending[record.user_id]
            return True

    def _cancel_expiry(self, record: PendingVerification) -> None:
        task = record.expiry_task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _expire_later(self, record: PendingVerification) -> None:
        """Дождаться дедлайна и, если запись ещё не забрана, истечь её.

        Отмена задачи (проверка пройдена или остановка процесса) прерывает
        ожидание до каких-либо действий.
        """
        await asyncio.sleep(max(0.0, record.expires_at - time.time()))

        if not self._take(record):
            return

        log.info(
            f"Капча истекла для пользователя {pseudonymize_id(record.user_id)} "
            f"в чате {pseudonymize_chat_id(record.chat_id)}"
        )
        if self.on_expire is None:
            return
        try:
            await self.on_expire(record)
        except Exception:
            log.exception("Ошибка обработки истечения капчи")

    async def _delete_challenge(self, chat_id: int, message_id: Optional[str]) -> None:
        if not message_id:
            return
        try:
            await self.actions.delete_message(chat_id, message_id)
        except UpstreamActionFailed as exc:
            log.warning(f"Не удалось удалить сообщение с капчей: {exc}")
