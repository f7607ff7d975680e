# Copyright (c) 2025 sprowii
"""Клиент Bot API платформы MAX.

Запросы синхронные (requests) и выполняются в executor, чтобы не блокировать
event loop. Любая ошибка сети или HTTP превращается в UpstreamActionFailed;
повторов нет.
"""
import asyncio
from functools import partial
from typing import Any, Dict, Optional

import requests

from app import config
from app.logging_config import log
from app.moderation.errors import UpstreamActionFailed
from app.moderation.keyboards import ButtonGrid


def build_inline_keyboard(buttons: ButtonGrid) -> Dict[str, Any]:
    """Вложение inline_keyboard для сообщения."""
    return {
        "type": "inline_keyboard",
        "buttons": [
            [{"text": button.text, "callback_data": button.payload} for button in row]
            for row in buttons
        ],
    }


class MaxActionApi:
    """Действия модерации через Bot API: сообщения и права участников."""

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or config.MAX_API_BASE).rstrip("/")
        self.timeout = timeout or config.MAX_API_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})

    def _request(self, method: str, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        action = f"{method} {endpoint}"
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{endpoint}",
                json=data,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            detail = str(exc)
            if exc.response is not None:
                detail = f"{exc.response.status_code} {exc.response.text[:200]}"
            raise UpstreamActionFailed(action, detail) from exc

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            log.debug(f"Ответ {action} не JSON, игнорирую тело")
            return {}

    async def _call(self, method: str, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._request, method, endpoint, data))

    async def send_message(self, chat_id: int, text: str, buttons: Optional[ButtonGrid] = None) -> str:
        """Отправить сообщение в чат.

        Returns:
            ID отправленного сообщения
        """
        data: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if buttons:
            data["attachments"] = [build_inline_keyboard(buttons)]
        payload = await self._call("POST", "/messages", data)
        message_id = payload.get("id")
        if message_id is None:
            message_id = ((payload.get("message") or {}).get("body") or {}).get("mid")
        if message_id is None:
            raise UpstreamActionFailed("POST /messages", "в ответе нет ID сообщения")
        return str(message_id)

    async def delete_message(self, chat_id: int, message_id: str) -> None:
        await self._call("DELETE", f"/messages/{message_id}")

    async def set_member_can_send(self, chat_id: int, user_id: int, can_send: bool) -> None:
        """Мут (can_send=False) или размут участника."""
        await self._call("PATCH", f"/chats/{chat_id}/members/{user_id}", {"sendMessages": can_send})

    async def remove_member(self, chat_id: int, user_id: int) -> None:
        await self._call("DELETE", f"/chats/{chat_id}/members/{user_id}")
