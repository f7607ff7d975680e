import asyncio
import os
from typing import Callable

# app.config требует REDIS_URL при импорте
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("DATA_HASH_SALT", "test-salt")

import fakeredis
import pytest

from app.moderation.controller import ModerationController
from app.moderation.errors import UpstreamActionFailed
from app.moderation.storage import SettingsRepository

CHAT_ID = -100500
OWNER_ID = 42
USER_ID = 777


class FakeActionApi:
    """Двойник API платформы: записывает вызовы по порядку."""

    def __init__(self):
        self.calls = []
        self.fail_on = set()
        self._next_id = 0

    async def _record(self, name, *args):
        self.calls.append((name,) + args)
        # Как у настоящего клиента: вызов отдаёт управление event loop
        await asyncio.sleep(0)
        if name in self.fail_on:
            raise UpstreamActionFailed(name, "boom")

    async def send_message(self, chat_id, text, buttons=None):
        await self._record("send_message", chat_id, text, buttons)
        self._next_id += 1
        return f"mid.{self._next_id}"

    async def delete_message(self, chat_id, message_id):
        await self._record("delete_message", chat_id, message_id)

    async def set_member_can_send(self, chat_id, user_id, can_send):
        await self._record("set_member_can_send", chat_id, user_id, can_send)

    async def remove_member(self, chat_id, user_id):
        await self._record("remove_member", chat_id, user_id)

    def named(self, name):
        return [call for call in self.calls if call[0] == name]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.fixture
def redis_client():
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def repository(redis_client):
    return SettingsRepository(redis_client, max_retries=5)


@pytest.fixture
def actions():
    return FakeActionApi()


@pytest.fixture
def controller(actions, repository):
    return ModerationController(actions, repository, captcha_timeout_sec=0.1)
