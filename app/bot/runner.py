# Copyright (c) 2025 sprowii
"""Event loop модерации в отдельном потоке.

Flask обслуживает вебхук в своих потоках, а вся логика модерации (капча,
таймеры, вызовы API) живёт в одном asyncio loop. EventLoopThread передаёт
события в этот loop и не ждёт результата.
"""
import asyncio
import threading
from concurrent.futures import Future
from typing import Coroutine, Optional

from app.logging_config import log


class EventLoopThread:
    """Фоновый поток с собственным asyncio loop."""

    def __init__(self, name: str = "moderation-loop"):
        self.name = name
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        self._ready.wait()
        log.info(f"Event loop {self.name} запущен")

    def _run(self) -> None:
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def submit(self, coro: Coroutine) -> Future:
        """Запланировать корутину в loop модерации."""
        if self.loop is None:
            coro.close()
            raise RuntimeError("Event loop не запущен")
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self, timeout: float = 5.0) -> None:
        if self.loop is None or self._thread is None:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout)
        self._thread = None
        log.info(f"Event loop {self.name} остановлен")
