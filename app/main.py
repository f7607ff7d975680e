# Copyright (c) 2025 sprowii
"""Точка входа антиспам-бота: вебхук Flask + event loop модерации."""
import sys

from app import config
from app.bot.runner import EventLoopThread
from app.logging_config import log
from app.moderation.controller import ModerationController
from app.moderation.events import Event
from app.moderation.storage import SettingsRepository, create_redis_client
from app.platform.max_api import MaxActionApi
from app.web.server import bind_event_sink, flask_app


def build_controller() -> ModerationController:
    repository = SettingsRepository(create_redis_client())
    actions = MaxActionApi(config.MAX_ACCESS_TOKEN)
    return ModerationController(actions, repository)


def main() -> None:
    if not config.MAX_ACCESS_TOKEN:
        log.critical("Переменная окружения MAX_ACCESS_TOKEN должна быть установлена")
        sys.exit(1)

    runner = EventLoopThread()
    runner.start()
    controller = build_controller()

    def _submit(event: Event) -> None:
        runner.submit(controller.handle_event(event))

    bind_event_sink(_submit, controller.captcha.pending_count)

    log.info(f"🚀 MAX AntiSpam запущен на порту {config.FLASK_PORT}")
    try:
        flask_app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, threaded=True)
    except KeyboardInterrupt:
        log.info("Получен сигнал остановки (Ctrl+C)")
    finally:
        try:
            runner.submit(controller.captcha.close()).result(timeout=5)
        except Exception as exc:
            log.error(f"Не удалось корректно остановить проверки: {exc}")
        runner.stop()


if __name__ == "__main__":
    main()
