# Copyright (c) 2025 sprowii
from typing import Callable, Optional

from flask import Flask, jsonify, request

from app.logging_config import log
from app.moderation.events import Event, parse_update

flask_app = Flask(__name__)

# Получатель разобранных событий (передаёт их в loop модерации)
_event_sink: Optional[Callable[[Event], None]] = None
_pending_counter: Optional[Callable[[], int]] = None


def bind_event_sink(sink: Callable[[Event], None], pending_counter: Optional[Callable[[], int]] = None) -> None:
    global _event_sink, _pending_counter
    _event_sink = sink
    _pending_counter = pending_counter


@flask_app.route("/webhook", methods=["POST"])
def webhook():
    """Приём событий платформы.

    Всегда отвечает 200: платформа не должна повторять доставку из-за
    внутренних ошибок обработки.
    """
    update = request.get_json(silent=True)
    event = parse_update(update)
    if event is None:
        log.debug(f"Пропущено обновление типа {(update or {}).get('type') if isinstance(update, dict) else None}")
        return "", 200

    if _event_sink is None:
        log.error("Получатель событий не настроен, событие отброшено")
        return "", 200

    try:
        _event_sink(event)
    except Exception as exc:
        log.error(f"Не удалось передать событие {type(event).__name__} на обработку: {exc}", exc_info=True)
    return "", 200


@flask_app.route("/health")
def health():
    pending = _pending_counter() if _pending_counter else 0
    return jsonify({"status": "ok", "pending_verifications": pending})
