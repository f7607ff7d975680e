# Copyright (c) 2025 sprowii
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _resolve_redis_url(raw_url: str) -> str:
    if ".upstash.io" in raw_url and raw_url.startswith("redis://"):
        return "rediss" + raw_url[len("redis") :]
    return raw_url


def _load_bad_words() -> List[str]:
    raw = os.getenv("BAD_WORDS", "мат1,мат2,плохое,ругательство")
    return [word.strip().lower() for word in raw.split(",") if word.strip()]


REDIS_URL = os.getenv("REDIS_URL")
if not REDIS_URL:
    raise RuntimeError("Переменная окружения REDIS_URL должна быть установлена")
REDIS_URL = _resolve_redis_url(REDIS_URL)

MAX_ACCESS_TOKEN = os.getenv("MAX_ACCESS_TOKEN")
MAX_API_BASE = os.getenv("MAX_API_BASE", "https://botapi.max.ru").rstrip("/")
MAX_API_TIMEOUT = float(os.getenv("MAX_API_TIMEOUT", 10))

CAPTCHA_TIMEOUT_SEC = float(os.getenv("CAPTCHA_TIMEOUT_SEC", 3 * 60))

BAD_WORDS = _load_bad_words()

STORE_MAX_RETRIES = int(os.getenv("STORE_MAX_RETRIES", 5))
MAX_MODLOG_ENTRIES = int(os.getenv("MAX_MODLOG_ENTRIES", 1000))

FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = int(os.getenv("PORT", 3000))
