# Copyright (c) 2025 sprowii
"""Клиенты API платформы обмена сообщениями."""
from app.platform.max_api import MaxActionApi, build_inline_keyboard

__all__ = [
    "MaxActionApi",
    "build_inline_keyboard",
]
