"""
Модуль бизнес-логики Q&A бота.

Содержит:
- exceptions.py - кастомные исключения
- content.py - содержимое вопросов и ответов (ContentPayload)
- callbacks.py - формат callback_data и deep link
- validators.py - валидация входных данных
- access.py - проверки доступа (админ, онбординг, подписка)
- publishing.py - публикация в канал
- moderation.py - модерация, ответы, рассылка
"""

from core.exceptions import (
    QABotError,
    ValidationFailure,
    NotFound,
    InvalidState,
    Unauthorized,
    ExternalTransientFailure,
    ExternalPublishFailure,
    ConfigurationMissing,
)
from core.content import MediaType, ContentPayload, validate_payload


__all__ = [
    # Exceptions
    "QABotError",
    "ValidationFailure",
    "NotFound",
    "InvalidState",
    "Unauthorized",
    "ExternalTransientFailure",
    "ExternalPublishFailure",
    "ConfigurationMissing",
    # Content
    "MediaType",
    "ContentPayload",
    "validate_payload",
]
