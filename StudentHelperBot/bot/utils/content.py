"""
Извлечение содержимого из входящего сообщения.

Единственное место, где разбирается тип сообщения Telegram.
Дальше по коду передаётся ContentPayload.
"""

from typing import Optional

from aiogram.types import Message

from core.content import ContentPayload, MediaType


def payload_from_message(message: Message) -> Optional[ContentPayload]:
    """
    Собрать ContentPayload из сообщения.

    Для фото берётся наибольший размер (последний в списке).

    Returns:
        ContentPayload или None для неподдерживаемых сообщений
        (стикеры, контакты, геолокация и т.п.)
    """
    if message.text is not None:
        return ContentPayload.text(message.text)

    if message.voice:
        return ContentPayload.media(MediaType.VOICE, message.voice.file_id)

    if message.photo:
        return ContentPayload.media(MediaType.PHOTO, message.photo[-1].file_id, message.caption)

    if message.video:
        return ContentPayload.media(MediaType.VIDEO, message.video.file_id, message.caption)

    if message.audio:
        return ContentPayload.media(MediaType.AUDIO, message.audio.file_id, message.caption)

    if message.document:
        return ContentPayload.media(
            MediaType.DOCUMENT,
            message.document.file_id,
            message.caption,
            file_name=message.document.file_name,
        )

    return None


def is_command(message: Message) -> bool:
    """Текст вида /command не принимается как вопрос, ответ или реплика."""
    return message.text is not None and message.text.startswith("/")
