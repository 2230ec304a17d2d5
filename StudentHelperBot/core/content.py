"""
Содержимое вопросов, ответов и реплик.

Тип сообщения определяется один раз на границе транспорта
(bot/utils/content.py) и дальше передаётся как ContentPayload.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from core.exceptions import ValidationFailure


class MediaType(str, Enum):
    """Поддерживаемые типы содержимого."""

    TEXT = "text"
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    VOICE = "voice"
    DOCUMENT = "document"


# Подпись по умолчанию, если у медиа нет caption
MEDIA_LABELS = {
    MediaType.PHOTO: "Photo",
    MediaType.VIDEO: "Video",
    MediaType.AUDIO: "Audio",
    MediaType.VOICE: "Voice message",
}

UNSUPPORTED_MESSAGE = (
    "❌ Unsupported message type. "
    "Please send text, voice, photo, video, audio, or document."
)


@dataclass(frozen=True)
class ContentPayload:
    """
    Содержимое одного сообщения.

    Attributes:
        content: Текст или подпись (для медиа - caption или название типа)
        media_type: Тип содержимого
        media_id: Telegram file_id (None для текста)
        media_caption: Исходная подпись медиа (если была)
    """
    content: str
    media_type: MediaType = MediaType.TEXT
    media_id: Optional[str] = None
    media_caption: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.media_type is MediaType.TEXT

    @classmethod
    def text(cls, text: str) -> "ContentPayload":
        return cls(content=text)

    @classmethod
    def media(
        cls,
        media_type: MediaType,
        media_id: str,
        caption: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> "ContentPayload":
        """
        Создать payload для медиа.

        content берётся из подписи, а если её нет - из названия типа
        (для документа - "Document: <имя файла>").
        """
        # Подпись голосовых сообщений не используется
        if media_type is MediaType.VOICE:
            caption = None

        if caption:
            content = caption
        elif media_type is MediaType.DOCUMENT:
            content = f"Document: {file_name or 'Untitled'}"
        else:
            content = MEDIA_LABELS.get(media_type, media_type.value.capitalize())

        return cls(
            content=content,
            media_type=media_type,
            media_id=media_id,
            media_caption=caption,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация для хранения в FSM."""
        data = asdict(self)
        data["media_type"] = self.media_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentPayload":
        """Восстановление из данных FSM."""
        return cls(
            content=data.get("content") or "",
            media_type=MediaType(data.get("media_type") or MediaType.TEXT.value),
            media_id=data.get("media_id"),
            media_caption=data.get("media_caption"),
        )

    def preview(self, limit: int = 100) -> str:
        """Короткий предпросмотр: текст или [PHOTO]: подпись."""
        if self.is_text:
            text = self.content
        else:
            text = f"[{self.media_type.value.upper()}]"
            if self.media_caption:
                text += f": {self.media_caption}"

        if len(text) > limit:
            text = text[:limit] + "..."
        return text


def validate_payload(
    payload: Optional[ContentPayload],
    min_length: int,
    too_short_message: str,
) -> ContentPayload:
    """
    Проверить содержимое перед сохранением в сессию или БД.

    Текст должен содержать не меньше min_length символов (без пробелов
    по краям). Медиа принимается без ограничений на подпись.

    Raises:
        ValidationFailure: Неподдерживаемый тип или слишком короткий текст
    """
    if payload is None:
        raise ValidationFailure(UNSUPPORTED_MESSAGE)

    if payload.is_text and len(payload.content.strip()) < min_length:
        raise ValidationFailure(too_short_message)

    return payload
