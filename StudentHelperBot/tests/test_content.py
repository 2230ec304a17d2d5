"""
Тесты для ContentPayload и извлечения содержимого из сообщений.
"""

from datetime import datetime

import pytest
from aiogram.types import Audio, Chat, Document, Location, Message, PhotoSize, Video, Voice

from bot.utils import payload_from_message
from core.content import UNSUPPORTED_MESSAGE, ContentPayload, MediaType, validate_payload
from core.exceptions import ValidationFailure


def make_message(**fields) -> Message:
    return Message(
        message_id=1,
        date=datetime(2024, 1, 1),
        chat=Chat(id=1, type="private"),
        **fields,
    )


class TestPayloadFromMessage:
    """Тесты определения типа сообщения."""

    def test_text(self):
        payload = payload_from_message(make_message(text="What is 2 + 2?"))
        assert payload == ContentPayload.text("What is 2 + 2?")
        assert payload.is_text

    def test_photo_uses_largest_size(self):
        message = make_message(
            photo=[
                PhotoSize(file_id="small", file_unique_id="s", width=90, height=90),
                PhotoSize(file_id="large", file_unique_id="l", width=1280, height=1280),
            ],
            caption="Solve this",
        )
        payload = payload_from_message(message)
        assert payload.media_type is MediaType.PHOTO
        assert payload.media_id == "large"
        assert payload.content == "Solve this"
        assert payload.media_caption == "Solve this"

    def test_photo_without_caption(self):
        message = make_message(
            photo=[PhotoSize(file_id="p", file_unique_id="p", width=10, height=10)],
        )
        payload = payload_from_message(message)
        assert payload.content == "Photo"
        assert payload.media_caption is None

    def test_voice_ignores_caption(self):
        message = make_message(
            voice=Voice(file_id="v", file_unique_id="v", duration=3),
            caption="ignored",
        )
        payload = payload_from_message(message)
        assert payload.media_type is MediaType.VOICE
        assert payload.content == "Voice message"
        assert payload.media_caption is None

    def test_video(self):
        message = make_message(
            video=Video(file_id="vid", file_unique_id="vid", width=1, height=1, duration=1),
        )
        assert payload_from_message(message).media_type is MediaType.VIDEO

    def test_audio(self):
        message = make_message(audio=Audio(file_id="a", file_unique_id="a", duration=1))
        assert payload_from_message(message).content == "Audio"

    def test_document_uses_file_name(self):
        message = make_message(
            document=Document(file_id="d", file_unique_id="d", file_name="homework.pdf"),
        )
        payload = payload_from_message(message)
        assert payload.media_type is MediaType.DOCUMENT
        assert payload.content == "Document: homework.pdf"

    def test_unsupported(self):
        message = make_message(location=Location(latitude=1.0, longitude=2.0))
        assert payload_from_message(message) is None


class TestValidatePayload:
    """Тесты проверки содержимого."""

    def test_unsupported(self):
        with pytest.raises(ValidationFailure) as exc_info:
            validate_payload(None, 5, "short")
        assert exc_info.value.user_message == UNSUPPORTED_MESSAGE

    def test_short_text(self):
        with pytest.raises(ValidationFailure) as exc_info:
            validate_payload(ContentPayload.text("  hi  "), 5, "too short")
        assert exc_info.value.user_message == "too short"

    def test_four_characters_rejected(self):
        with pytest.raises(ValidationFailure):
            validate_payload(ContentPayload.text("abcd"), 5, "too short")

    def test_text_at_minimum(self):
        payload = ContentPayload.text("hello")
        assert validate_payload(payload, 5, "too short") is payload

    def test_media_without_caption_accepted(self):
        payload = ContentPayload.media(MediaType.PHOTO, "file")
        assert validate_payload(payload, 5, "too short") is payload


class TestContentPayload:
    """Тесты сериализации и предпросмотра."""

    def test_dict_round_trip(self):
        payload = ContentPayload.media(MediaType.VIDEO, "vid", caption="Watch")
        data = payload.to_dict()
        assert data["media_type"] == "video"
        assert ContentPayload.from_dict(data) == payload

    def test_preview_text_truncated(self):
        assert ContentPayload.text("x" * 150).preview(100) == "x" * 100 + "..."

    def test_preview_media(self):
        payload = ContentPayload.media(MediaType.PHOTO, "p", caption="graph")
        assert payload.preview() == "[PHOTO]: graph"

    def test_document_without_name(self):
        assert ContentPayload.media(MediaType.DOCUMENT, "d").content == "Document: Untitled"
