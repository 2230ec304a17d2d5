"""
Тесты для ModerationService.

Bot заменён AsyncMock (conftest.mock_bot), база - временная SQLite.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from sqlalchemy.exc import OperationalError

from core.content import ContentPayload
from core.exceptions import (
    ConfigurationMissing,
    ExternalPublishFailure,
    InvalidState,
    NotFound,
    Unauthorized,
    ValidationFailure,
)
from core.moderation import ModerationService
from database import admin_crud, crud
from database.models import STATUS_APPROVED, STATUS_DECLINED, STATUS_PENDING


ADMIN_ID = 1000
ASKER_ID = 2000
ANSWERER_ID = 3000
CHANNEL = "@test_channel"
MISSING_ID = "ffffffffffffffffffffffff"
BOT_USERNAME = "student_helper_test_bot"


def bad_request(message: str) -> TelegramBadRequest:
    return TelegramBadRequest(method=MagicMock(), message=message)


def channel_posts(bot) -> list:
    return [c for c in bot.send_message.await_args_list if c.kwargs.get("chat_id") == CHANNEL]


@pytest.fixture
def moderation(mock_bot, test_config):
    return ModerationService(mock_bot, test_config)


@pytest_asyncio.fixture
async def pending_question(db):
    await admin_crud.seed_admins([ADMIN_ID])
    return await crud.create_question(ASKER_ID, ContentPayload.text("What is photosynthesis?"), grade_level="grade8")


class TestApprove:
    """Тесты одобрения и публикации."""

    @pytest.mark.asyncio
    async def test_approve_publishes_once(self, moderation, mock_bot, pending_question):
        question = await moderation.approve(pending_question.id, ADMIN_ID)

        assert question.status == STATUS_APPROVED
        assert question.channel_message_id == 777

        posts = channel_posts(mock_bot)
        assert len(posts) == 1
        assert "What is photosynthesis?" in posts[0].kwargs["text"]

        keyboard = posts[0].kwargs["reply_markup"]
        assert keyboard.inline_keyboard[0][1].text == "👁️ View Answers (0)"
        assert keyboard.inline_keyboard[0][0].url.endswith(f"?start=answer_{pending_question.id}")

        stored = await crud.get_question(pending_question.id)
        assert stored.channel_message_id == 777

        # Автор получил уведомление
        notified = [c for c in mock_bot.send_message.await_args_list if c.kwargs.get("chat_id") == ASKER_ID]
        assert len(notified) == 1

    @pytest.mark.asyncio
    async def test_second_approve_rejected(self, moderation, mock_bot, pending_question):
        await moderation.approve(pending_question.id, ADMIN_ID)

        with pytest.raises(InvalidState):
            await moderation.approve(pending_question.id, ADMIN_ID)

        assert len(channel_posts(mock_bot)) == 1

    @pytest.mark.asyncio
    async def test_non_admin(self, moderation, mock_bot, pending_question):
        with pytest.raises(Unauthorized):
            await moderation.approve(pending_question.id, ANSWERER_ID)

        stored = await crud.get_question(pending_question.id)
        assert stored.status == STATUS_PENDING
        assert channel_posts(mock_bot) == []

    @pytest.mark.asyncio
    async def test_invalid_id(self, moderation, pending_question):
        with pytest.raises(ValidationFailure):
            await moderation.approve("nope", ADMIN_ID)

    @pytest.mark.asyncio
    async def test_missing_question(self, moderation, pending_question):
        with pytest.raises(NotFound):
            await moderation.approve(MISSING_ID, ADMIN_ID)

    @pytest.mark.asyncio
    async def test_channel_not_configured(self, mock_bot, test_config, pending_question):
        test_config.channel_identifier = None
        moderation = ModerationService(mock_bot, test_config)

        with pytest.raises(ConfigurationMissing):
            await moderation.approve(pending_question.id, ADMIN_ID)

        stored = await crud.get_question(pending_question.id)
        assert stored.status == STATUS_APPROVED
        assert stored.channel_message_id is None
        assert channel_posts(mock_bot) == []

        # Автор всё равно получает уведомление об одобрении
        mock_bot.send_message.assert_awaited_once()
        assert mock_bot.send_message.await_args.kwargs["chat_id"] == ASKER_ID

    @pytest.mark.asyncio
    async def test_publish_failure_then_republish(self, moderation, mock_bot, pending_question):
        mock_bot.send_message.side_effect = bad_request("Bad Request: chat not found")

        with pytest.raises(ExternalPublishFailure):
            await moderation.approve(pending_question.id, ADMIN_ID)

        stored = await crud.get_question(pending_question.id)
        assert stored.status == STATUS_APPROVED
        assert stored.channel_message_id is None

        mock_bot.send_message.side_effect = None
        question = await moderation.republish(pending_question.id, ADMIN_ID)
        assert question.channel_message_id == 777

        with pytest.raises(InvalidState):
            await moderation.republish(pending_question.id, ADMIN_ID)

    @pytest.mark.asyncio
    async def test_audit_log_failure_does_not_block_publish(self, moderation, mock_bot, pending_question, monkeypatch):
        failing_log = AsyncMock(side_effect=OperationalError("INSERT INTO admin_actions", {}, Exception("disk I/O error")))
        monkeypatch.setattr(admin_crud, "log_admin_action", failing_log)

        question = await moderation.approve(pending_question.id, ADMIN_ID)

        assert question.channel_message_id == 777
        assert len(channel_posts(mock_bot)) == 1
        notified = [c for c in mock_bot.send_message.await_args_list if c.kwargs.get("chat_id") == ASKER_ID]
        assert len(notified) == 1
        failing_log.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_republish_pending_question(self, moderation, pending_question):
        with pytest.raises(InvalidState):
            await moderation.republish(pending_question.id, ADMIN_ID)


class TestDecline:
    """Тесты отклонения."""

    @pytest.mark.asyncio
    async def test_decline(self, moderation, mock_bot, pending_question):
        question = await moderation.decline(pending_question.id, ADMIN_ID)

        assert question.status == STATUS_DECLINED
        assert channel_posts(mock_bot) == []

        with pytest.raises(InvalidState):
            await moderation.approve(pending_question.id, ADMIN_ID)

    @pytest.mark.asyncio
    async def test_notification_failure_ignored(self, moderation, mock_bot, pending_question):
        mock_bot.send_message.side_effect = TelegramForbiddenError(
            method=MagicMock(), message="Forbidden: bot was blocked by the user"
        )

        question = await moderation.decline(pending_question.id, ADMIN_ID)
        assert question.status == STATUS_DECLINED


class TestAnswers:
    """Тесты ответов и обновления поста."""

    @pytest.mark.asyncio
    async def test_answer_refreshes_channel_keyboard(self, moderation, mock_bot, pending_question):
        await moderation.approve(pending_question.id, ADMIN_ID)

        answer = await moderation.append_answer(
            pending_question.id, ANSWERER_ID, "helper", ContentPayload.text("Light energy turns CO2 and water into glucose")
        )
        await moderation.wait_pending()

        assert answer.position == 0
        mock_bot.edit_message_reply_markup.assert_awaited_once()
        kwargs = mock_bot.edit_message_reply_markup.await_args.kwargs
        assert kwargs["chat_id"] == CHANNEL
        assert kwargs["message_id"] == 777
        assert kwargs["reply_markup"].inline_keyboard[0][1].text == "👁️ View Answers (1)"

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_end_with_latest_count(self, moderation, mock_bot, pending_question):
        await moderation.approve(pending_question.id, ADMIN_ID)

        calls = 0

        async def slow_first_me():
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(0.3)
            return SimpleNamespace(username=BOT_USERNAME, id=42)

        mock_bot.me = AsyncMock(side_effect=slow_first_me)

        await moderation.append_answer(pending_question.id, ANSWERER_ID, None, ContentPayload.text("Answer one"))
        await moderation.append_answer(pending_question.id, ANSWERER_ID + 1, None, ContentPayload.text("Answer two"))
        await moderation.wait_pending()

        labels = [
            c.kwargs["reply_markup"].inline_keyboard[0][1].text
            for c in mock_bot.edit_message_reply_markup.await_args_list
        ]
        assert labels[-1] == "👁️ View Answers (2)"
        assert await crud.count_answers(pending_question.id) == 2
        assert moderation._refresh_locks == {}

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_answer(self, moderation, mock_bot, pending_question):
        await moderation.approve(pending_question.id, ADMIN_ID)
        mock_bot.edit_message_reply_markup.side_effect = bad_request("Bad Request: message to edit not found")

        await moderation.append_answer(pending_question.id, ANSWERER_ID, None, ContentPayload.text("Answer one"))
        await moderation.wait_pending()

        assert await crud.count_answers(pending_question.id) == 1

    @pytest.mark.asyncio
    async def test_not_modified_is_success(self, moderation, mock_bot, pending_question):
        await moderation.approve(pending_question.id, ADMIN_ID)
        mock_bot.edit_message_reply_markup.side_effect = bad_request(
            "Bad Request: message is not modified"
        )

        assert await moderation.refresh_channel_keyboard(pending_question.id)

    @pytest.mark.asyncio
    async def test_refresh_without_post(self, moderation, mock_bot, pending_question):
        assert not await moderation.refresh_channel_keyboard(pending_question.id)
        mock_bot.edit_message_reply_markup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_error_raised(self, moderation, mock_bot, pending_question):
        await moderation.approve(pending_question.id, ADMIN_ID)
        mock_bot.edit_message_reply_markup.side_effect = bad_request("Bad Request: chat not found")

        with pytest.raises(ExternalPublishFailure):
            await moderation.refresh_channel_keyboard(pending_question.id)

    @pytest.mark.asyncio
    async def test_answer_to_pending_question(self, moderation, pending_question):
        with pytest.raises(InvalidState):
            await moderation.append_answer(pending_question.id, ANSWERER_ID, None, ContentPayload.text("Early"))

    @pytest.mark.asyncio
    async def test_reaction_and_reply(self, moderation, pending_question):
        await moderation.approve(pending_question.id, ADMIN_ID)
        await moderation.append_answer(pending_question.id, ANSWERER_ID, None, ContentPayload.text("Answer"))

        assert await moderation.record_reaction(pending_question.id, 0, "wrong") == (0, 1)
        reply = await moderation.append_reply(pending_question.id, 0, ASKER_ID, "kid", ContentPayload.text("Why?"))
        assert reply.content == "Why?"

        with pytest.raises(ValidationFailure):
            await moderation.record_reaction(pending_question.id, 0, "meh")
        with pytest.raises(ValidationFailure):
            await moderation.append_reply(pending_question.id, 3, ASKER_ID, None, ContentPayload.text("Hmm"))


class TestNotifications:
    """Тесты уведомлений и рассылки."""

    @pytest.mark.asyncio
    async def test_notify_admins(self, moderation, mock_bot, pending_question):
        delivered = await moderation.notify_admins_of_new_question(pending_question)

        assert delivered == 1
        kwargs = mock_bot.send_message.await_args.kwargs
        assert kwargs["chat_id"] == ADMIN_ID
        callbacks = [button.callback_data for button in kwargs["reply_markup"].inline_keyboard[0]]
        assert callbacks == [f"approve_{pending_question.id}", f"decline_{pending_question.id}"]

    @pytest.mark.asyncio
    async def test_broadcast_counts_failures(self, moderation, mock_bot, pending_question):
        await crud.upsert_user(ASKER_ID)
        await crud.upsert_user(ANSWERER_ID)

        async def send_message(chat_id, text, **kwargs):
            if chat_id == ANSWERER_ID:
                raise TelegramForbiddenError(method=MagicMock(), message="Forbidden: bot was blocked by the user")
            return SimpleNamespace(message_id=1)

        mock_bot.send_message = AsyncMock(side_effect=send_message)

        result = await moderation.broadcast("Exams next week!", ADMIN_ID)

        assert (result.total, result.success, result.failed) == (3, 2, 1)

    @pytest.mark.asyncio
    async def test_broadcast_requires_admin(self, moderation, pending_question):
        with pytest.raises(Unauthorized):
            await moderation.broadcast("Hello", ASKER_ID)

    @pytest.mark.asyncio
    async def test_broadcast_empty_text(self, moderation, pending_question):
        with pytest.raises(ValidationFailure):
            await moderation.broadcast("   ", ADMIN_ID)
