"""
Тесты обработчиков диалога: вопрос, ответ, реплика, deep link.

Обработчики вызываются напрямую: сессия - FSMContext поверх
MemoryStorage, Message и CallbackQuery - моки, база - временная SQLite.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from bot.handlers import answers, questions, start
from bot.session import ConversationSession
from bot.states import QAStates
from core.callbacks import GRADE_PATTERN, answer_action_data, answer_data, grade_data
from core.content import ContentPayload
from core.moderation import ModerationService
from database import admin_crud, crud
from database.crud import ANSWER_NOT_FOUND_MESSAGE
from database.models import STATUS_APPROVED, STATUS_PENDING
from templates.message_templates import (
    ANSWER_DRAFT_MISSING,
    COMMAND_NOT_CONTENT,
    EDIT_ANSWER_PROMPT,
    NO_ANSWERS,
    OWN_CONTACT_ONLY,
    QUESTION_SUBMITTED,
    QUESTION_TOO_SHORT,
    REPLY_SUBMITTED,
    SELECT_GRADE,
    SETUP_COMPLETE,
    SETUP_COMPLETE_VIEW,
)


ADMIN_ID = 1000
ASKER_ID = 2000
ANSWERER_ID = 3000


def make_state(user_id: int) -> FSMContext:
    key = StorageKey(bot_id=42, chat_id=user_id, user_id=user_id)
    return FSMContext(storage=MemoryStorage(), key=key)


def make_message(text=None, user_id: int = ASKER_ID, contact=None):
    message = MagicMock()
    message.text = text
    message.voice = None
    message.photo = None
    message.video = None
    message.audio = None
    message.document = None
    message.contact = contact
    message.from_user = SimpleNamespace(id=user_id, username="student", first_name="Student")
    message.chat = SimpleNamespace(id=user_id)
    message.answer = AsyncMock()
    return message


def make_callback(data: str, user_id: int):
    callback = MagicMock()
    callback.data = data
    callback.from_user = SimpleNamespace(id=user_id, username="student", first_name="Student")
    callback.answer = AsyncMock()
    callback.message = MagicMock()
    callback.message.answer = AsyncMock()
    callback.message.edit_text = AsyncMock()
    return callback


def answered_texts(message) -> list:
    return [c.args[0] if c.args else c.kwargs.get("text") for c in message.answer.await_args_list]


def sent_texts(bot, chat_id: int) -> list:
    return [c.kwargs["text"] for c in bot.send_message.await_args_list if c.kwargs.get("chat_id") == chat_id]


@pytest.fixture
def moderation(mock_bot, test_config):
    return ModerationService(mock_bot, test_config)


@pytest_asyncio.fixture
async def approved_question(db):
    question = await crud.create_question(ASKER_ID, ContentPayload.text("What is photosynthesis?"), grade_level="grade8")
    return await crud.set_question_status(question.id, STATUS_APPROVED, ADMIN_ID)


class TestQuestionHandlers:
    """Ввод вопроса и выбор уровня."""

    @pytest.mark.asyncio
    async def test_short_question_keeps_state(self, db):
        state = make_state(ASKER_ID)
        await ConversationSession(state).begin_question()

        message = make_message("abcd")
        await questions.process_question_content(message, state)

        assert answered_texts(message) == [QUESTION_TOO_SHORT]
        assert await state.get_state() == QAStates.awaiting_question.state
        assert await crud.get_user_questions(ASKER_ID) == []

    @pytest.mark.asyncio
    async def test_command_text_rejected(self, db):
        state = make_state(ASKER_ID)
        await ConversationSession(state).begin_question()

        message = make_message("/foo")
        await questions.process_question_content(message, state)

        assert answered_texts(message) == [COMMAND_NOT_CONTENT]
        assert await state.get_state() == QAStates.awaiting_question.state

    @pytest.mark.asyncio
    async def test_grade_creates_pending_question(self, db, moderation, mock_bot):
        await admin_crud.seed_admins([ADMIN_ID])
        state = make_state(ASKER_ID)
        await ConversationSession(state).begin_question()

        message = make_message("How do plants make food?")
        await questions.process_question_content(message, state)

        assert answered_texts(message) == [SELECT_GRADE]
        assert await state.get_state() == QAStates.awaiting_grade.state

        callback = make_callback(grade_data("grade8"), ASKER_ID)
        match = GRADE_PATTERN.match(callback.data)
        await questions.callback_grade(callback, state, match, moderation)

        assert await state.get_state() is None
        callback.message.edit_text.assert_awaited_once_with(QUESTION_SUBMITTED)

        stored = await crud.get_user_questions(ASKER_ID)
        assert len(stored) == 1
        assert stored[0].status == STATUS_PENDING
        assert stored[0].grade_level == "grade8"
        assert stored[0].content == "How do plants make food?"

        # Админ получил уведомление с ID вопроса
        admin_texts = sent_texts(mock_bot, ADMIN_ID)
        assert len(admin_texts) == 1
        assert stored[0].id in admin_texts[0]

    @pytest.mark.asyncio
    async def test_unknown_grade_resets(self, db, moderation):
        state = make_state(ASKER_ID)
        await ConversationSession(state).store_question_draft(ContentPayload.text("How do plants make food?"))

        callback = make_callback(grade_data("grade99"), ASKER_ID)
        await questions.callback_grade(callback, state, GRADE_PATTERN.match(callback.data), moderation)

        assert await state.get_state() is None
        assert await crud.get_user_questions(ASKER_ID) == []


class TestAnswerHandlers:
    """Черновик ответа, правка и подтверждение."""

    @pytest.mark.asyncio
    async def test_confirm_appends_answer(self, approved_question, moderation, mock_bot):
        state = make_state(ANSWERER_ID)

        callback = make_callback(answer_data(approved_question.id), ANSWERER_ID)
        await answers.callback_answer(callback, state, mock_bot)
        assert await state.get_state() == QAStates.awaiting_answer.state

        await answers.process_answer_content(make_message("Plants use sunlight", ANSWERER_ID), state)
        context = await ConversationSession(state).answer_context()
        assert context.confirming is True
        assert context.draft.content == "Plants use sunlight"

        confirm = make_message("✅ Yes", ANSWERER_ID)
        await answers.confirm_answer(confirm, state, moderation)
        await moderation.wait_pending()

        assert await state.get_state() is None
        assert await crud.count_answers(approved_question.id) == 1

    @pytest.mark.asyncio
    async def test_edit_clears_confirming(self, approved_question, mock_bot):
        state = make_state(ANSWERER_ID)
        await ConversationSession(state).begin_answer(approved_question.id, is_author=False)
        await answers.process_answer_content(make_message("Plants use sunlight", ANSWERER_ID), state)

        message = make_message("✏️ Edit", ANSWERER_ID)
        await answers.edit_answer(message, state)

        context = await ConversationSession(state).answer_context()
        assert context.confirming is False
        assert context.draft is None
        assert await state.get_state() == QAStates.awaiting_answer.state
        assert answered_texts(message) == [EDIT_ANSWER_PROMPT]

    @pytest.mark.asyncio
    async def test_confirm_without_draft(self, approved_question, moderation):
        state = make_state(ANSWERER_ID)
        await ConversationSession(state).begin_answer(approved_question.id, is_author=False)

        message = make_message("✅ Yes", ANSWERER_ID)
        await answers.confirm_answer(message, state, moderation)

        assert answered_texts(message) == [ANSWER_DRAFT_MISSING]
        assert await state.get_state() == QAStates.awaiting_answer.state
        assert await crud.count_answers(approved_question.id) == 0

    @pytest.mark.asyncio
    async def test_answer_to_pending_question_rejected(self, db, mock_bot):
        question = await crud.create_question(ASKER_ID, ContentPayload.text("Pending one"), grade_level="grade8")
        state = make_state(ANSWERER_ID)

        await answers.callback_answer(make_callback(answer_data(question.id), ANSWERER_ID), state, mock_bot)

        assert await state.get_state() is None
        assert sent_texts(mock_bot, ANSWERER_ID) == [crud.NOT_APPROVED_MESSAGE]


class TestReplyHandlers:
    """Реплики к ответам."""

    @pytest_asyncio.fixture
    async def answered_question(self, approved_question):
        await crud.append_answer(
            approved_question.id,
            user_id=ANSWERER_ID,
            username=None,
            payload=ContentPayload.text("Plants use sunlight"),
        )
        return approved_question

    @pytest.mark.asyncio
    async def test_reply_saved(self, answered_question, moderation, mock_bot):
        state = make_state(ASKER_ID)

        callback = make_callback(answer_action_data("reply", answered_question.id, 0), ASKER_ID)
        await answers.callback_answer_action(callback, state, mock_bot, moderation)
        assert await state.get_state() == QAStates.awaiting_reply.state

        message = make_message("Thanks, that helps", ASKER_ID)
        await answers.process_reply_content(message, state, moderation)

        assert answered_texts(message) == [REPLY_SUBMITTED]
        assert await state.get_state() is None

        stored = await crud.get_question(answered_question.id, with_answers=True)
        assert len(stored.answers[0].replies) == 1

    @pytest.mark.asyncio
    async def test_reply_button_out_of_range(self, answered_question, moderation, mock_bot):
        state = make_state(ASKER_ID)

        callback = make_callback(answer_action_data("reply", answered_question.id, 5), ASKER_ID)
        await answers.callback_answer_action(callback, state, mock_bot, moderation)

        callback.answer.assert_awaited_once_with(ANSWER_NOT_FOUND_MESSAGE, show_alert=True)
        assert await state.get_state() is None

    @pytest.mark.asyncio
    async def test_reply_to_missing_index_resets(self, answered_question, moderation):
        state = make_state(ASKER_ID)
        await ConversationSession(state).begin_reply(answered_question.id, 5)

        message = make_message("Thanks, that helps", ASKER_ID)
        await answers.process_reply_content(message, state, moderation)

        assert answered_texts(message) == [ANSWER_NOT_FOUND_MESSAGE]
        assert await state.get_state() is None


class TestDeepLinkHandlers:
    """Отложенный deep link и завершение онбординга."""

    @pytest.mark.asyncio
    async def test_deep_link_runs_once_after_contact(self, approved_question, mock_bot):
        await crud.upsert_user(ASKER_ID, username="student")
        state = make_state(ASKER_ID)
        user = SimpleNamespace(onboarding_completed=False, is_admin=False)

        await start.cmd_start(
            make_message(f"/start view_{approved_question.id}"),
            state,
            mock_bot,
            user,
            SimpleNamespace(args=f"view_{approved_question.id}"),
        )

        # До контакта ответы не показываются
        assert sent_texts(mock_bot, ASKER_ID) == []

        contact = SimpleNamespace(user_id=ASKER_ID, phone_number="+10000000000")
        first = make_message(contact=contact)
        await start.process_contact(first, state, mock_bot)

        assert answered_texts(first) == [SETUP_COMPLETE_VIEW]
        assert sent_texts(mock_bot, ASKER_ID).count(NO_ANSWERS) == 1
        assert (await crud.get_user(ASKER_ID)).onboarding_completed is True

        second = make_message(contact=contact)
        await start.process_contact(second, state, mock_bot)

        assert answered_texts(second) == [SETUP_COMPLETE]
        assert sent_texts(mock_bot, ASKER_ID).count(NO_ANSWERS) == 1

    @pytest.mark.asyncio
    async def test_answer_link_opens_answer_flow(self, approved_question, mock_bot):
        await crud.upsert_user(ANSWERER_ID)
        state = make_state(ANSWERER_ID)
        user = SimpleNamespace(onboarding_completed=False, is_admin=False)

        await start.cmd_start(
            make_message(f"/start answer_{approved_question.id}", ANSWERER_ID),
            state,
            mock_bot,
            user,
            SimpleNamespace(args=f"answer_{approved_question.id}"),
        )

        contact = SimpleNamespace(user_id=ANSWERER_ID, phone_number="+10000000001")
        await start.process_contact(make_message(user_id=ANSWERER_ID, contact=contact), state, mock_bot)

        assert await state.get_state() == QAStates.awaiting_answer.state
        context = await ConversationSession(state).answer_context()
        assert context.question_id == approved_question.id
        assert await ConversationSession(state).pop_deep_link() is None

    @pytest.mark.asyncio
    async def test_foreign_contact_keeps_link(self, approved_question, mock_bot):
        await crud.upsert_user(ASKER_ID)
        state = make_state(ASKER_ID)
        user = SimpleNamespace(onboarding_completed=False, is_admin=False)

        await start.cmd_start(
            make_message(f"/start view_{approved_question.id}"),
            state,
            mock_bot,
            user,
            SimpleNamespace(args=f"view_{approved_question.id}"),
        )

        message = make_message(contact=SimpleNamespace(user_id=9999, phone_number="+19999999999"))
        await start.process_contact(message, state, mock_bot)

        assert answered_texts(message) == [OWN_CONTACT_ONLY]
        assert (await crud.get_user(ASKER_ID)).onboarding_completed is False
        link = await ConversationSession(state).pop_deep_link()
        assert link is not None
        assert link.question_id == approved_question.id
