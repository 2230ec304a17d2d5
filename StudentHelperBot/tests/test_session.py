"""
Тесты для ConversationSession.

Сессия хранится в MemoryStorage aiogram, как в работающем боте.
"""

import pytest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from bot.session import ConversationSession
from bot.states import QAStates
from core.callbacks import DeepLink
from core.content import ContentPayload, MediaType
from core.exceptions import InvalidState


QUESTION_ID = "65a1b2c3d4e5f60718293a4b"


def make_session(user_id: int = 1, storage: MemoryStorage = None) -> ConversationSession:
    storage = storage or MemoryStorage()
    key = StorageKey(bot_id=42, chat_id=user_id, user_id=user_id)
    return ConversationSession(FSMContext(storage=storage, key=key))


class TestQuestionFlow:
    """Тесты флоу вопроса."""

    @pytest.mark.asyncio
    async def test_begin_question(self):
        session = make_session()
        await session.begin_question()
        assert await session.current() == QAStates.awaiting_question.state

    @pytest.mark.asyncio
    async def test_store_and_read_draft(self):
        session = make_session()
        await session.begin_question()

        payload = ContentPayload.media(MediaType.PHOTO, "file", caption="Solve x")
        await session.store_question_draft(payload, username="kid", first_name="Kid")

        assert await session.current() == QAStates.awaiting_grade.state
        draft = await session.question_draft()
        assert draft.payload == payload
        assert draft.username == "kid"
        assert draft.first_name == "Kid"

    @pytest.mark.asyncio
    async def test_missing_draft(self):
        session = make_session()
        with pytest.raises(InvalidState):
            await session.question_draft()

    @pytest.mark.asyncio
    async def test_reset(self):
        session = make_session()
        await session.store_question_draft(ContentPayload.text("What is gravity?"))
        await session.reset()

        assert await session.current() is None
        with pytest.raises(InvalidState):
            await session.question_draft()


class TestAnswerFlow:
    """Тесты флоу ответа."""

    @pytest.mark.asyncio
    async def test_begin_answer(self):
        session = make_session()
        await session.begin_answer(QUESTION_ID, is_author=True)

        assert await session.current() == QAStates.awaiting_answer.state
        context = await session.answer_context()
        assert context.question_id == QUESTION_ID
        assert context.is_author is True
        assert context.draft is None
        assert context.confirming is False

    @pytest.mark.asyncio
    async def test_draft_and_edit(self):
        session = make_session()
        await session.begin_answer(QUESTION_ID, is_author=False)

        await session.store_answer_draft(ContentPayload.text("It is 4"))
        context = await session.answer_context()
        assert context.draft == ContentPayload.text("It is 4")
        assert context.confirming is True

        await session.edit_answer()
        context = await session.answer_context()
        assert context.draft is None
        assert context.confirming is False
        assert await session.current() == QAStates.awaiting_answer.state

    @pytest.mark.asyncio
    async def test_answer_context_without_question(self):
        session = make_session()
        await session.begin_question()
        with pytest.raises(InvalidState):
            await session.answer_context()

    @pytest.mark.asyncio
    async def test_new_flow_drops_old_data(self):
        session = make_session()
        await session.store_question_draft(ContentPayload.text("Old question"))
        await session.begin_answer(QUESTION_ID, is_author=False)

        with pytest.raises(InvalidState):
            await session.question_draft()


class TestReplyFlow:
    """Тесты флоу реплики."""

    @pytest.mark.asyncio
    async def test_reply_target(self):
        session = make_session()
        await session.begin_reply(QUESTION_ID, 2)

        assert await session.current() == QAStates.awaiting_reply.state
        target = await session.reply_target()
        assert target.question_id == QUESTION_ID
        assert target.answer_index == 2

    @pytest.mark.asyncio
    async def test_reply_target_lost(self):
        session = make_session()
        with pytest.raises(InvalidState):
            await session.reply_target()


class TestDeepLink:
    """Тесты отложенного deep link."""

    @pytest.mark.asyncio
    async def test_pop_once(self):
        session = make_session()
        link = DeepLink("view", QUESTION_ID)
        await session.remember_deep_link(link)

        assert await session.pop_deep_link() == link
        assert await session.pop_deep_link() is None

    @pytest.mark.asyncio
    async def test_survives_flow_change(self):
        session = make_session()
        link = DeepLink("answer", QUESTION_ID)
        await session.remember_deep_link(link)
        await session.begin_question()

        assert await session.pop_deep_link() == link

    @pytest.mark.asyncio
    async def test_reset_clears_link(self):
        session = make_session()
        await session.remember_deep_link(DeepLink("answer", QUESTION_ID))
        await session.reset()

        assert await session.pop_deep_link() is None


class TestIsolation:
    """Сессии разных пользователей не пересекаются."""

    @pytest.mark.asyncio
    async def test_users_do_not_share_state(self):
        storage = MemoryStorage()
        first = make_session(1, storage)
        second = make_session(2, storage)

        await first.begin_answer(QUESTION_ID, is_author=False)

        assert await second.current() is None
        with pytest.raises(InvalidState):
            await second.answer_context()
