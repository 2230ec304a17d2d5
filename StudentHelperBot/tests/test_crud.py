"""
Тесты CRUD операций на временной SQLite базе.

Проверяются правила хранения: ответы только добавляются,
позиции не переиспользуются, счётчики реакций растут,
статус вопроса меняется один раз.
"""

import asyncio

import pytest

from core.content import ContentPayload, MediaType
from core.exceptions import InvalidState, NotFound, ValidationFailure
from database import admin_crud, crud
from database.models import STATUS_APPROVED, STATUS_DECLINED, STATUS_PENDING


ADMIN_ID = 1000
ASKER_ID = 2000
ANSWERER_ID = 3000
MISSING_ID = "ffffffffffffffffffffffff"


async def create_question(text: str = "What is photosynthesis?"):
    return await crud.create_question(ASKER_ID, ContentPayload.text(text), grade_level="grade9")


async def create_approved_question(text: str = "What is photosynthesis?"):
    question = await create_question(text)
    return await crud.set_question_status(question.id, STATUS_APPROVED, ADMIN_ID)


class TestUsers:
    """Тесты пользователей."""

    @pytest.mark.asyncio
    async def test_upsert_creates_then_updates(self, db):
        user, created = await crud.upsert_user(ASKER_ID, username="kid", first_name="Kid")
        assert created
        assert not user.onboarding_completed

        user, created = await crud.upsert_user(ASKER_ID, username="kid_renamed")
        assert not created
        assert user.username == "kid_renamed"
        assert user.first_name == "Kid"

    @pytest.mark.asyncio
    async def test_onboarding(self, db):
        await crud.upsert_user(ASKER_ID)
        assert await crud.mark_subscribed(ASKER_ID)
        assert await crud.complete_onboarding(ASKER_ID, "+10000000000")

        user = await crud.get_user(ASKER_ID)
        assert user.has_subscribed_to_channel
        assert user.has_shared_contact
        assert user.onboarding_completed
        assert user.phone_number == "+10000000000"

    @pytest.mark.asyncio
    async def test_onboarding_unknown_user(self, db):
        assert not await crud.complete_onboarding(999, "+1")

    @pytest.mark.asyncio
    async def test_all_user_ids_skip_banned(self, db):
        await crud.upsert_user(ASKER_ID)
        await crud.upsert_user(ANSWERER_ID)
        await admin_crud.ban_user(ANSWERER_ID, "spam", banned_by=ADMIN_ID)

        assert await crud.get_all_user_ids() == [ASKER_ID]
        assert await crud.get_all_user_ids(include_banned=True) == [ASKER_ID, ANSWERER_ID]


class TestQuestions:
    """Тесты вопросов и смены статуса."""

    @pytest.mark.asyncio
    async def test_create_pending(self, db):
        question = await create_question()

        assert len(question.id) == 24
        assert question.status == STATUS_PENDING
        assert question.channel_message_id is None

        pending = await crud.list_pending_questions()
        assert [q.id for q in pending] == [question.id]

    @pytest.mark.asyncio
    async def test_create_media_question(self, db):
        payload = ContentPayload.media(MediaType.PHOTO, "photo-file", caption="Help with this graph")
        question = await crud.create_question(ASKER_ID, payload, grade_level="grade10")

        stored = await crud.get_question(question.id)
        assert stored.media_type == "photo"
        assert stored.media_id == "photo-file"
        assert stored.content == "Help with this graph"

    @pytest.mark.asyncio
    async def test_approve(self, db):
        question = await create_approved_question()
        assert question.status == STATUS_APPROVED
        assert question.approved_by == ADMIN_ID
        assert question.approved_at is not None

    @pytest.mark.asyncio
    async def test_status_changes_once(self, db):
        question = await create_question()
        await crud.set_question_status(question.id, STATUS_DECLINED, ADMIN_ID)

        with pytest.raises(InvalidState):
            await crud.set_question_status(question.id, STATUS_APPROVED, ADMIN_ID)

        stored = await crud.get_question(question.id)
        assert stored.status == STATUS_DECLINED

    @pytest.mark.asyncio
    async def test_concurrent_approvals_single_winner(self, db):
        question = await create_question()

        results = await asyncio.gather(
            crud.set_question_status(question.id, STATUS_APPROVED, ADMIN_ID),
            crud.set_question_status(question.id, STATUS_APPROVED, ADMIN_ID),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, InvalidState)) == 1
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1

    @pytest.mark.asyncio
    async def test_status_missing_question(self, db):
        with pytest.raises(NotFound):
            await crud.set_question_status(MISSING_ID, STATUS_APPROVED, ADMIN_ID)

    @pytest.mark.asyncio
    async def test_pending_is_not_a_valid_target(self, db):
        question = await create_question()
        with pytest.raises(ValueError):
            await crud.set_question_status(question.id, STATUS_PENDING, ADMIN_ID)

    @pytest.mark.asyncio
    async def test_channel_message_id_set_once(self, db):
        question = await create_approved_question()

        assert await crud.set_channel_message_id(question.id, 10)
        assert not await crud.set_channel_message_id(question.id, 11)

        stored = await crud.get_question(question.id)
        assert stored.channel_message_id == 10

    @pytest.mark.asyncio
    async def test_user_questions_newest_first(self, db):
        first = await create_question("First question")
        second = await create_question("Second question")
        await crud.create_question(ANSWERER_ID, ContentPayload.text("Not mine"), grade_level="grade7")

        questions = await crud.get_user_questions(ASKER_ID)
        assert {q.id for q in questions} == {first.id, second.id}


class TestAnswers:
    """Тесты ответов, реплик и реакций."""

    @pytest.mark.asyncio
    async def test_append_positions(self, db):
        question = await create_approved_question()

        first = await crud.append_answer(question.id, ANSWERER_ID, "helper", ContentPayload.text("Light to sugar"))
        second = await crud.append_answer(
            question.id, ASKER_ID, "kid", ContentPayload.text("I mean in plants"), is_author_update=True
        )

        assert (first.position, second.position) == (0, 1)
        assert await crud.count_answers(question.id) == 2

        stored = await crud.get_question(question.id, with_answers=True)
        assert [a.position for a in stored.answers] == [0, 1]
        assert [a.position for a in stored.author_updates()] == [1]
        assert [a.position for a in stored.regular_answers()] == [0]
        assert stored.answer_at(0).content == "Light to sugar"
        assert stored.answer_at(5) is None

    @pytest.mark.asyncio
    async def test_concurrent_appends_get_distinct_positions(self, db):
        question = await create_approved_question()

        answers = await asyncio.gather(
            crud.append_answer(question.id, ANSWERER_ID, None, ContentPayload.text("Answer A")),
            crud.append_answer(question.id, ANSWERER_ID + 1, None, ContentPayload.text("Answer B")),
        )

        assert sorted(a.position for a in answers) == [0, 1]
        assert await crud.count_answers(question.id) == 2

    @pytest.mark.asyncio
    async def test_append_to_pending_question(self, db):
        question = await create_question()
        with pytest.raises(InvalidState):
            await crud.append_answer(question.id, ANSWERER_ID, None, ContentPayload.text("Too early"))
        assert await crud.count_answers(question.id) == 0

    @pytest.mark.asyncio
    async def test_append_to_missing_question(self, db):
        with pytest.raises(NotFound):
            await crud.append_answer(MISSING_ID, ANSWERER_ID, None, ContentPayload.text("Hello"))

    @pytest.mark.asyncio
    async def test_reactions_only_grow(self, db):
        question = await create_approved_question()
        await crud.append_answer(question.id, ANSWERER_ID, None, ContentPayload.text("Answer"))

        assert await crud.record_reaction(question.id, 0, "right") == (1, 0)
        assert await crud.record_reaction(question.id, 0, "right") == (2, 0)
        assert await crud.record_reaction(question.id, 0, "wrong") == (2, 1)

        answer = await crud.get_answer(question.id, 0)
        assert (answer.right_count, answer.wrong_count) == (2, 1)

    @pytest.mark.asyncio
    async def test_concurrent_reactions(self, db):
        question = await create_approved_question()
        await crud.append_answer(question.id, ANSWERER_ID, None, ContentPayload.text("Answer"))

        await asyncio.gather(*(crud.record_reaction(question.id, 0, "right") for _ in range(5)))

        answer = await crud.get_answer(question.id, 0)
        assert answer.right_count == 5

    @pytest.mark.asyncio
    async def test_reaction_index_out_of_range(self, db):
        question = await create_approved_question()
        await crud.append_answer(question.id, ANSWERER_ID, None, ContentPayload.text("Answer"))

        with pytest.raises(ValidationFailure):
            await crud.record_reaction(question.id, 1, "right")
        with pytest.raises(ValidationFailure):
            await crud.record_reaction(question.id, -1, "right")

    @pytest.mark.asyncio
    async def test_unknown_reaction(self, db):
        question = await create_approved_question()
        await crud.append_answer(question.id, ANSWERER_ID, None, ContentPayload.text("Answer"))

        with pytest.raises(ValidationFailure):
            await crud.record_reaction(question.id, 0, "love")

    @pytest.mark.asyncio
    async def test_reply(self, db):
        question = await create_approved_question()
        await crud.append_answer(question.id, ANSWERER_ID, None, ContentPayload.text("Answer"))

        reply = await crud.append_reply(question.id, 0, ASKER_ID, "kid", ContentPayload.text("Thanks!"))
        assert reply.content == "Thanks!"

        stored = await crud.get_question(question.id, with_answers=True)
        assert [r.content for r in stored.answers[0].replies] == ["Thanks!"]

    @pytest.mark.asyncio
    async def test_reply_to_missing_answer(self, db):
        question = await create_approved_question()
        with pytest.raises(ValidationFailure):
            await crud.append_reply(question.id, 0, ASKER_ID, None, ContentPayload.text("Thanks!"))

    @pytest.mark.asyncio
    async def test_stats(self, db):
        await crud.upsert_user(ASKER_ID)
        question = await create_approved_question()
        await create_question("Another question")
        await crud.append_answer(question.id, ANSWERER_ID, None, ContentPayload.text("Answer"))

        stats = await crud.get_stats()
        assert stats["total_users"] == 1
        assert stats["total_questions"] == 2
        assert stats["approved_questions"] == 1
        assert stats["pending_questions"] == 1
        assert stats["total_answers"] == 1


class TestAdmins:
    """Тесты администраторов."""

    @pytest.mark.asyncio
    async def test_seed_admins(self, db):
        assert await admin_crud.seed_admins([ADMIN_ID]) == 1
        assert await admin_crud.seed_admins([ADMIN_ID]) == 0

        assert await admin_crud.is_admin(ADMIN_ID)
        assert await admin_crud.get_admin_ids() == [ADMIN_ID]

        admin = (await admin_crud.list_admins())[0]
        assert admin.admin_role == "super"
        assert admin.has_permission("manage_users")

    @pytest.mark.asyncio
    async def test_make_and_remove_admin(self, db):
        await crud.upsert_user(ANSWERER_ID)

        user = await admin_crud.make_admin(ANSWERER_ID, "content", added_by=ADMIN_ID)
        assert user.is_admin
        assert user.has_permission("approve_content")
        assert not user.has_permission("manage_users")

        await admin_crud.remove_admin(ANSWERER_ID, removed_by=ADMIN_ID)
        assert not await admin_crud.is_admin(ANSWERER_ID)

    @pytest.mark.asyncio
    async def test_unknown_user(self, db):
        with pytest.raises(NotFound):
            await admin_crud.make_admin(999, "content", added_by=ADMIN_ID)

    @pytest.mark.asyncio
    async def test_ban_and_unban(self, db):
        await crud.upsert_user(ANSWERER_ID)

        await admin_crud.ban_user(ANSWERER_ID, "spam", banned_by=ADMIN_ID)
        user = await crud.get_user(ANSWERER_ID)
        assert user.is_banned
        assert user.ban_reason == "spam"

        await admin_crud.unban_user(ANSWERER_ID, unbanned_by=ADMIN_ID)
        user = await crud.get_user(ANSWERER_ID)
        assert not user.is_banned

    @pytest.mark.asyncio
    async def test_actions_logged(self, db):
        await crud.upsert_user(ANSWERER_ID)
        await admin_crud.ban_user(ANSWERER_ID, "spam", banned_by=ADMIN_ID)

        actions = await admin_crud.get_admin_actions()
        assert [a.action_type for a in actions] == ["ban"]
