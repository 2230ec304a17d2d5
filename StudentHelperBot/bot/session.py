"""
Сессия диалога поверх FSMContext.

ConversationSession скрывает ключи data FSM за типизированными
методами, чтобы обработчики не работали со словарём напрямую.
Хранилище FSM привязано к (bot, chat, user), поэтому сессия одного
пользователя не пересекается с сессиями других.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from aiogram.fsm.context import FSMContext

from bot.states import QAStates
from core.callbacks import DeepLink, is_valid_question_id
from core.content import ContentPayload
from core.exceptions import InvalidState


# Ключи data FSM
QUESTION_DRAFT = "question_draft"
QUESTION_ID = "question_id"
IS_AUTHOR_ANSWER = "is_author_answer"
ANSWER_DRAFT = "answer_draft"
CONFIRMING_ANSWER = "confirming_answer"
ANSWER_INDEX = "answer_index"
DEEP_LINK = "deep_link"

SESSION_LOST_MESSAGE = "❌ Session error. Please start again."


@dataclass(frozen=True)
class QuestionDraft:
    """Черновик вопроса до выбора уровня обучения."""

    payload: ContentPayload
    username: Optional[str] = None
    first_name: Optional[str] = None


@dataclass(frozen=True)
class AnswerContext:
    """Состояние ответа: на какой вопрос, от автора ли, черновик."""

    question_id: str
    is_author: bool
    draft: Optional[ContentPayload]
    confirming: bool


@dataclass(frozen=True)
class ReplyTarget:
    question_id: str
    answer_index: int


class ConversationSession:
    """
    Типизированная обёртка над FSMContext.

    Все переходы начинаются с очистки данных прошлого флоу,
    кроме отложенного deep link, который живёт до первого использования.
    """

    def __init__(self, state: FSMContext):
        self.state = state

    async def current(self) -> Optional[str]:
        return await self.state.get_state()

    async def _data(self) -> Dict[str, Any]:
        return await self.state.get_data()

    async def _start(self, new_state, **values: Any) -> None:
        """Перейти в новое состояние, сохранив только deep link."""
        data = await self._data()
        fresh = dict(values)
        if data.get(DEEP_LINK) is not None:
            fresh[DEEP_LINK] = data[DEEP_LINK]
        await self.state.set_data(fresh)
        await self.state.set_state(new_state)

    async def reset(self) -> None:
        """Вернуться в idle, удалив все данные."""
        await self.state.clear()

    # ==================== ВОПРОС ====================

    async def begin_question(self) -> None:
        await self._start(QAStates.awaiting_question)

    async def store_question_draft(
        self,
        payload: ContentPayload,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
    ) -> None:
        """Сохранить черновик и перейти к выбору уровня."""
        await self._start(
            QAStates.awaiting_grade,
            **{
                QUESTION_DRAFT: {
                    "payload": payload.to_dict(),
                    "username": username,
                    "first_name": first_name,
                }
            },
        )

    async def question_draft(self) -> QuestionDraft:
        """
        Черновик вопроса.

        Raises:
            InvalidState: Черновика нет (сессия потеряна)
        """
        draft = (await self._data()).get(QUESTION_DRAFT)
        if not draft or not draft.get("payload"):
            raise InvalidState(SESSION_LOST_MESSAGE)
        return QuestionDraft(
            payload=ContentPayload.from_dict(draft["payload"]),
            username=draft.get("username"),
            first_name=draft.get("first_name"),
        )

    # ==================== ОТВЕТ ====================

    async def begin_answer(self, question_id: str, is_author: bool) -> None:
        await self._start(
            QAStates.awaiting_answer,
            **{
                QUESTION_ID: question_id,
                IS_AUTHOR_ANSWER: is_author,
                ANSWER_DRAFT: None,
                CONFIRMING_ANSWER: False,
            },
        )

    async def answer_context(self) -> AnswerContext:
        """
        Текущий ответ.

        Raises:
            InvalidState: В сессии нет вопроса
        """
        data = await self._data()
        question_id = data.get(QUESTION_ID)
        if not is_valid_question_id(question_id):
            raise InvalidState("❌ Question reference lost. Please try answering the question again.")

        draft = data.get(ANSWER_DRAFT)
        return AnswerContext(
            question_id=question_id,
            is_author=bool(data.get(IS_AUTHOR_ANSWER)),
            draft=ContentPayload.from_dict(draft) if draft else None,
            confirming=bool(data.get(CONFIRMING_ANSWER)),
        )

    async def store_answer_draft(self, payload: ContentPayload) -> None:
        """Сохранить черновик ответа и ждать подтверждения."""
        await self.state.update_data(
            **{ANSWER_DRAFT: payload.to_dict(), CONFIRMING_ANSWER: True}
        )

    async def edit_answer(self) -> None:
        """Отказаться от черновика и ждать новый ответ."""
        await self.state.update_data(**{ANSWER_DRAFT: None, CONFIRMING_ANSWER: False})

    # ==================== РЕПЛИКА ====================

    async def begin_reply(self, question_id: str, answer_index: int) -> None:
        await self._start(
            QAStates.awaiting_reply,
            **{QUESTION_ID: question_id, ANSWER_INDEX: answer_index},
        )

    async def reply_target(self) -> ReplyTarget:
        """
        Ответ, к которому пишется реплика.

        Raises:
            InvalidState: Цель реплики потеряна
        """
        data = await self._data()
        question_id = data.get(QUESTION_ID)
        answer_index = data.get(ANSWER_INDEX)
        if not is_valid_question_id(question_id) or not isinstance(answer_index, int):
            raise InvalidState("❌ Reply target lost. Please try replying again.")
        return ReplyTarget(question_id=question_id, answer_index=answer_index)

    # ==================== DEEP LINK ====================

    async def remember_deep_link(self, link: DeepLink) -> None:
        await self.state.update_data(**{DEEP_LINK: link.to_dict()})

    async def pop_deep_link(self) -> Optional[DeepLink]:
        """Забрать отложенный deep link (после этого он удаляется)."""
        data = await self._data()
        raw = data.get(DEEP_LINK)
        if raw is None:
            return None
        await self.state.update_data(**{DEEP_LINK: None})
        return DeepLink.from_dict(raw)
