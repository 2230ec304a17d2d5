"""
Обработчики вопросов.

Содержит:
- /ask и кнопку "Ask Question" - начало ввода вопроса
- Ввод вопроса (текст или медиа)
- Выбор уровня обучения (grade_<code>) и отмену (cancel_question)
- /cancel - отмену текущего действия
- /myquestions - список своих вопросов
"""

from aiogram import Bot, F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
import structlog

from bot.config import settings
from bot.keyboards import CB_MY_QUESTIONS, CB_START_ASKING, get_back_to_main_keyboard, get_grade_keyboard, get_remove_keyboard
from bot.session import ConversationSession
from bot.states import QAStates
from bot.utils import is_command, payload_from_message
from config.grades import is_valid_grade
from core.callbacks import CANCEL_QUESTION, GRADE_PATTERN
from core.content import validate_payload
from core.exceptions import QABotError, ValidationFailure
from core.moderation import ModerationService
from database import crud
from templates.message_templates import (
    ACTION_CANCELLED,
    COMMAND_NOT_CONTENT,
    NOTHING_TO_CANCEL,
    PICK_GRADE_REMINDER,
    QUESTION_CANCELLED,
    QUESTION_SUBMITTED,
    QUESTION_TOO_SHORT,
    SELECT_GRADE,
    ask_question_message,
    my_questions_message,
)


logger = structlog.get_logger()
router = Router(name="questions")

MY_QUESTIONS_LIMIT = 10


# ============================================================
# КОМАНДЫ
# ============================================================

@router.message(Command("ask"))
async def cmd_ask(message: Message, state: FSMContext) -> None:
    """Начать ввод вопроса (незавершённый флоу сбрасывается)."""
    await ConversationSession(state).begin_question()
    await message.answer(ask_question_message(), reply_markup=get_remove_keyboard())


@router.callback_query(F.data == CB_START_ASKING)
async def callback_start_asking(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.answer()
    await ConversationSession(state).begin_question()

    if callback.message:
        await callback.message.answer(ask_question_message())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext) -> None:
    """Отмена любого текущего действия."""
    session = ConversationSession(state)

    if await session.current() is None:
        await message.answer(NOTHING_TO_CANCEL, reply_markup=get_remove_keyboard())
        return

    await session.reset()
    await message.answer(ACTION_CANCELLED, reply_markup=get_remove_keyboard())


async def _send_my_questions(bot: Bot, user_id: int) -> None:
    questions = await crud.get_user_questions(user_id, limit=MY_QUESTIONS_LIMIT)
    await bot.send_message(
        chat_id=user_id,
        text=my_questions_message(questions),
        reply_markup=get_back_to_main_keyboard(),
    )


@router.message(Command("myquestions"))
async def cmd_my_questions(message: Message, bot: Bot) -> None:
    await _send_my_questions(bot, message.from_user.id)


@router.callback_query(F.data == CB_MY_QUESTIONS)
async def callback_my_questions(callback: CallbackQuery, bot: Bot) -> None:
    await callback.answer()
    await _send_my_questions(bot, callback.from_user.id)


# ============================================================
# ВВОД ВОПРОСА
# ============================================================

@router.message(QAStates.awaiting_question)
async def process_question_content(message: Message, state: FSMContext) -> None:
    """
    Текст или медиа вопроса.

    Короткий текст и неподдерживаемые сообщения отклоняются,
    состояние при этом не меняется.
    """
    if is_command(message):
        await message.answer(COMMAND_NOT_CONTENT)
        return

    try:
        payload = validate_payload(
            payload_from_message(message),
            settings.min_question_length,
            QUESTION_TOO_SHORT,
        )
    except ValidationFailure as e:
        await message.answer(e.user_message)
        return

    await ConversationSession(state).store_question_draft(
        payload,
        username=message.from_user.username,
        first_name=message.from_user.first_name,
    )
    await message.answer(SELECT_GRADE, reply_markup=get_grade_keyboard())


@router.message(QAStates.awaiting_grade)
async def remind_pick_grade(message: Message) -> None:
    await message.answer(PICK_GRADE_REMINDER)


# ============================================================
# ВЫБОР УРОВНЯ
# ============================================================

@router.callback_query(F.data.regexp(GRADE_PATTERN).as_("match"))
async def callback_grade(
    callback: CallbackQuery,
    state: FSMContext,
    match,
    moderation: ModerationService,
) -> None:
    """
    Сохранить вопрос с выбранным уровнем.

    Вопрос создаётся в статусе pending, администраторы
    получают уведомление с кнопками модерации.
    """
    session = ConversationSession(state)
    grade_code = match.group(1)

    try:
        if not is_valid_grade(grade_code):
            raise ValidationFailure("❌ Unknown grade level. Please choose one of the buttons.")

        draft = await session.question_draft()
        question = await crud.create_question(
            callback.from_user.id,
            draft.payload,
            grade_level=grade_code,
            username=draft.username,
            first_name=draft.first_name,
        )
    except QABotError as e:
        await session.reset()
        await callback.answer()
        if callback.message:
            await callback.message.answer(e.user_message)
        return

    await session.reset()
    await callback.answer()

    if callback.message:
        await callback.message.edit_text(QUESTION_SUBMITTED)

    delivered = await moderation.notify_admins_of_new_question(question)
    logger.info(
        "question_submitted",
        user_id=callback.from_user.id,
        question_id=question.id,
        grade_level=grade_code,
        admins_notified=delivered,
    )


@router.callback_query(F.data == CANCEL_QUESTION)
async def callback_cancel_question(callback: CallbackQuery, state: FSMContext) -> None:
    await ConversationSession(state).reset()
    await callback.answer()

    if callback.message:
        await callback.message.edit_text(QUESTION_CANCELLED)
