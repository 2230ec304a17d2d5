"""
Обработчики ответов и реплик.

Содержит:
- Кнопку ответа (answer_<id>) и deep link answer_<id>
- Просмотр ответов (view_<id>) и deep link view_<id>
- Ввод ответа с подтверждением (✅ Yes / ❌ No / ❌ Cancel)
- Реакции на ответ (ans_right_/ans_wrong_) и реплики (ans_reply_)
"""

from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
import structlog

from bot.config import settings
from bot.keyboards import (
    BTN_CANCEL_ANSWER,
    BTN_CANCEL_REPLY,
    BTN_CONFIRM_ANSWER,
    BTN_EDIT_ANSWER,
    get_answer_actions_keyboard,
    get_answers_navigation_keyboard,
    get_cancel_answer_keyboard,
    get_cancel_reply_keyboard,
    get_confirm_answer_keyboard,
    get_remove_keyboard,
)
from bot.session import ConversationSession
from bot.states import QAStates
from bot.utils import is_command, payload_from_message
from config.constants import ANSWER_PREVIEW_LENGTH
from core.callbacks import ANSWER_ACTION_PATTERN, ANSWER_PATTERN, VIEW_PATTERN, ensure_question_id, parse_answer_action
from core.content import validate_payload
from core.exceptions import InvalidState, NotFound, QABotError, ValidationFailure
from core.moderation import ModerationService
from core.publishing import is_not_modified_error, send_content
from database import crud
from database.models import STATUS_APPROVED
from templates.message_templates import (
    ANSWER_CANCELLED,
    ANSWER_DRAFT_MISSING,
    ANSWER_TOO_SHORT,
    ANSWERS_FOOTER,
    COMMAND_NOT_CONTENT,
    EDIT_ANSWER_PROMPT,
    NO_ANSWERS,
    NO_OTHER_ANSWERS,
    REACTION_RECORDED,
    REPLY_CANCELLED,
    REPLY_PROMPT,
    REPLY_SUBMITTED,
    REPLY_TOO_SHORT,
    answer_confirm_message,
    answer_message,
    answer_posted_message,
    answer_prompt_message,
    answers_header_message,
    author_update_message,
    author_updates_header,
    regular_answers_header,
)


logger = structlog.get_logger()
router = Router(name="answers")


# ============================================================
# ОБЩИЕ ДЕЙСТВИЯ (используются и deep link из /start)
# ============================================================

async def open_answer_flow(
    bot: Bot,
    chat_id: int,
    session: ConversationSession,
    user_id: int,
    question_id: str,
) -> None:
    """
    Начать ввод ответа на вопрос.

    Автор вопроса пишет не ответ, а дополнение к своему вопросу.

    Raises:
        ValidationFailure: Неверный ID
        NotFound: Вопроса нет
        InvalidState: Вопрос не одобрен
    """
    question = await crud.get_question(ensure_question_id(question_id))
    if question is None:
        raise NotFound()
    if question.status != STATUS_APPROVED:
        raise InvalidState(crud.NOT_APPROVED_MESSAGE)

    is_author = question.user_id == user_id
    await session.begin_answer(question.id, is_author)

    await send_content(
        bot,
        chat_id,
        question.media_type,
        question.media_id,
        answer_prompt_message(question, is_author),
        reply_markup=get_cancel_answer_keyboard(),
    )

    logger.info("answer_flow_started", user_id=user_id, question_id=question.id, is_author=is_author)


async def send_answers(bot: Bot, chat_id: int, question_id: str) -> None:
    """
    Показать вопрос со всеми ответами.

    Сначала дополнения автора, затем ответы остальных с кнопками
    реакций. Кнопки используют постоянную позицию ответа.

    Raises:
        ValidationFailure: Неверный ID
        NotFound: Вопроса нет
        InvalidState: Вопрос не одобрен
    """
    question = await crud.get_question(ensure_question_id(question_id), with_answers=True)
    if question is None:
        raise NotFound()
    if question.status != STATUS_APPROVED:
        raise InvalidState(crud.NOT_APPROVED_MESSAGE)

    await send_content(
        bot,
        chat_id,
        question.media_type,
        question.media_id,
        answers_header_message(question),
    )

    if not question.answers:
        await bot.send_message(
            chat_id=chat_id,
            text=NO_ANSWERS,
            reply_markup=get_answers_navigation_keyboard(question.id),
        )
        return

    updates = question.author_updates()
    if updates:
        await bot.send_message(chat_id=chat_id, text=author_updates_header(len(updates)))
        for number, answer in enumerate(updates, start=1):
            await send_content(
                bot,
                chat_id,
                answer.media_type,
                answer.media_id,
                author_update_message(number, answer),
            )

    regular = question.regular_answers()
    if regular:
        await bot.send_message(chat_id=chat_id, text=regular_answers_header(len(regular)))
        for number, answer in enumerate(regular, start=1):
            await send_content(
                bot,
                chat_id,
                answer.media_type,
                answer.media_id,
                answer_message(number, answer),
                reply_markup=get_answer_actions_keyboard(
                    question.id,
                    answer.position,
                    answer.right_count,
                    answer.wrong_count,
                ),
            )
    else:
        await bot.send_message(chat_id=chat_id, text=NO_OTHER_ANSWERS)

    await bot.send_message(
        chat_id=chat_id,
        text=ANSWERS_FOOTER,
        reply_markup=get_answers_navigation_keyboard(question.id),
    )


# ============================================================
# КНОПКИ ОТВЕТА И ПРОСМОТРА
# ============================================================

@router.callback_query(F.data.regexp(ANSWER_PATTERN))
async def callback_answer(callback: CallbackQuery, state: FSMContext, bot: Bot) -> None:
    """Кнопка "Add Answer" / answer_<id>."""
    await callback.answer()
    session = ConversationSession(state)
    question_id = callback.data.split("_", 1)[1]

    try:
        await open_answer_flow(bot, callback.from_user.id, session, callback.from_user.id, question_id)
    except QABotError as e:
        await session.reset()
        await bot.send_message(chat_id=callback.from_user.id, text=e.user_message)


@router.callback_query(F.data.regexp(VIEW_PATTERN))
async def callback_view_answers(callback: CallbackQuery, bot: Bot) -> None:
    """Кнопка view_<id>."""
    await callback.answer()
    question_id = callback.data.split("_", 1)[1]

    try:
        await send_answers(bot, callback.from_user.id, question_id)
    except QABotError as e:
        await bot.send_message(chat_id=callback.from_user.id, text=e.user_message)


# ============================================================
# ВВОД ОТВЕТА
# ============================================================

@router.message(QAStates.awaiting_answer, F.text == BTN_CANCEL_ANSWER)
async def cancel_answer(message: Message, state: FSMContext) -> None:
    await ConversationSession(state).reset()
    await message.answer(ANSWER_CANCELLED, reply_markup=get_remove_keyboard())


@router.message(QAStates.awaiting_answer, F.text == BTN_EDIT_ANSWER)
async def edit_answer(message: Message, state: FSMContext) -> None:
    """Отказаться от черновика и прислать ответ заново."""
    await ConversationSession(state).edit_answer()
    await message.answer(EDIT_ANSWER_PROMPT, reply_markup=get_cancel_answer_keyboard())


@router.message(QAStates.awaiting_answer, F.text == BTN_CONFIRM_ANSWER)
async def confirm_answer(
    message: Message,
    state: FSMContext,
    moderation: ModerationService,
) -> None:
    """
    Опубликовать ответ.

    Ответ добавляется атомарно в конец списка, после чего
    в фоне обновляется счётчик ответов в посте канала.
    """
    session = ConversationSession(state)

    try:
        context = await session.answer_context()
        if not context.confirming or context.draft is None:
            await message.answer(ANSWER_DRAFT_MISSING, reply_markup=get_cancel_answer_keyboard())
            return

        answer = await moderation.append_answer(
            context.question_id,
            user_id=message.from_user.id,
            username=message.from_user.username,
            payload=context.draft,
            is_author_update=context.is_author,
        )
    except QABotError as e:
        await session.reset()
        await message.answer(e.user_message, reply_markup=get_remove_keyboard())
        return

    await session.reset()
    await message.answer(answer_posted_message(context.is_author), reply_markup=get_remove_keyboard())

    logger.info(
        "answer_posted",
        user_id=message.from_user.id,
        question_id=context.question_id,
        position=answer.position,
        is_author_update=context.is_author,
    )


@router.message(QAStates.awaiting_answer)
async def process_answer_content(message: Message, state: FSMContext) -> None:
    """
    Черновик ответа.

    Новый черновик заменяет предыдущий и снова просит подтверждение.
    Некорректное содержимое отклоняется без смены состояния.
    """
    session = ConversationSession(state)

    if is_command(message):
        await message.answer(COMMAND_NOT_CONTENT)
        return

    try:
        payload = validate_payload(
            payload_from_message(message),
            settings.min_answer_length,
            ANSWER_TOO_SHORT,
        )
    except ValidationFailure as e:
        await message.answer(e.user_message)
        return

    try:
        context = await session.answer_context()
    except QABotError as e:
        await session.reset()
        await message.answer(e.user_message, reply_markup=get_remove_keyboard())
        return

    await session.store_answer_draft(payload)
    await message.answer(
        answer_confirm_message(payload.preview(ANSWER_PREVIEW_LENGTH), context.is_author),
        reply_markup=get_confirm_answer_keyboard(),
    )


# ============================================================
# РЕАКЦИИ И РЕПЛИКИ
# ============================================================

@router.callback_query(F.data.regexp(ANSWER_ACTION_PATTERN))
async def callback_answer_action(
    callback: CallbackQuery,
    state: FSMContext,
    bot: Bot,
    moderation: ModerationService,
) -> None:
    """ans_right_/ans_wrong_/ans_reply_<id>_<index>."""
    try:
        action, question_id, answer_index = parse_answer_action(callback.data)

        if action == "reply":
            await crud.get_answer(question_id, answer_index)
            await ConversationSession(state).begin_reply(question_id, answer_index)
            await callback.answer()
            await bot.send_message(
                chat_id=callback.from_user.id,
                text=REPLY_PROMPT,
                reply_markup=get_cancel_reply_keyboard(),
            )
            return

        right_count, wrong_count = await moderation.record_reaction(question_id, answer_index, action)
    except QABotError as e:
        await callback.answer(e.user_message, show_alert=True)
        return

    await callback.answer(REACTION_RECORDED[action])

    if callback.message is None:
        return

    # Счётчики на кнопках обновляются best-effort
    try:
        await callback.message.edit_reply_markup(
            reply_markup=get_answer_actions_keyboard(question_id, answer_index, right_count, wrong_count)
        )
    except TelegramBadRequest as e:
        if not is_not_modified_error(e):
            logger.warning("reaction_keyboard_update_failed", question_id=question_id, error=str(e))
    except TelegramAPIError as e:
        logger.warning("reaction_keyboard_update_failed", question_id=question_id, error=str(e))


@router.message(QAStates.awaiting_reply, F.text == BTN_CANCEL_REPLY)
async def cancel_reply(message: Message, state: FSMContext) -> None:
    await ConversationSession(state).reset()
    await message.answer(REPLY_CANCELLED, reply_markup=get_remove_keyboard())


@router.message(QAStates.awaiting_reply)
async def process_reply_content(
    message: Message,
    state: FSMContext,
    moderation: ModerationService,
) -> None:
    """Реплика к ответу: сохраняется сразу, без подтверждения."""
    session = ConversationSession(state)

    if is_command(message):
        await message.answer(COMMAND_NOT_CONTENT)
        return

    try:
        payload = validate_payload(
            payload_from_message(message),
            settings.min_answer_length,
            REPLY_TOO_SHORT,
        )
    except ValidationFailure as e:
        await message.answer(e.user_message)
        return

    try:
        target = await session.reply_target()
        await moderation.append_reply(
            target.question_id,
            target.answer_index,
            user_id=message.from_user.id,
            username=message.from_user.username,
            payload=payload,
        )
    except QABotError as e:
        await session.reset()
        await message.answer(e.user_message, reply_markup=get_remove_keyboard())
        return

    await session.reset()
    await message.answer(REPLY_SUBMITTED, reply_markup=get_remove_keyboard())

    logger.info(
        "reply_posted",
        user_id=message.from_user.id,
        question_id=target.question_id,
        answer_index=target.answer_index,
    )
