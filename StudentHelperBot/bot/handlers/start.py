"""
Обработчики /start, онбординга и меню.

Онбординг: подписка на канал -> контакт -> главное меню.
Deep link из поста канала (/start answer_<id> или view_<id>)
запоминается в сессии и выполняется сразу после /start
(если онбординг пройден) или после отправки контакта.
"""

from typing import Optional

from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
import structlog

from bot.config import settings
from bot.keyboards import (
    BTN_CHECK_SUBSCRIPTION,
    CB_ASK_QUESTION_MENU,
    CB_BACK_TO_MAIN,
    CB_CANCEL_ONBOARDING,
    CB_CHECK_SUBSCRIPTION,
    CB_HELP_MENU,
    CB_SHARE_CONTACT,
    CB_SUBSCRIBE_CHANNEL,
    get_ask_menu_keyboard,
    get_back_to_main_keyboard,
    get_contact_keyboard,
    get_main_menu_keyboard,
    get_remove_keyboard,
    get_share_contact_inline_keyboard,
    get_subscribe_keyboard,
)
from bot.handlers.answers import open_answer_flow, send_answers
from bot.session import ConversationSession
from core.access import check_subscription, is_onboarding_complete
from core.callbacks import DeepLink, parse_start_payload
from core.exceptions import QABotError
from database import complete_onboarding, mark_subscribed
from database.models import User
from templates.message_templates import (
    CONTACT_BUTTON_PROMPT,
    OWN_CONTACT_ONLY,
    SETUP_CANCELLED,
    SETUP_COMPLETE,
    SETUP_COMPLETE_ANSWER,
    SETUP_COMPLETE_VIEW,
    ask_question_menu_message,
    help_message,
    main_menu_message,
    onboarding_welcome_message,
    onboarding_without_channel_message,
    share_contact_message,
    subscription_not_found_message,
    subscription_required_message,
    subscription_verified_message,
)


logger = structlog.get_logger()
router = Router(name="start")


def _main_menu_keyboard():
    return get_main_menu_keyboard(show_subscribe=bool(settings.channel_url))


async def send_main_menu(bot: Bot, chat_id: int) -> None:
    await bot.send_message(chat_id=chat_id, text=main_menu_message(), reply_markup=_main_menu_keyboard())


async def run_deep_link(
    bot: Bot,
    chat_id: int,
    session: ConversationSession,
    user_id: int,
    link: DeepLink,
) -> None:
    """
    Выполнить отложенный deep link.

    Ошибка (вопрос удалён, не одобрен) сбрасывает сессию
    и показывает причину.
    """
    try:
        if link.action == "answer":
            await open_answer_flow(bot, chat_id, session, user_id, link.question_id)
        else:
            await send_answers(bot, chat_id, link.question_id)
    except QABotError as e:
        await session.reset()
        await bot.send_message(chat_id=chat_id, text=e.user_message)

    logger.info("deep_link_handled", user_id=user_id, action=link.action, question_id=link.question_id)


async def send_onboarding(message: Message) -> None:
    """Первый шаг онбординга: подписка (или сразу контакт, если канала нет)."""
    if settings.channel_identifier:
        await message.answer(
            onboarding_welcome_message(),
            reply_markup=get_subscribe_keyboard(settings.channel_url, with_cancel=True),
        )
        return

    await message.answer(onboarding_without_channel_message(), reply_markup=get_contact_keyboard())


# ============================================================
# /START И /HELP
# ============================================================

@router.message(CommandStart())
async def cmd_start(
    message: Message,
    state: FSMContext,
    bot: Bot,
    user: User,
    command: CommandObject,
) -> None:
    """
    Обработчик команды /start.

    Любой незавершённый флоу сбрасывается. Некорректный payload
    игнорируется, и /start работает как обычно.
    """
    session = ConversationSession(state)
    await session.reset()

    link: Optional[DeepLink] = parse_start_payload(command.args)

    logger.info(
        "start_command",
        user_id=message.from_user.id,
        onboarded=user.onboarding_completed,
        deep_link=link.action if link else None,
    )

    if user.onboarding_completed:
        if link:
            await run_deep_link(bot, message.chat.id, session, message.from_user.id, link)
        else:
            await message.answer(main_menu_message(), reply_markup=_main_menu_keyboard())
        return

    if link:
        await session.remember_deep_link(link)

    await send_onboarding(message)


@router.message(Command("help"))
async def cmd_help(message: Message, user: User) -> None:
    await message.answer(
        help_message(is_admin=user.is_admin, support_username=settings.support_username),
        reply_markup=get_back_to_main_keyboard(),
    )


# ============================================================
# ОНБОРДИНГ
# ============================================================

async def _verify_subscription(bot: Bot, user_id: int, reply) -> None:
    """
    Проверить подписку и перейти к следующему шагу.

    reply - функция отправки ответа (message.answer).
    """
    if not await check_subscription(bot, user_id):
        await reply(
            subscription_not_found_message(settings.channel_url),
            reply_markup=get_subscribe_keyboard(settings.channel_url, with_cancel=True),
        )
        return

    await mark_subscribed(user_id)
    logger.info("subscription_verified", user_id=user_id)

    if await is_onboarding_complete(user_id):
        await reply(main_menu_message(), reply_markup=_main_menu_keyboard())
        return

    await reply(subscription_verified_message(), reply_markup=get_share_contact_inline_keyboard())


@router.callback_query(F.data == CB_CHECK_SUBSCRIPTION)
async def callback_check_subscription(callback: CallbackQuery, bot: Bot) -> None:
    await callback.answer()
    if callback.message:
        await _verify_subscription(bot, callback.from_user.id, callback.message.answer)


@router.message(F.text == BTN_CHECK_SUBSCRIPTION)
async def text_check_subscription(message: Message, bot: Bot) -> None:
    await _verify_subscription(bot, message.from_user.id, message.answer)


@router.callback_query(F.data == CB_SUBSCRIBE_CHANNEL)
async def callback_subscribe_channel(callback: CallbackQuery) -> None:
    await callback.answer()
    if callback.message:
        await callback.message.answer(
            subscription_required_message(settings.channel_url),
            reply_markup=get_subscribe_keyboard(settings.channel_url),
        )


@router.callback_query(F.data == CB_SHARE_CONTACT)
async def callback_share_contact(callback: CallbackQuery) -> None:
    await callback.answer()
    if callback.message:
        await callback.message.answer(share_contact_message())
        await callback.message.answer(CONTACT_BUTTON_PROMPT, reply_markup=get_contact_keyboard())


@router.callback_query(F.data == CB_CANCEL_ONBOARDING)
async def callback_cancel_onboarding(callback: CallbackQuery, state: FSMContext) -> None:
    await ConversationSession(state).reset()
    await callback.answer()
    if callback.message:
        await callback.message.edit_text(SETUP_CANCELLED)


@router.message(F.contact)
async def process_contact(message: Message, state: FSMContext, bot: Bot) -> None:
    """
    Контакт пользователя - последний шаг онбординга.

    Принимается только собственный контакт. После сохранения
    выполняется отложенный deep link, иначе показывается меню.
    """
    if message.contact.user_id != message.from_user.id:
        await message.answer(OWN_CONTACT_ONLY, reply_markup=get_contact_keyboard())
        return

    await complete_onboarding(message.from_user.id, message.contact.phone_number)

    session = ConversationSession(state)
    link = await session.pop_deep_link()

    if link is None:
        await message.answer(SETUP_COMPLETE, reply_markup=get_remove_keyboard())
        await send_main_menu(bot, message.chat.id)
        return

    notice = SETUP_COMPLETE_ANSWER if link.action == "answer" else SETUP_COMPLETE_VIEW
    await message.answer(notice, reply_markup=get_remove_keyboard())
    await run_deep_link(bot, message.chat.id, session, message.from_user.id, link)


# ============================================================
# МЕНЮ
# ============================================================

@router.callback_query(F.data == CB_BACK_TO_MAIN)
async def callback_back_to_main(callback: CallbackQuery, state: FSMContext) -> None:
    await ConversationSession(state).reset()
    await callback.answer()
    if callback.message:
        await callback.message.answer(main_menu_message(), reply_markup=_main_menu_keyboard())


@router.callback_query(F.data == CB_ASK_QUESTION_MENU)
async def callback_ask_question_menu(callback: CallbackQuery) -> None:
    await callback.answer()
    if callback.message:
        await callback.message.answer(ask_question_menu_message(), reply_markup=get_ask_menu_keyboard())


@router.callback_query(F.data == CB_HELP_MENU)
async def callback_help_menu(callback: CallbackQuery, user: User) -> None:
    await callback.answer()
    if callback.message:
        await callback.message.answer(
            help_message(is_admin=user.is_admin, support_username=settings.support_username),
            reply_markup=get_back_to_main_keyboard(),
        )
