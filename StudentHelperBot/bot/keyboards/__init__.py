"""
Клавиатуры бота.

Содержит все Reply и Inline клавиатуры:
- Онбординг (подписка, контакт)
- Главное меню
- Выбор уровня обучения
- Ответ, подтверждение ответа, реплика
- Пост в канале и реакции на ответы
- Модерация (admin_keyboards)
"""

from typing import Optional

from aiogram.types import (
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
)
from aiogram.utils.keyboard import InlineKeyboardBuilder, ReplyKeyboardBuilder

from config.grades import GRADE_ROWS, GRADES
from core.callbacks import (
    CANCEL_QUESTION,
    answer_action_data,
    answer_data,
    deep_link,
    grade_data,
    view_data,
)

from .admin_keyboards import get_moderation_keyboard


# ============================================================
# ТЕКСТЫ REPLY КНОПОК
# ============================================================

BTN_CANCEL_ANSWER = "❌ Cancel Answering"
BTN_CONFIRM_ANSWER = "✅ Yes, Post Answer"
BTN_EDIT_ANSWER = "❌ No, Edit Answer"
BTN_CANCEL_REPLY = "❌ Cancel Reply"
BTN_CHECK_SUBSCRIPTION = "✅ Check Subscription"
BTN_SHARE_CONTACT = "📱 Share My Contact"

# callback_data онбординга и меню
CB_CHECK_SUBSCRIPTION = "check_subscription"
CB_SHARE_CONTACT = "share_contact"
CB_SUBSCRIBE_CHANNEL = "subscribe_channel"
CB_CANCEL_ONBOARDING = "cancel_onboarding"
CB_ASK_QUESTION_MENU = "ask_question_menu"
CB_START_ASKING = "start_asking"
CB_MY_QUESTIONS = "my_questions"
CB_HELP_MENU = "help_menu"
CB_BACK_TO_MAIN = "back_to_main"


def get_remove_keyboard() -> ReplyKeyboardRemove:
    """Удалить Reply клавиатуру."""
    return ReplyKeyboardRemove()


# ============================================================
# ОНБОРДИНГ
# ============================================================

def get_subscribe_keyboard(channel_link: Optional[str], with_cancel: bool = False) -> InlineKeyboardMarkup:
    """Ссылка на канал (если известна) и кнопка проверки подписки."""
    builder = InlineKeyboardBuilder()

    if channel_link:
        builder.button(text="📢 Join Channel", url=channel_link)
    builder.button(text="✅ I'm Subscribed", callback_data=CB_CHECK_SUBSCRIPTION)
    if with_cancel:
        builder.button(text="❌ Cancel", callback_data=CB_CANCEL_ONBOARDING)

    builder.adjust(1)
    return builder.as_markup()


def get_share_contact_inline_keyboard() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()

    builder.button(text="📱 Share Contact", callback_data=CB_SHARE_CONTACT)
    builder.button(text="❌ Cancel", callback_data=CB_CANCEL_ONBOARDING)

    builder.adjust(1)
    return builder.as_markup()


def get_contact_keyboard() -> ReplyKeyboardMarkup:
    """Reply клавиатура с запросом контакта."""
    builder = ReplyKeyboardBuilder()
    builder.row(KeyboardButton(text=BTN_SHARE_CONTACT, request_contact=True))
    return builder.as_markup(resize_keyboard=True)


# ============================================================
# МЕНЮ
# ============================================================

def get_main_menu_keyboard(show_subscribe: bool = False) -> InlineKeyboardMarkup:
    """Inline клавиатура главного меню."""
    builder = InlineKeyboardBuilder()

    builder.button(text="❓ Ask Question", callback_data=CB_ASK_QUESTION_MENU)
    builder.button(text="❓ Help", callback_data=CB_HELP_MENU)
    if show_subscribe:
        builder.button(text="📢 Subscribe to Channel", callback_data=CB_SUBSCRIBE_CHANNEL)

    builder.adjust(1)
    return builder.as_markup()


def get_ask_menu_keyboard() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()

    builder.button(text="❓ Ask Question", callback_data=CB_START_ASKING)
    builder.button(text="📋 My Questions", callback_data=CB_MY_QUESTIONS)
    builder.button(text="🔙 Back to Main Menu", callback_data=CB_BACK_TO_MAIN)

    builder.adjust(1)
    return builder.as_markup()


def get_back_to_main_keyboard() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="🔙 Back to Main Menu", callback_data=CB_BACK_TO_MAIN)
    return builder.as_markup()


# ============================================================
# ВОПРОСЫ
# ============================================================

def get_grade_keyboard() -> InlineKeyboardMarkup:
    """
    Клавиатура выбора уровня обучения.

    Раскладка рядов задана в config.grades.GRADE_ROWS.
    """
    builder = InlineKeyboardBuilder()

    for row in GRADE_ROWS:
        for code in row:
            builder.button(text=GRADES[code].label, callback_data=grade_data(code))

    builder.button(text="❌ Cancel", callback_data=CANCEL_QUESTION)

    builder.adjust(*[len(row) for row in GRADE_ROWS], 1)
    return builder.as_markup()


# ============================================================
# ОТВЕТЫ
# ============================================================

def get_cancel_answer_keyboard() -> ReplyKeyboardMarkup:
    builder = ReplyKeyboardBuilder()
    builder.row(KeyboardButton(text=BTN_CANCEL_ANSWER))
    return builder.as_markup(resize_keyboard=True)


def get_confirm_answer_keyboard() -> ReplyKeyboardMarkup:
    """Подтверждение, редактирование или отмена ответа."""
    builder = ReplyKeyboardBuilder()
    builder.row(
        KeyboardButton(text=BTN_CONFIRM_ANSWER),
        KeyboardButton(text=BTN_EDIT_ANSWER),
    )
    builder.row(KeyboardButton(text=BTN_CANCEL_ANSWER))
    return builder.as_markup(resize_keyboard=True)


def get_cancel_reply_keyboard() -> ReplyKeyboardMarkup:
    builder = ReplyKeyboardBuilder()
    builder.row(KeyboardButton(text=BTN_CANCEL_REPLY))
    return builder.as_markup(resize_keyboard=True)


def get_answer_actions_keyboard(
    question_id: str,
    position: int,
    right_count: int,
    wrong_count: int,
) -> InlineKeyboardMarkup:
    """
    Реакции и реплика для одного ответа.

    position - постоянная позиция ответа внутри вопроса.
    """
    builder = InlineKeyboardBuilder()

    builder.button(text=f"✅ {right_count}", callback_data=answer_action_data("right", question_id, position))
    builder.button(text=f"❌ {wrong_count}", callback_data=answer_action_data("wrong", question_id, position))
    builder.button(text="↩️ Reply", callback_data=answer_action_data("reply", question_id, position))

    builder.adjust(3)
    return builder.as_markup()


def get_answers_navigation_keyboard(question_id: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="📝 Add Answer", callback_data=answer_data(question_id))
    builder.button(text="🔄 Refresh", callback_data=view_data(question_id))
    builder.adjust(2)
    return builder.as_markup()


# ============================================================
# КАНАЛ
# ============================================================

def get_channel_question_keyboard(
    bot_username: str,
    question_id: str,
    answer_count: int,
) -> InlineKeyboardMarkup:
    """
    Клавиатура поста в канале.

    Обе кнопки - ссылки на личный чат с ботом (deep link),
    счётчик ответов обновляется при каждом новом ответе.
    """
    builder = InlineKeyboardBuilder()

    builder.button(
        text="💬 Answer this Question",
        url=deep_link(bot_username, "answer", question_id),
    )
    builder.button(
        text=f"👁️ View Answers ({answer_count})",
        url=deep_link(bot_username, "view", question_id),
    )

    builder.adjust(2)
    return builder.as_markup()


__all__ = [
    "BTN_CANCEL_ANSWER",
    "BTN_CONFIRM_ANSWER",
    "BTN_EDIT_ANSWER",
    "BTN_CANCEL_REPLY",
    "BTN_CHECK_SUBSCRIPTION",
    "BTN_SHARE_CONTACT",
    "CB_CHECK_SUBSCRIPTION",
    "CB_SHARE_CONTACT",
    "CB_SUBSCRIBE_CHANNEL",
    "CB_CANCEL_ONBOARDING",
    "CB_ASK_QUESTION_MENU",
    "CB_START_ASKING",
    "CB_MY_QUESTIONS",
    "CB_HELP_MENU",
    "CB_BACK_TO_MAIN",
    "get_remove_keyboard",
    "get_subscribe_keyboard",
    "get_share_contact_inline_keyboard",
    "get_contact_keyboard",
    "get_main_menu_keyboard",
    "get_ask_menu_keyboard",
    "get_back_to_main_keyboard",
    "get_grade_keyboard",
    "get_cancel_answer_keyboard",
    "get_confirm_answer_keyboard",
    "get_cancel_reply_keyboard",
    "get_answer_actions_keyboard",
    "get_answers_navigation_keyboard",
    "get_channel_question_keyboard",
    "get_moderation_keyboard",
]
