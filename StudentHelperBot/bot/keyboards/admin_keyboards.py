"""
Клавиатуры для администраторов.

Содержит Inline-клавиатуры для модерации вопросов.
"""

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from core.callbacks import approve_data, decline_data


def get_moderation_keyboard(question_id: str) -> InlineKeyboardMarkup:
    """Кнопки одобрения/отклонения нового вопроса."""
    builder = InlineKeyboardBuilder()

    builder.button(text="✅ Approve", callback_data=approve_data(question_id))
    builder.button(text="❌ Decline", callback_data=decline_data(question_id))

    builder.adjust(2)
    return builder.as_markup()
