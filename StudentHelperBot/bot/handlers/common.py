"""
Общие обработчики.

Содержит:
- Обработчик неизвестных сообщений
- Обработчик устаревших кнопок
"""

from aiogram import Router
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
import structlog

from bot.keyboards import get_main_menu_keyboard
from bot.config import settings


logger = structlog.get_logger()
router = Router(name="common")


@router.callback_query()
async def handle_unknown_callback(callback: CallbackQuery) -> None:
    """Кнопка, для которой нет обработчика (например, из старого сообщения)."""
    logger.debug("unknown_callback", user_id=callback.from_user.id, data=callback.data)
    await callback.answer("❌ This button is no longer available.", show_alert=True)


@router.message()
async def handle_unknown(message: Message, state: FSMContext) -> None:
    """
    Обработчик всех неизвестных сообщений.

    Срабатывает, если сообщение не было обработано другими хендлерами.
    """
    current_state = await state.get_state()

    await message.answer(
        "🤔 I don't understand this message.\n\n"
        "Use the menu below or /help to see available commands.",
        reply_markup=get_main_menu_keyboard(show_subscribe=bool(settings.channel_url)),
    )

    logger.debug(
        "unknown_message",
        telegram_id=message.from_user.id if message.from_user else 0,
        text=message.text[:50] if message.text else None,
        state=current_state,
    )
