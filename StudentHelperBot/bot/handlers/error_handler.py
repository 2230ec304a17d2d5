"""
Глобальная обработка ошибок бота.

Модуль обеспечивает:
- Генерацию уникальных ID ошибок для отслеживания
- Короткое сообщение пользователю (без деталей исключения)
- Уведомление администраторов с traceback
- Логирование с уровнем по типу ошибки

Ожидаемые ошибки (QABotError) обрабатываются в самих обработчиках,
сюда попадает только то, что обработчик не перехватил.
"""

import asyncio
import html
import traceback
import uuid
from datetime import datetime
from typing import List, Optional

from aiogram import Bot, Router
from aiogram.exceptions import TelegramAPIError, TelegramNetworkError
from aiogram.types import CallbackQuery, ErrorEvent, Message
from sqlalchemy.exc import SQLAlchemyError
import structlog

from bot.config import settings
from core.exceptions import QABotError
from database import admin_crud
from templates.message_templates import error_message


logger = structlog.get_logger()
router = Router(name="errors")

TRACEBACK_LINES = 15
TRACEBACK_MAX_LENGTH = 2500


# ============================================================
# ГЕНЕРАЦИЯ ID ОШИБКИ
# ============================================================

def generate_error_id() -> str:
    """
    Генерация уникального ID ошибки.

    Формат: ERR-YYYYMMDD-XXXX (например ERR-20260204-A1B2)
    """
    date_part = datetime.now().strftime("%Y%m%d")
    unique_part = uuid.uuid4().hex[:4].upper()
    return f"ERR-{date_part}-{unique_part}"


# ============================================================
# ФОРМАТИРОВАНИЕ ОШИБКИ ДЛЯ АДМИНА
# ============================================================

def format_admin_error_message(
    error_id: str,
    exception: BaseException,
    user_info: str,
    context: str = "",
) -> str:
    """
    Подробное сообщение об ошибке для администратора.

    Содержит последние строки traceback, где и произошла ошибка.
    """
    tb_lines = "".join(
        traceback.format_exception(type(exception), exception, exception.__traceback__)
    ).strip().split("\n")

    traceback_preview = "\n".join(tb_lines[-TRACEBACK_LINES:])
    if len(traceback_preview) > TRACEBACK_MAX_LENGTH:
        traceback_preview = traceback_preview[-TRACEBACK_MAX_LENGTH:]

    return (
        f"🚨 <b>ERROR [{error_id}]</b>\n\n"
        f"👤 <b>User:</b> {html.escape(user_info)}\n"
        f"🕐 <b>Time:</b> {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"📍 <b>Context:</b> {html.escape(context or 'N/A')}\n\n"
        f"❌ <b>Type:</b> <code>{type(exception).__name__}</code>\n"
        f"💬 <b>Message:</b> {html.escape(str(exception)[:500])}\n\n"
        f"<pre>{html.escape(traceback_preview)}</pre>"
    )


# ============================================================
# УВЕДОМЛЕНИЯ
# ============================================================

async def _admin_recipients() -> List[int]:
    """Администраторы из БД; если БД недоступна - начальный список из конфига."""
    try:
        return await admin_crud.get_admin_ids()
    except SQLAlchemyError as e:
        logger.warning("admin_ids_unavailable", error=str(e))
        return list(settings.admin_ids)


async def notify_admins_about_error(
    bot: Bot,
    error_id: str,
    exception: BaseException,
    user_info: str,
    context: str = "",
) -> None:
    """Отправить отчёт об ошибке всем администраторам."""
    recipients = await _admin_recipients()
    if not recipients:
        logger.warning("no_admins_for_error_report", error_id=error_id)
        return

    text = format_admin_error_message(error_id, exception, user_info, context)

    for admin_id in recipients:
        try:
            await bot.send_message(chat_id=admin_id, text=text)
        except TelegramAPIError as e:
            logger.error("admin_error_notification_failed", admin_id=admin_id, error=str(e))


async def send_error_to_user(event: Message | CallbackQuery, text: str) -> None:
    """Отправить пользователю сообщение об ошибке."""
    try:
        if isinstance(event, CallbackQuery):
            await event.answer("⚠️ An error occurred", show_alert=True)
            if event.message:
                await event.message.answer(text)
        else:
            await event.answer(text)
    except TelegramAPIError as e:
        logger.warning("failed_to_send_error_to_user", error=str(e))


# ============================================================
# ГЛОБАЛЬНЫЙ ОБРАБОТЧИК ОШИБОК
# ============================================================

@router.error()
async def global_error_handler(event: ErrorEvent, bot: Bot) -> bool:
    """
    Глобальный обработчик всех ошибок бота.

    Returns:
        True (ошибка обработана)
    """
    exception = event.exception
    update = event.update
    error_id = generate_error_id()

    user_event: Optional[Message | CallbackQuery] = None
    user_info = "N/A"
    context = "unknown"

    if update.message:
        user_event = update.message
        if update.message.from_user:
            user = update.message.from_user
            user_info = f"ID: {user.id}, @{user.username or 'N/A'}, {user.first_name or ''}"
        context = f"message: {update.message.text[:50] if update.message.text else update.message.content_type}"
    elif update.callback_query:
        user_event = update.callback_query
        user = update.callback_query.from_user
        user_info = f"ID: {user.id}, @{user.username or 'N/A'}, {user.first_name or ''}"
        context = f"callback: {update.callback_query.data or 'N/A'}"

    log_data = {
        "error_id": error_id,
        "error_type": type(exception).__name__,
        "error_message": str(exception),
        "user_info": user_info,
        "context": context,
    }

    user_text = error_message(error_id)
    should_notify_admin = True

    if isinstance(exception, QABotError):
        # Ожидаемая ошибка, которую обработчик не перехватил
        user_text = exception.user_message
        should_notify_admin = False
        logger.warning("unhandled_expected_error", **log_data)
    elif isinstance(exception, (TelegramNetworkError, asyncio.TimeoutError)):
        should_notify_admin = False
        logger.warning("network_error", **log_data)
    elif isinstance(exception, SQLAlchemyError):
        logger.error("database_error", **log_data, exc_info=exception)
    else:
        logger.critical("unhandled_critical_error", **log_data, exc_info=exception)

    if user_event is not None:
        await send_error_to_user(user_event, user_text)

    if should_notify_admin:
        await notify_admins_about_error(bot, error_id, exception, user_info, context)

    return True
