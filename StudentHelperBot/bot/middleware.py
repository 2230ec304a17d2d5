"""
Middleware бота.

Содержит middleware для:
- Инъекции пользователя в обработчики (и блокировки забаненных)
- Логирования запросов

Проверка подписки и онбординга вынесена в bot/middlewares/subscription.py.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject, User as TelegramUser
import structlog

from database import upsert_user
from templates.message_templates import BANNED_MESSAGE


logger = structlog.get_logger()


def get_event_user(event: TelegramObject) -> Optional[TelegramUser]:
    """Отправитель апдейта (Message, CallbackQuery и т.п.)."""
    return getattr(event, "from_user", None)


class UserMiddleware(BaseMiddleware):
    """
    Middleware для инъекции пользователя.

    Добавляет 'user' (модель User) в data обработчика.
    Создаёт пользователя если его нет в БД и обновляет профиль
    и last_active для существующих. Забаненным пользователям
    отвечает BANNED_MESSAGE, обработчик не вызывается.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user_tg = get_event_user(event)
        if user_tg is None:
            return await handler(event, data)

        # Ошибка БД пробрасывается: обработчик не может работать без user
        user, created = await upsert_user(
            telegram_id=user_tg.id,
            username=user_tg.username,
            first_name=user_tg.first_name,
            last_name=user_tg.last_name,
        )
        data["user"] = user

        if created:
            logger.info("new_user", telegram_id=user_tg.id, username=user_tg.username)

        if user.is_banned and not user.is_admin:
            logger.info("banned_user_blocked", telegram_id=user_tg.id)
            if isinstance(event, Message):
                await event.answer(BANNED_MESSAGE)
            elif isinstance(event, CallbackQuery):
                await event.answer(BANNED_MESSAGE, show_alert=True)
            return None

        return await handler(event, data)


class LoggingMiddleware(BaseMiddleware):
    """
    Middleware для логирования запросов.

    Логирует все входящие обновления для отладки.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user_tg = get_event_user(event)

        log = logger.bind(
            event_type=type(event).__name__,
            user_id=user_tg.id if user_tg else None,
        )
        if isinstance(event, CallbackQuery):
            log = log.bind(callback_data=event.data)

        log.debug("update_received")

        try:
            result = await handler(event, data)
        except Exception as e:
            log.error("handler_failed", error=str(e))
            raise

        log.debug("update_handled")
        return result
