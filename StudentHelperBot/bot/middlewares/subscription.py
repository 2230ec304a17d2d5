"""
Проверка онбординга и подписки на канал.

SubscriptionMiddleware пропускает к обработчикам только тех,
кто прошёл онбординг и подписан на канал. Исключения:
- администраторы
- команды /start и /help, контакт и кнопки самого онбординга

Пользователь без онбординга не проверяется на подписку
(иначе он не смог бы начать онбординг), но получает
напоминание завершить настройку через /start.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware, Bot
from aiogram.types import CallbackQuery, Message, TelegramObject
import structlog

from bot.config import settings
from bot.keyboards import (
    BTN_CHECK_SUBSCRIPTION,
    CB_CANCEL_ONBOARDING,
    CB_CHECK_SUBSCRIPTION,
    CB_SHARE_CONTACT,
    CB_SUBSCRIBE_CHANNEL,
    get_subscribe_keyboard,
)
from core.access import check_subscription
from templates.message_templates import FINISH_SETUP, subscription_required_message


logger = structlog.get_logger()

ALLOWED_COMMANDS = ("start", "help")

ALLOWED_CALLBACKS = frozenset({
    CB_CHECK_SUBSCRIPTION,
    CB_SHARE_CONTACT,
    CB_SUBSCRIBE_CHANNEL,
    CB_CANCEL_ONBOARDING,
})


def _command_name(text: Optional[str]) -> Optional[str]:
    """Имя команды без / и @bot: "/start@bot x" -> "start"."""
    if not text or not text.startswith("/"):
        return None
    parts = text[1:].split(maxsplit=1)
    if not parts:
        return None
    return parts[0].split("@", 1)[0].lower()


def is_allowed_without_gate(event: TelegramObject) -> bool:
    """Апдейты, которые нужны для самого онбординга."""
    if isinstance(event, Message):
        if event.contact is not None:
            return True
        if event.text == BTN_CHECK_SUBSCRIPTION:
            return True
        return _command_name(event.text) in ALLOWED_COMMANDS

    if isinstance(event, CallbackQuery):
        return event.data in ALLOWED_CALLBACKS

    return False


class SubscriptionMiddleware(BaseMiddleware):
    """
    Middleware проверки онбординга и подписки.

    Регистрируется после UserMiddleware: использует data["user"].
    Ошибка проверки подписки (канал недоступен, не настроен)
    не блокирует пользователя.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = data.get("user")

        if user is None or user.is_admin or is_allowed_without_gate(event):
            return await handler(event, data)

        if not user.onboarding_completed:
            logger.debug("onboarding_required", user_id=user.telegram_id)
            await self._reply(event, FINISH_SETUP)
            return None

        bot: Bot = data["bot"]
        if await check_subscription(bot, user.telegram_id):
            return await handler(event, data)

        logger.info("subscription_required", user_id=user.telegram_id)
        await self._reply(
            event,
            subscription_required_message(settings.channel_url),
            reply_markup=get_subscribe_keyboard(settings.channel_url),
        )
        return None

    @staticmethod
    async def _reply(event: TelegramObject, text: str, reply_markup: Any = None) -> None:
        if isinstance(event, Message):
            await event.answer(text, reply_markup=reply_markup)
        elif isinstance(event, CallbackQuery):
            await event.answer()
            if event.message:
                await event.message.answer(text, reply_markup=reply_markup)
