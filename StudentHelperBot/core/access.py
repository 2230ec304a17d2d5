"""
Проверки доступа.

- is_admin: флаг администратора в БД
- is_onboarding_complete: пройден ли онбординг
- check_subscription: подписан ли пользователь на канал
"""

import structlog
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from bot.config import settings
from config.constants import SUBSCRIBED_MEMBER_STATUSES
from database import admin_crud, crud


logger = structlog.get_logger()


async def is_admin(user_id: int) -> bool:
    """Администратор ли пользователь (флаг is_admin в БД)."""
    return await admin_crud.is_admin(user_id)


async def is_onboarding_complete(user_id: int) -> bool:
    """Пройден ли онбординг (подписка и контакт)."""
    user = await crud.get_user(user_id)
    return bool(user and user.onboarding_completed)


async def check_subscription(bot: Bot, user_id: int) -> bool:
    """
    Проверить подписку пользователя на канал.

    Если канал не настроен или Telegram API вернул ошибку,
    пользователь пропускается: бот не должен блокировать
    всех из-за проблем с каналом.

    Returns:
        True если подписан (или проверить невозможно)
    """
    channel = settings.channel_identifier
    if not channel:
        logger.warning("subscription_check_skipped", reason="channel_not_configured")
        return True

    try:
        member = await bot.get_chat_member(chat_id=channel, user_id=user_id)
    except TelegramAPIError as e:
        logger.warning(
            "subscription_check_failed",
            user_id=user_id,
            channel=channel,
            error=str(e),
        )
        return True

    status = getattr(member.status, "value", member.status)
    return status in SUBSCRIBED_MEMBER_STATUSES
