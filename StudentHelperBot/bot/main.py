"""
Точка входа Telegram-бота Student Helper.

Этот модуль инициализирует и запускает бота:
- Настраивает логирование
- Инициализирует БД и начальных администраторов
- Создаёт бота и диспетчер aiogram
- Регистрирует middleware и роутеры
- Запускает health check сервер и polling
"""

import asyncio
import sys
from pathlib import Path

import structlog
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage, SimpleEventIsolation

# Добавляем корень проекта в PYTHONPATH
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from bot.config import settings
from core.moderation import ModerationService
from database import close_db, init_db
from database.admin_crud import seed_admins
from utils.health import HealthServer
from utils.logging_config import setup_logging


logger = structlog.get_logger()


async def on_startup(bot: Bot) -> None:
    """
    Callback при старте бота.

    Логирует информацию о боте и предупреждает,
    если канал не настроен (одобренные вопросы не попадут в канал).
    """
    bot_info = await bot.me()

    logger.info(
        "bot_started",
        bot_username=bot_info.username,
        bot_id=bot_info.id,
        debug_mode=settings.debug,
        channel=settings.channel_identifier,
    )

    if not settings.channel_identifier:
        logger.warning("channel_not_configured", hint="Set CHANNEL_ID or CHANNEL_LINK")


async def on_shutdown(bot: Bot, moderation: ModerationService) -> None:
    """
    Callback при остановке бота.

    Дожидается фоновых обновлений клавиатур в канале
    и закрывает соединения.
    """
    logger.info("bot_stopping")

    await moderation.wait_pending()
    await close_db()

    logger.info("bot_stopped")


def create_dispatcher(bot: Bot) -> Dispatcher:
    """
    Диспетчер с middleware и роутерами.

    SimpleEventIsolation обрабатывает апдейты одного чата
    последовательно, поэтому сессия диалога не меняется параллельно.
    """
    dp = Dispatcher(storage=MemoryStorage(), events_isolation=SimpleEventIsolation())

    dp["moderation"] = ModerationService(bot, settings)

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    # Регистрация middleware (порядок важен!)
    from bot.middleware import LoggingMiddleware, UserMiddleware
    from bot.middlewares import SubscriptionMiddleware

    # Логирование
    dp.message.middleware(LoggingMiddleware())
    dp.callback_query.middleware(LoggingMiddleware())

    # Пользователь (создание, профиль, бан)
    dp.message.middleware(UserMiddleware())
    dp.callback_query.middleware(UserMiddleware())

    # Онбординг и подписка (после UserMiddleware: нужен data["user"])
    dp.message.middleware(SubscriptionMiddleware())
    dp.callback_query.middleware(SubscriptionMiddleware())

    logger.info("middleware_registered")

    # Глобальный обработчик ошибок
    from bot.handlers.error_handler import router as error_router
    dp.include_router(error_router)

    from bot.handlers import get_main_router
    dp.include_router(get_main_router())

    logger.info("routers_registered")

    return dp


async def main() -> None:
    """
    Главная функция запуска бота.

    Последовательность запуска:
    1. Настройка логирования
    2. Инициализация БД и начальных администраторов
    3. Инициализация бота и диспетчера
    4. Health check сервер
    5. Запуск polling
    """
    setup_logging(debug=settings.debug)

    logger.info("starting_bot", debug=settings.debug, seed_admins=len(settings.admin_ids))

    await init_db()
    seeded = await seed_admins(settings.admin_ids)
    logger.info("database_ready", seeded_admins=seeded)

    bot = Bot(
        token=settings.telegram_bot_token,
        session=AiohttpSession(timeout=settings.request_timeout),
        default=DefaultBotProperties(
            parse_mode=ParseMode.HTML,
            link_preview_is_disabled=True,
        ),
    )

    dp = create_dispatcher(bot)

    health_server = None
    if settings.health_enabled:
        health_server = HealthServer(settings.health_host, settings.health_port)
        await health_server.start()

    try:
        # Удаляем webhook на случай если был установлен ранее
        await bot.delete_webhook(drop_pending_updates=True)

        logger.info("polling_started")

        await dp.start_polling(
            bot,
            allowed_updates=dp.resolve_used_update_types(),
        )
    finally:
        if health_server is not None:
            await health_server.stop()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n⛔ Bot stopped by user")


if __name__ == "__main__":
    run()
