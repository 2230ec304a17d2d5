"""
Общие фикстуры тестов.

Переменные окружения задаются до импорта модулей проекта:
bot.config читает настройки, а database.database создаёт engine
при импорте. Тесты используют временный файл SQLite.
"""

import os
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="student_helper_tests_"))

os.environ["TELEGRAM_BOT_TOKEN"] = "123456:TEST-TOKEN"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR / 'test.sqlite'}"
os.environ["CHANNEL_ID"] = "@test_channel"
os.environ["ADMIN_IDS_STR"] = ""
os.environ["DEBUG"] = "false"

import pytest
import pytest_asyncio

from database.database import engine, init_db
from database.models import Base


BOT_USERNAME = "student_helper_test_bot"
CHANNEL = "@test_channel"


@pytest_asyncio.fixture
async def db():
    """Чистая схема БД на каждый тест."""
    await init_db()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def test_config():
    """Настройки для ModerationService (канал задан, без пауз)."""
    return SimpleNamespace(
        channel_identifier=CHANNEL,
        db_timeout=5.0,
        broadcast_delay=0,
    )


@pytest.fixture
def mock_bot():
    """
    Bot без сети.

    send_* возвращают сообщение с message_id, me() - username бота.
    """
    bot = AsyncMock()
    bot.me = AsyncMock(return_value=SimpleNamespace(username=BOT_USERNAME, id=42))
    sent = SimpleNamespace(message_id=777)
    for method in ("send_message", "send_photo", "send_video", "send_audio", "send_voice", "send_document"):
        setattr(bot, method, AsyncMock(return_value=sent))
    bot.edit_message_reply_markup = AsyncMock(return_value=True)
    return bot
