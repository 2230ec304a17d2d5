"""
Подключение к базе данных и управление сессиями.

Модуль предоставляет:
- Async engine с конфигурацией пула под тип БД
- Фабрику асинхронных сессий
- Context manager для безопасной работы с сессиями
- Функции инициализации и закрытия БД
- Статистику и health check для БД
"""

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from bot.config import settings

# Логгер для модуля БД
logger = structlog.get_logger()


# ============================================================
# КОНФИГУРАЦИЯ CONNECTION POOL
# ============================================================

# SQLite в памяти - один общий коннект (StaticPool).
# SQLite файл - отдельный коннект на сессию (NullPool), чтобы
# параллельные обработчики не делили одну транзакцию.
# PostgreSQL - стандартный пул.
POOL_CONFIG = {
    "sqlite_memory": {
        "poolclass": StaticPool,
        "connect_args": {
            "check_same_thread": False,
        },
    },
    "sqlite": {
        "poolclass": NullPool,
        "connect_args": {
            "check_same_thread": False,
            "timeout": 30,
        },
    },
    "postgresql": {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    },
}


def _sqlite_file_path(database_url: str) -> Optional[Path]:
    """Путь к файлу SQLite (None для других БД и для :memory:)."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    return Path(url.database)


def get_pool_config(database_url: str) -> Dict[str, Any]:
    """Получить конфигурацию пула для БД."""
    db_url = database_url.lower()

    if "sqlite" in db_url:
        if _sqlite_file_path(database_url) is None:
            return POOL_CONFIG["sqlite_memory"]
        return POOL_CONFIG["sqlite"]
    elif "postgresql" in db_url or "postgres" in db_url:
        return POOL_CONFIG["postgresql"]
    else:
        # Дефолтная конфигурация
        return {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,
        }


# Создаём async engine
pool_config = get_pool_config(settings.database_url)
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,  # SQL логи в debug режиме
    **pool_config,
)


if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Фабрика асинхронных сессий
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# ============================================================
# СТАТИСТИКА
# ============================================================

class DatabaseStats:
    """Класс для сбора статистики БД."""

    def __init__(self):
        self.query_count = 0
        self.error_count = 0
        self.slow_queries = 0
        self.total_time_ms = 0.0

    def record_query(self, duration_ms: float, is_slow: bool = False):
        """Записать метрику сессии."""
        self.query_count += 1
        self.total_time_ms += duration_ms
        if is_slow:
            self.slow_queries += 1

    def record_error(self):
        """Записать ошибку."""
        self.error_count += 1

    @property
    def avg_query_time_ms(self) -> float:
        if self.query_count == 0:
            return 0.0
        return self.total_time_ms / self.query_count

    def get_stats(self) -> Dict[str, Any]:
        return {
            "query_count": self.query_count,
            "error_count": self.error_count,
            "slow_queries": self.slow_queries,
            "avg_query_time_ms": round(self.avg_query_time_ms, 2),
        }


# Глобальная статистика
db_stats = DatabaseStats()

# Порог медленной сессии (мс)
SLOW_QUERY_THRESHOLD_MS = 100.0


async def init_db() -> None:
    """
    Инициализация базы данных.

    Создаёт все таблицы если их нет.
    Вызывается при старте бота.
    """
    # Импорт здесь чтобы избежать circular import
    from database.models import Base

    # Создаём директорию для файла SQLite
    db_path = _sqlite_file_path(settings.database_url)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("database_initialized", backend=engine.dialect.name)


async def close_db() -> None:
    """
    Закрытие соединения с базой данных.

    Вызывается при остановке бота для корректного
    освобождения ресурсов.
    """
    await engine.dispose()
    logger.info("database_closed")


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Контекстный менеджер для работы с сессией БД.

    Автоматически выполняет commit при успехе и rollback при ошибке.
    Гарантирует закрытие сессии в любом случае.

    Использование:
        async with get_session() as session:
            result = await session.execute(query)

    Yields:
        AsyncSession: Асинхронная сессия SQLAlchemy
    """
    session = async_session_factory()
    start_time = time.time()

    try:
        yield session
        await session.commit()

        duration_ms = (time.time() - start_time) * 1000
        is_slow = duration_ms > SLOW_QUERY_THRESHOLD_MS
        db_stats.record_query(duration_ms, is_slow)

        if is_slow:
            logger.warning(
                "slow_database_operation",
                duration_ms=round(duration_ms, 2),
            )

    except SQLAlchemyError as e:
        await session.rollback()
        db_stats.record_error()
        logger.error("database_session_error", error=str(e))
        raise
    except Exception:
        # Ожидаемые ошибки (NotFound, InvalidState) - только откат
        await session.rollback()
        raise
    finally:
        await session.close()


# ============================================================
# HEALTH CHECK
# ============================================================

async def health_check() -> Dict[str, Any]:
    """
    Проверка здоровья БД.

    Returns:
        Словарь с результатами проверки
    """
    result = {
        "status": "unknown",
        "latency_ms": None,
        "error": None,
    }

    start_time = time.time()

    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))

        result["status"] = "healthy"
        result["latency_ms"] = round((time.time() - start_time) * 1000, 2)

    except Exception as e:
        result["status"] = "unhealthy"
        result["error"] = str(e)
        logger.error("database_health_check_failed", error=str(e))

    return result
