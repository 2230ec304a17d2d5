"""
Конфигурация логирования.

Модуль обеспечивает:
- Структурированное логирование через structlog поверх stdlib logging
- Ротацию файлов логов (общий лог и лог ошибок)
- Фильтрацию чувствительных данных (токены, телефоны)
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List

import structlog
from structlog.processors import CallsiteParameter


# ============================================================
# КОНСТАНТЫ
# ============================================================

LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# Чувствительные поля для фильтрации
SENSITIVE_FIELDS = {
    "token",
    "api_key",
    "password",
    "secret",
    "authorization",
    "phone",
}

REDACTED = "[REDACTED]"


# ============================================================
# ПРОЦЕССОРЫ ДЛЯ STRUCTLOG
# ============================================================

def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS)


def filter_sensitive_data(
    logger: Any,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Процессор для фильтрации чувствительных данных из логов.

    Заменяет значения полей с токенами/телефонами на [REDACTED],
    в том числе на первом уровне вложенных dict.
    """
    for key, value in list(event_dict.items()):
        if _is_sensitive(key):
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                nested_key: REDACTED if _is_sensitive(str(nested_key)) else nested_value
                for nested_key, nested_value in value.items()
            }

    return event_dict


def add_app_context(
    logger: Any,
    method_name: str,
    event_dict: Dict[str, Any],
) -> Dict[str, Any]:
    """Процессор для добавления контекста приложения."""
    event_dict["app"] = "student_helper_bot"
    return event_dict


# ============================================================
# НАСТРОЙКА ЛОГГЕРОВ
# ============================================================

def setup_file_handlers(log_level: int = logging.INFO) -> List[logging.Handler]:
    """
    Создание файловых обработчиков с ротацией.

    Returns:
        Список обработчиков логов
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    main_handler = RotatingFileHandler(
        LOG_DIR / "bot.log",
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    main_handler.setLevel(log_level)
    main_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    # Лог ошибок (только ERROR и выше)
    error_handler = RotatingFileHandler(
        LOG_DIR / "errors.log",
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    return [main_handler, error_handler]


def setup_logging(debug: bool = False, log_to_file: bool = True) -> structlog.stdlib.BoundLogger:
    """
    Настройка логирования.

    В режиме debug использует ConsoleRenderer (цветной вывод),
    в production - JSONRenderer (структурированный JSON).

    Args:
        debug: Режим отладки (verbose вывод)
        log_to_file: Записывать логи в файл

    Returns:
        Настроенный логгер
    """
    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    if log_to_file:
        for handler in setup_file_handlers(log_level):
            root_logger.addHandler(handler)

    # Уровни для сторонних библиотек
    logging.getLogger("aiogram").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    if debug:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.CallsiteParameterAdder(
                [
                    CallsiteParameter.FILENAME,
                    CallsiteParameter.FUNC_NAME,
                    CallsiteParameter.LINENO,
                ]
            ),
            add_app_context,
            filter_sensitive_data,
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()
