"""
Валидация и санитизация пользовательского ввода.

Модуль обеспечивает:
- Ограничение длины текста
- Разбор аргументов админских команд
- Отображаемые имена пользователей
"""

import re
from typing import Optional


# ============================================================
# КОНСТАНТЫ
# ============================================================

MAX_USERNAME_LENGTH = 255
MAX_DISPLAY_NAME_LENGTH = 100

ALLOWED_USERNAME_CHARS = re.compile(r'^[a-zA-Z0-9_]+$')


# ============================================================
# ОСНОВНЫЕ ФУНКЦИИ САНИТИЗАЦИИ
# ============================================================

def truncate_text(text: Optional[str], max_length: int) -> str:
    """
    Обрезание текста до максимальной длины.

    Args:
        text: Исходный текст
        max_length: Максимальная длина (включая "...")

    Returns:
        Обрезанный текст
    """
    if not text:
        return ""

    if len(text) <= max_length:
        return text

    return text[:max_length - 3] + "..."


def sanitize_username(username: Optional[str]) -> Optional[str]:
    """
    Санитизация Telegram username.

    Args:
        username: Username пользователя

    Returns:
        Очищенный username или None
    """
    if not username:
        return None

    username = username.lstrip('@')[:MAX_USERNAME_LENGTH]

    if not ALLOWED_USERNAME_CHARS.match(username):
        return None

    return username


# ============================================================
# ВАЛИДАЦИЯ СПЕЦИФИЧНЫХ ФОРМАТОВ
# ============================================================

def validate_telegram_id(telegram_id: int) -> bool:
    """Telegram ID - положительное целое число."""
    return isinstance(telegram_id, int) and not isinstance(telegram_id, bool) and telegram_id > 0


def parse_telegram_id(value: Optional[str]) -> Optional[int]:
    """
    Разобрать Telegram ID из аргумента команды.

    Returns:
        ID или None если аргумент не является положительным числом
    """
    if not value:
        return None

    value = value.strip()
    if not value.isdigit():
        return None

    telegram_id = int(value)
    return telegram_id if validate_telegram_id(telegram_id) else None


def first_argument(args: Optional[str]) -> Optional[str]:
    """Первый аргумент команды (/approve <id> -> <id>)."""
    if not args:
        return None
    parts = args.split()
    return parts[0] if parts else None


# ============================================================
# УТИЛИТЫ ДЛЯ ОБРАБОТЧИКОВ
# ============================================================

def get_display_name(
    username: Optional[str],
    first_name: Optional[str],
    default: str = "Anonymous",
) -> str:
    """
    Отображаемое имя автора ответа или реплики.

    Приоритет: username, затем имя, затем default.
    """
    safe_username = sanitize_username(username)
    if safe_username:
        return safe_username

    if first_name and first_name.strip():
        return truncate_text(first_name.strip(), MAX_DISPLAY_NAME_LENGTH)

    return default
