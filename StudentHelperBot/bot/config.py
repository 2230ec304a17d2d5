"""
Конфигурация приложения.

Загружает настройки из .env файла с использованием Pydantic Settings.
Все секреты и настройки должны храниться в .env файле.
"""

import re
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# Корневая директория проекта (StudentHelperBot/)
BASE_DIR = Path(__file__).resolve().parent.parent

# Ссылка на канал вида https://t.me/name или t.me/name
CHANNEL_LINK_PATTERN = re.compile(r"t\.me/(.+)$", re.IGNORECASE)


class Settings(BaseSettings):
    """
    Настройки приложения.

    Загружает конфигурацию из переменных окружения и .env файла.
    Все настройки типизированы и валидируются при запуске.
    """

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # ========== Telegram ==========
    telegram_bot_token: str
    channel_id: Optional[str] = None  # ID канала (-100...) или @username
    channel_link: Optional[str] = None  # Публичная ссылка на канал
    admin_ids_str: str = ""  # Начальные админы через запятую: "123,456,789"
    support_username: str = ""  # Username поддержки (без @)

    # ========== Database ==========
    database_url: str = f"sqlite+aiosqlite:///{BASE_DIR / 'data' / 'database.sqlite'}"

    # ========== Application Settings ==========
    debug: bool = False
    min_question_length: int = 5
    min_answer_length: int = 3
    broadcast_delay: float = 0.1  # Пауза между сообщениями рассылки

    # ========== Timeouts (seconds) ==========
    request_timeout: float = 30.0  # Запросы к Telegram Bot API
    db_timeout: float = 15.0  # Запись статуса модерации

    # ========== Health Check ==========
    health_enabled: bool = True
    health_host: str = "0.0.0.0"
    health_port: int = 3000

    # ========== Computed Properties ==========
    @property
    def admin_ids(self) -> List[int]:
        """
        Список ID начальных администраторов.

        Используется только для первичного заполнения флага is_admin
        при старте бота (см. database.admin_crud.seed_admins).
        admin_ids_str должен быть в формате: "123456,789012,345678"
        """
        admins = []

        for id_str in self.admin_ids_str.split(","):
            id_str = id_str.strip()
            if id_str.isdigit() and int(id_str) not in admins:
                admins.append(int(id_str))

        return admins

    @property
    def channel_identifier(self) -> Optional[str]:
        """
        Идентификатор канала для Bot API.

        Приоритет: channel_id, затем username из channel_link
        (https://t.me/YourChannel -> @YourChannel).
        """
        if self.channel_id:
            return self.channel_id.strip()

        if self.channel_link:
            match = CHANNEL_LINK_PATTERN.search(self.channel_link.strip())
            if match:
                username = match.group(1).lstrip("@/").rstrip("/")
                if username:
                    return f"@{username}"

        return None

    @property
    def channel_url(self) -> Optional[str]:
        """Публичная ссылка на канал для кнопки подписки."""
        if self.channel_link:
            return self.channel_link.strip()

        identifier = self.channel_identifier
        if identifier and identifier.startswith("@"):
            return f"https://t.me/{identifier[1:]}"

        return None


# Глобальный объект настроек (singleton)
settings = Settings()
