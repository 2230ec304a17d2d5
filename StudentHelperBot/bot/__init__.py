"""
Модуль Telegram-бота Student Helper.

Содержит:
- handlers/ - обработчики команд и сообщений
- keyboards/ - клавиатуры Telegram
- middlewares/ - проверка подписки
- config.py - конфигурация из .env
- session.py - сессия диалога поверх FSM
- main.py - точка входа
"""

from bot.config import settings

__all__ = ["settings"]
