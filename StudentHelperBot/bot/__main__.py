"""Запуск бота: python -m bot"""

from bot.main import run

run()
