"""
Модуль утилит Student Helper Bot.

Содержит:
- logging_config.py - конфигурация логирования
- health.py - HTTP health check (aiohttp)
"""

from .logging_config import setup_logging, filter_sensitive_data
from .health import HealthServer


__all__ = [
    # Logging
    "setup_logging",
    "filter_sensitive_data",
    # Health
    "HealthServer",
]
