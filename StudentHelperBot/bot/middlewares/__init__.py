"""
Middleware бота.

Содержит:
- SubscriptionMiddleware - проверка онбординга и подписки на канал
- (UserMiddleware и LoggingMiddleware из bot/middleware.py)
"""

from bot.middlewares.subscription import SubscriptionMiddleware, is_allowed_without_gate

__all__ = [
    "SubscriptionMiddleware",
    "is_allowed_without_gate",
]
