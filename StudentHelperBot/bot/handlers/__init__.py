"""
Инициализация модуля handlers.

Экспортирует все роутеры для регистрации в диспетчере.
"""

from aiogram import Router

from .admin import router as admin_router
from .start import router as start_router
from .questions import router as questions_router
from .answers import router as answers_router
from .common import router as common_router


def get_main_router() -> Router:
    """
    Создаёт и настраивает главный роутер.

    Включает все дочерние роутеры в правильном порядке.
    Порядок важен: команды проверяются раньше обработчиков
    состояний, иначе /ask во время ответа стал бы текстом ответа.

    Returns:
        Router: Настроенный главный роутер
    """
    main_router = Router(name="main")

    # 1. Команды администратора и модерация
    # 2. /start, /help, онбординг и меню
    # 3. Вопросы (/ask, /cancel, /myquestions, ввод вопроса, уровень)
    # 4. Ответы, реакции и реплики
    # 5. Общие обработчики (catch-all)
    main_router.include_router(admin_router)
    main_router.include_router(start_router)
    main_router.include_router(questions_router)
    main_router.include_router(answers_router)
    main_router.include_router(common_router)

    return main_router


__all__ = [
    "get_main_router",
    "admin_router",
    "start_router",
    "questions_router",
    "answers_router",
    "common_router",
]
