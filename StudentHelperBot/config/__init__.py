"""
Модуль конфигурации.

Содержит:
- grades.py - уровни обучения для вопросов
- constants.py - константы приложения
"""

from .grades import (
    GradeLevel,
    GRADES,
    GRADE_ROWS,
    get_grade,
    is_valid_grade,
    format_grade_level,
)
from .constants import (
    MAX_MESSAGE_LENGTH,
    MAX_CAPTION_LENGTH,
    ANSWER_PREVIEW_LENGTH,
    PENDING_QUESTIONS_LIMIT,
    ANSWER_APPEND_RETRIES,
    SUBSCRIBED_MEMBER_STATUSES,
)


__all__ = [
    "GradeLevel",
    "GRADES",
    "GRADE_ROWS",
    "get_grade",
    "is_valid_grade",
    "format_grade_level",
    "MAX_MESSAGE_LENGTH",
    "MAX_CAPTION_LENGTH",
    "ANSWER_PREVIEW_LENGTH",
    "PENDING_QUESTIONS_LIMIT",
    "ANSWER_APPEND_RETRIES",
    "SUBSCRIBED_MEMBER_STATUSES",
]
