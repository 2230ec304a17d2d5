"""
Конфигурация уровней обучения.

Определяет фиксированный набор классов/курсов, который ученик
выбирает при отправке вопроса, и раскладку кнопок выбора.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class GradeLevel:
    """
    Уровень обучения.

    Attributes:
        code: Код для хранения и callback_data (grade6 ... university)
        label: Название для отображения
    """
    code: str
    label: str


GRADES: Dict[str, GradeLevel] = {
    "grade6": GradeLevel("grade6", "Grade 6"),
    "grade7": GradeLevel("grade7", "Grade 7"),
    "grade8": GradeLevel("grade8", "Grade 8"),
    "grade9": GradeLevel("grade9", "Grade 9"),
    "grade10": GradeLevel("grade10", "Grade 10"),
    "grade11": GradeLevel("grade11", "Grade 11"),
    "grade12": GradeLevel("grade12", "Grade 12"),
    "university": GradeLevel("university", "University"),
}

# Ряды клавиатуры выбора уровня
GRADE_ROWS: List[List[str]] = [
    ["grade6", "grade7", "grade8"],
    ["grade9", "grade10"],
    ["grade11", "grade12"],
    ["university"],
]


def get_grade(code: str) -> Optional[GradeLevel]:
    """Получить уровень по коду (None если код неизвестен)."""
    return GRADES.get(code)


def is_valid_grade(code: str) -> bool:
    """Проверка, что код входит в фиксированный набор уровней."""
    return code in GRADES


def format_grade_level(code: Optional[str]) -> str:
    """Название уровня для отображения (сам код, если он неизвестен)."""
    if not code:
        return ""
    grade = GRADES.get(code)
    return grade.label if grade else code
