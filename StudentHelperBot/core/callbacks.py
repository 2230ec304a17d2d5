"""
Формат callback_data и deep link payload.

Форматы фиксированы (кнопки уже опубликованных постов продолжают работать):
- grade_<gradeCode>
- approve_<questionId>, decline_<questionId>
- answer_<questionId>, view_<questionId>
- ans_right_<questionId>_<index>, ans_wrong_<questionId>_<index>,
  ans_reply_<questionId>_<index>

questionId - 24 шестнадцатеричных символа.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from core.exceptions import ValidationFailure


QUESTION_ID_RE = r"[0-9a-fA-F]{24}"

QUESTION_ID_PATTERN = re.compile(rf"^{QUESTION_ID_RE}$")
GRADE_PATTERN = re.compile(r"^grade_([a-z0-9]+)$")
MODERATION_PATTERN = re.compile(rf"^(approve|decline)_({QUESTION_ID_RE})$")
ANSWER_PATTERN = re.compile(rf"^answer_({QUESTION_ID_RE})$")
VIEW_PATTERN = re.compile(rf"^view_({QUESTION_ID_RE})$")
ANSWER_ACTION_PATTERN = re.compile(rf"^ans_(right|wrong|reply)_({QUESTION_ID_RE})_(\d+)$")

CANCEL_QUESTION = "cancel_question"

# Действия deep link (/start <action>_<questionId>)
DEEP_LINK_ACTIONS = ("answer", "view")


def is_valid_question_id(question_id: Optional[str]) -> bool:
    """Проверка формата ID вопроса (24 hex символа)."""
    return bool(question_id) and bool(QUESTION_ID_PATTERN.match(question_id))


def ensure_question_id(question_id: Optional[str]) -> str:
    """
    Проверить ID вопроса и привести к нижнему регистру.

    Raises:
        ValidationFailure: Неверный формат ID
    """
    if not is_valid_question_id(question_id):
        raise ValidationFailure("❌ Invalid question reference. Please try again.")
    return question_id.lower()


# ============================================================
# КОДИРОВАНИЕ
# ============================================================

def grade_data(grade_code: str) -> str:
    return f"grade_{grade_code}"


def approve_data(question_id: str) -> str:
    return f"approve_{question_id}"


def decline_data(question_id: str) -> str:
    return f"decline_{question_id}"


def answer_data(question_id: str) -> str:
    return f"answer_{question_id}"


def view_data(question_id: str) -> str:
    return f"view_{question_id}"


def answer_action_data(action: str, question_id: str, answer_index: int) -> str:
    """callback_data для реакции или реплики: ans_<action>_<id>_<index>."""
    return f"ans_{action}_{question_id}_{answer_index}"


def deep_link(bot_username: str, action: str, question_id: str) -> str:
    """Ссылка вида https://t.me/<bot>?start=<action>_<questionId>."""
    return f"https://t.me/{bot_username}?start={action}_{question_id}"


# ============================================================
# РАЗБОР
# ============================================================

def parse_answer_action(data: str) -> Tuple[str, str, int]:
    """
    Разобрать ans_<action>_<questionId>_<index>.

    Returns:
        (action, question_id, answer_index)

    Raises:
        ValidationFailure: Неверный формат
    """
    match = ANSWER_ACTION_PATTERN.match(data or "")
    if not match:
        raise ValidationFailure("❌ Invalid")
    action, question_id, index = match.groups()
    return action, question_id.lower(), int(index)


@dataclass(frozen=True)
class DeepLink:
    """Отложенное действие из /start <payload>."""

    action: str
    question_id: str

    def to_dict(self) -> dict:
        return {"action": self.action, "question_id": self.question_id}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["DeepLink"]:
        if not data or data.get("action") not in DEEP_LINK_ACTIONS:
            return None
        if not is_valid_question_id(data.get("question_id")):
            return None
        return cls(action=data["action"], question_id=data["question_id"])


def parse_start_payload(payload: Optional[str]) -> Optional[DeepLink]:
    """
    Разобрать payload команды /start.

    Неизвестные и некорректные payload игнорируются (None),
    тогда /start работает как обычно.
    """
    if not payload:
        return None

    payload = payload.strip()
    for action in DEEP_LINK_ACTIONS:
        prefix = f"{action}_"
        if payload.startswith(prefix):
            question_id = payload[len(prefix):].strip()
            if is_valid_question_id(question_id):
                return DeepLink(action=action, question_id=question_id.lower())
            return None

    return None
