"""
FSM States для управления состояниями диалога.

Отсутствие состояния означает idle: пользователь ничего не вводит.
"""

from aiogram.fsm.state import State, StatesGroup


class QAStates(StatesGroup):
    """
    Состояния вопросов, ответов и реплик.

    Флоу вопроса:
    awaiting_question → awaiting_grade → idle (вопрос сохранён)

    Флоу ответа:
    awaiting_answer → awaiting_answer (подтверждение) → idle (ответ добавлен)

    Флоу реплики:
    awaiting_reply → idle (реплика добавлена)
    """

    # Ожидание текста или медиа вопроса
    awaiting_question = State()

    # Выбор уровня обучения (черновик вопроса в data)
    awaiting_grade = State()

    # Ответ на вопрос (question_id, черновик и флаг подтверждения в data)
    awaiting_answer = State()

    # Реплика к ответу (question_id и answer_index в data)
    awaiting_reply = State()
