"""
Модуль базы данных Student Helper Bot.

Содержит:
- models.py - SQLAlchemy модели (User, Question, Answer, Reply, AdminAction)
- crud.py - CRUD операции (пользователи, вопросы, ответы, реакции, реплики)
- admin_crud.py - администраторы, баны, журнал действий
- database.py - подключение к БД, async engine
"""

from database.database import close_db, get_session, health_check, init_db
from database.models import (
    AdminAction,
    Answer,
    Base,
    Question,
    Reply,
    User,
)
from database.crud import (
    # Users
    get_user,
    upsert_user,
    mark_subscribed,
    complete_onboarding,
    get_all_user_ids,
    # Questions
    create_question,
    get_question,
    count_answers,
    list_pending_questions,
    get_user_questions,
    set_question_status,
    set_channel_message_id,
    # Answers
    append_answer,
    get_answer,
    record_reaction,
    append_reply,
    # Stats
    get_stats,
)


__all__ = [
    # Database
    "init_db",
    "close_db",
    "get_session",
    "health_check",
    # Models
    "Base",
    "User",
    "Question",
    "Answer",
    "Reply",
    "AdminAction",
    # CRUD - Users
    "get_user",
    "upsert_user",
    "mark_subscribed",
    "complete_onboarding",
    "get_all_user_ids",
    # CRUD - Questions
    "create_question",
    "get_question",
    "count_answers",
    "list_pending_questions",
    "get_user_questions",
    "set_question_status",
    "set_channel_message_id",
    # CRUD - Answers
    "append_answer",
    "get_answer",
    "record_reaction",
    "append_reply",
    # CRUD - Stats
    "get_stats",
]
