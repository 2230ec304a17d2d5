"""
CRUD операции для работы с базой данных.

Все функции асинхронные и используют get_session() для
безопасной работы с транзакциями.

Изменения общих документов (добавление ответа, реплики, реакции,
смена статуса) выполняются одним атомарным SQL выражением, поэтому
параллельные обработчики не теряют данные друг друга.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import (
    BigInteger,
    Boolean,
    Integer,
    String,
    Text,
    desc,
    func,
    insert,
    literal,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from config.constants import ANSWER_APPEND_RETRIES
from core.content import ContentPayload
from core.exceptions import ExternalTransientFailure, InvalidState, NotFound, ValidationFailure
from database.database import get_session
from database.models import (
    STATUS_APPROVED,
    STATUS_DECLINED,
    STATUS_PENDING,
    Answer,
    Question,
    Reply,
    User,
)


# Логгер
logger = structlog.get_logger()

ANSWER_NOT_FOUND_MESSAGE = "❌ Answer not found"
NOT_APPROVED_MESSAGE = "❌ This question is not available for answers yet."


# ==================== USERS ====================

async def get_user(telegram_id: int) -> Optional[User]:
    """
    Получить пользователя по Telegram ID.

    Args:
        telegram_id: ID пользователя в Telegram

    Returns:
        User или None если не найден
    """
    async with get_session() as session:
        result = await session.execute(
            select(User).where(User.telegram_id == telegram_id)
        )
        return result.scalar_one_or_none()


async def upsert_user(
    telegram_id: int,
    username: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> Tuple[User, bool]:
    """
    Создать пользователя или обновить профиль существующего.

    Вызывается на каждом входящем апдейте, поэтому идемпотентна.
    Флаги онбординга и роли не трогает.

    Returns:
        Tuple[User, created]: Пользователь и флаг (True если создан)
    """
    async with get_session() as session:
        result = await session.execute(
            select(User).where(User.telegram_id == telegram_id)
        )
        user = result.scalar_one_or_none()

        if user:
            if username is not None and user.username != username:
                user.username = username
            if first_name is not None and user.first_name != first_name:
                user.first_name = first_name
            if last_name is not None and user.last_name != last_name:
                user.last_name = last_name
            user.last_active = datetime.utcnow()
            return user, False

        user = User(
            telegram_id=telegram_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            last_active=datetime.utcnow(),
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)

        logger.info(
            "user_created",
            telegram_id=telegram_id,
            username=username,
        )

        return user, True


async def mark_subscribed(telegram_id: int) -> bool:
    """Отметить подтверждённую подписку на канал."""
    async with get_session() as session:
        result = await session.execute(
            update(User)
            .where(User.telegram_id == telegram_id)
            .values(has_subscribed_to_channel=True)
        )
        return result.rowcount > 0


async def complete_onboarding(telegram_id: int, phone_number: str) -> bool:
    """
    Сохранить контакт и завершить онбординг.

    onboarding_completed только устанавливается и никогда не сбрасывается.

    Returns:
        True если пользователь найден
    """
    async with get_session() as session:
        result = await session.execute(
            update(User)
            .where(User.telegram_id == telegram_id)
            .values(
                phone_number=phone_number,
                has_shared_contact=True,
                onboarding_completed=True,
            )
        )

        success = result.rowcount > 0
        if success:
            logger.info("onboarding_completed", telegram_id=telegram_id)

        return success


async def get_all_user_ids(include_banned: bool = False) -> List[int]:
    """Telegram ID всех пользователей (для рассылки)."""
    async with get_session() as session:
        query = select(User.telegram_id).order_by(User.id)
        if not include_banned:
            query = query.where(User.is_banned.is_(False))
        result = await session.execute(query)
        return list(result.scalars().all())


# ==================== QUESTIONS ====================

async def create_question(
    user_id: int,
    payload: ContentPayload,
    grade_level: str,
    username: Optional[str] = None,
    first_name: Optional[str] = None,
) -> Question:
    """
    Создать вопрос в статусе pending.

    Args:
        user_id: Telegram ID автора
        payload: Содержимое вопроса
        grade_level: Код уровня обучения

    Returns:
        Созданный Question
    """
    async with get_session() as session:
        question = Question(
            user_id=user_id,
            username=username,
            first_name=first_name,
            content=payload.content,
            media_type=payload.media_type.value,
            media_id=payload.media_id,
            media_caption=payload.media_caption,
            grade_level=grade_level,
            status=STATUS_PENDING,
        )
        session.add(question)
        await session.flush()
        await session.refresh(question, attribute_names=["created_at"])

        logger.info(
            "question_created",
            question_id=question.id,
            user_id=user_id,
            media_type=payload.media_type.value,
            grade_level=grade_level,
        )

        return question


async def get_question(question_id: str, with_answers: bool = False) -> Optional[Question]:
    """
    Получить вопрос по ID.

    Args:
        question_id: ID вопроса
        with_answers: Загрузить ответы и реплики

    Returns:
        Question или None
    """
    async with get_session() as session:
        query = select(Question).where(Question.id == question_id)
        if with_answers:
            query = query.options(
                selectinload(Question.answers).selectinload(Answer.replies)
            )
        result = await session.execute(query)
        return result.scalar_one_or_none()


async def count_answers(question_id: str) -> int:
    """Количество ответов на вопрос."""
    async with get_session() as session:
        result = await session.execute(
            select(func.count(Answer.id)).where(Answer.question_id == question_id)
        )
        return result.scalar() or 0


async def list_pending_questions(limit: int = 10) -> List[Question]:
    """Вопросы на модерации, старые первыми."""
    async with get_session() as session:
        result = await session.execute(
            select(Question)
            .where(Question.status == STATUS_PENDING)
            .order_by(Question.created_at, Question.id)
            .limit(limit)
        )
        return list(result.scalars().all())


async def get_user_questions(user_id: int, limit: int = 10) -> List[Question]:
    """Последние вопросы пользователя (новые первыми) с ответами."""
    async with get_session() as session:
        result = await session.execute(
            select(Question)
            .where(Question.user_id == user_id)
            .options(selectinload(Question.answers))
            .order_by(desc(Question.created_at))
            .limit(limit)
        )
        return list(result.scalars().all())


async def set_question_status(question_id: str, status: str, actor_id: int) -> Question:
    """
    Перевести вопрос из pending в approved или declined.

    Условный UPDATE ... WHERE status = 'pending': из двух параллельных
    модераций успешна только одна.

    Raises:
        NotFound: Вопроса нет
        InvalidState: Вопрос уже промодерирован
    """
    if status not in (STATUS_APPROVED, STATUS_DECLINED):
        raise ValueError(f"Unsupported status transition: {status}")

    now = datetime.utcnow()
    if status == STATUS_APPROVED:
        values = {"status": status, "approved_by": actor_id, "approved_at": now}
    else:
        values = {"status": status, "declined_by": actor_id, "declined_at": now}

    async with get_session() as session:
        result = await session.execute(
            update(Question)
            .where(
                Question.id == question_id,
                Question.status == STATUS_PENDING,
            )
            .values(**values)
        )

        question = await session.get(Question, question_id)

        if question is None:
            raise NotFound()

        if result.rowcount == 0:
            logger.warning(
                "question_status_change_rejected",
                question_id=question_id,
                current_status=question.status,
                requested_status=status,
            )
            raise InvalidState(f"❌ Question was already {question.status}.")

        await session.refresh(question)

        logger.info(
            "question_status_changed",
            question_id=question_id,
            status=status,
            actor_id=actor_id,
        )

        return question


async def set_channel_message_id(question_id: str, message_id: int) -> bool:
    """
    Сохранить ID поста в канале.

    Устанавливается только один раз: если ID уже есть, ничего не меняется.

    Returns:
        True если ID сохранён
    """
    async with get_session() as session:
        result = await session.execute(
            update(Question)
            .where(
                Question.id == question_id,
                Question.channel_message_id.is_(None),
            )
            .values(channel_message_id=message_id)
        )
        return result.rowcount > 0


# ==================== ANSWERS ====================

def _payload_columns(payload: ContentPayload) -> Dict[str, Any]:
    return {
        "content": payload.content,
        "media_type": payload.media_type.value,
        "media_id": payload.media_id,
        "media_caption": payload.media_caption,
    }


async def append_answer(
    question_id: str,
    user_id: int,
    username: Optional[str],
    payload: ContentPayload,
    is_author_update: bool = False,
) -> Answer:
    """
    Добавить ответ к одобренному вопросу.

    Одно выражение INSERT ... SELECT вычисляет следующую позицию
    и вставляет строку только если вопрос одобрен. Уникальный индекс
    (question_id, position) отсекает гонку, конфликт повторяется.

    Raises:
        NotFound: Вопроса нет
        InvalidState: Вопрос не одобрен
        ExternalTransientFailure: Конфликт позиции не разрешился за ANSWER_APPEND_RETRIES попыток
    """
    next_position = (
        select(func.coalesce(func.max(Answer.position) + 1, 0))
        .where(Answer.question_id == question_id)
        .scalar_subquery()
    )
    columns = _payload_columns(payload)

    source = select(
        Question.id,
        next_position,
        literal(user_id, BigInteger),
        literal(username, String),
        literal(columns["content"], Text),
        literal(columns["media_type"], String),
        literal(columns["media_id"], String),
        literal(columns["media_caption"], Text),
        literal(is_author_update, Boolean),
        literal(0, Integer),
        literal(0, Integer),
    ).where(
        Question.id == question_id,
        Question.status == STATUS_APPROVED,
    )

    statement = (
        insert(Answer)
        .from_select(
            [
                "question_id",
                "position",
                "user_id",
                "username",
                "content",
                "media_type",
                "media_id",
                "media_caption",
                "is_author_update",
                "right_count",
                "wrong_count",
            ],
            source,
        )
        .returning(Answer.id)
    )

    for attempt in range(1, ANSWER_APPEND_RETRIES + 1):
        try:
            async with get_session() as session:
                result = await session.execute(statement)
                answer_id = result.scalar_one_or_none()

                if answer_id is None:
                    question = await session.get(Question, question_id)
                    if question is None:
                        raise NotFound()
                    raise InvalidState(NOT_APPROVED_MESSAGE)

                answer = await session.get(Answer, answer_id)

                logger.info(
                    "answer_appended",
                    question_id=question_id,
                    position=answer.position,
                    user_id=user_id,
                    is_author_update=is_author_update,
                )
                return answer

        except IntegrityError:
            logger.warning(
                "answer_position_conflict",
                question_id=question_id,
                attempt=attempt,
            )

    raise ExternalTransientFailure()


async def _get_answer_id(session, question_id: str, position: int) -> int:
    """
    ID ответа по позиции внутри вопроса.

    Raises:
        NotFound: Вопроса нет
        ValidationFailure: Позиция вне диапазона
    """
    if position < 0:
        raise ValidationFailure(ANSWER_NOT_FOUND_MESSAGE)

    result = await session.execute(
        select(Answer.id).where(
            Answer.question_id == question_id,
            Answer.position == position,
        )
    )
    answer_id = result.scalar_one_or_none()

    if answer_id is None:
        question = await session.get(Question, question_id)
        if question is None:
            raise NotFound()
        raise ValidationFailure(ANSWER_NOT_FOUND_MESSAGE)

    return answer_id


async def get_answer(question_id: str, position: int) -> Answer:
    """
    Ответ по позиции.

    Raises:
        NotFound, ValidationFailure
    """
    async with get_session() as session:
        answer_id = await _get_answer_id(session, question_id, position)
        return await session.get(Answer, answer_id)


async def record_reaction(question_id: str, position: int, kind: str) -> Tuple[int, int]:
    """
    Атомарно увеличить счётчик реакции ответа.

    Args:
        kind: "right" или "wrong"

    Returns:
        (right_count, wrong_count) после увеличения

    Raises:
        ValidationFailure: Неизвестная реакция или позиция вне диапазона
        NotFound: Вопроса нет
    """
    if kind == "right":
        column = Answer.right_count
    elif kind == "wrong":
        column = Answer.wrong_count
    else:
        raise ValidationFailure("❌ Invalid")

    async with get_session() as session:
        answer_id = await _get_answer_id(session, question_id, position)

        result = await session.execute(
            update(Answer)
            .where(Answer.id == answer_id)
            .values({column: column + 1})
            .returning(Answer.right_count, Answer.wrong_count)
        )
        right_count, wrong_count = result.one()

        logger.info(
            "reaction_recorded",
            question_id=question_id,
            position=position,
            kind=kind,
        )

        return right_count, wrong_count


async def append_reply(
    question_id: str,
    position: int,
    user_id: int,
    username: Optional[str],
    payload: ContentPayload,
) -> Reply:
    """
    Добавить реплику к ответу.

    Raises:
        NotFound: Вопроса нет
        ValidationFailure: Позиция вне диапазона
    """
    async with get_session() as session:
        answer_id = await _get_answer_id(session, question_id, position)

        reply = Reply(
            answer_id=answer_id,
            user_id=user_id,
            username=username,
            **_payload_columns(payload),
        )
        session.add(reply)
        await session.flush()
        await session.refresh(reply)

        logger.info(
            "reply_appended",
            question_id=question_id,
            position=position,
            user_id=user_id,
        )

        return reply


# ==================== STATS ====================

async def get_stats() -> Dict[str, int]:
    """
    Статистика для админа.

    Returns:
        Словарь: пользователи, вопросы по статусам, ответы
    """
    async with get_session() as session:
        total_users = (await session.execute(select(func.count(User.id)))).scalar() or 0

        status_rows = await session.execute(
            select(Question.status, func.count(Question.id)).group_by(Question.status)
        )
        by_status = {status: count for status, count in status_rows.all()}

        total_answers = (await session.execute(select(func.count(Answer.id)))).scalar() or 0

        return {
            "total_users": total_users,
            "total_questions": sum(by_status.values()),
            "pending_questions": by_status.get(STATUS_PENDING, 0),
            "approved_questions": by_status.get(STATUS_APPROVED, 0),
            "declined_questions": by_status.get(STATUS_DECLINED, 0),
            "total_answers": total_answers,
        }
