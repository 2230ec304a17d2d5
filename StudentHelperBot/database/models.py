"""
SQLAlchemy модели базы данных.

Модели:
- User: пользователи Telegram (роли администраторов, бан, онбординг)
- Question: вопросы учеников
- Answer: ответы на вопросы (адресуются позицией внутри вопроса)
- Reply: реплики к ответам
- AdminAction: журнал действий администраторов
"""

import secrets
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


# Статусы вопроса
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_DECLINED = "declined"

# Роли администраторов и их права по умолчанию
ADMIN_PERMISSIONS = [
    "manage_users",
    "manage_content",
    "manage_settings",
    "send_broadcast",
    "view_stats",
    "approve_content",
    "handle_reports",
]

ROLE_PERMISSIONS = {
    "super": list(ADMIN_PERMISSIONS),
    "content": ["manage_content", "approve_content", "view_stats"],
    "support": ["view_stats", "handle_reports"],
}


def generate_question_id() -> str:
    """Непрозрачный ID вопроса: 24 шестнадцатеричных символа."""
    return secrets.token_hex(12)


class Base(DeclarativeBase):
    """Базовый класс для всех моделей."""
    pass


class User(Base):
    """
    Модель пользователя.

    Хранит профиль Telegram, роль администратора, бан
    и прогресс онбординга (подписка на канал и контакт).

    Attributes:
        telegram_id: Уникальный ID пользователя в Telegram
        username: Username в Telegram (может меняться)
        phone_number: Телефон из поделенного контакта
        is_admin: Флаг администратора
        admin_role: Роль администратора (super, content, support)
        admin_permissions: Список прав администратора
        is_banned: Флаг блокировки
        onboarding_completed: Онбординг пройден (никогда не сбрасывается)
    """

    __tablename__ = "users"

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # Telegram данные
    telegram_id: Mapped[int] = mapped_column(
        BigInteger,
        unique=True,
        nullable=False,
        index=True,
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    first_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    last_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    phone_number: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
    )

    # Администрирование
    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        index=True,
    )
    admin_role: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    admin_permissions: Mapped[List[str]] = mapped_column(
        JSON,
        default=list,
    )
    admin_added_by: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )
    admin_added_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    # Блокировка
    is_banned: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    ban_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    banned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    banned_by: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )

    # Онбординг
    has_subscribed_to_channel: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    has_shared_contact: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    onboarding_completed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )

    # Активность
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
    )
    last_active: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def make_admin(self, role: str = "content", added_by: Optional[int] = None) -> None:
        """Назначить администратором с правами роли по умолчанию."""
        self.is_admin = True
        self.admin_role = role
        self.admin_permissions = list(ROLE_PERMISSIONS.get(role, []))
        self.admin_added_by = added_by
        self.admin_added_at = datetime.utcnow()

    def remove_admin(self) -> None:
        self.is_admin = False
        self.admin_role = None
        self.admin_permissions = []
        self.admin_added_by = None
        self.admin_added_at = None

    def ban(self, reason: str, banned_by: Optional[int] = None) -> None:
        self.is_banned = True
        self.ban_reason = reason
        self.banned_at = datetime.utcnow()
        self.banned_by = banned_by

    def unban(self) -> None:
        self.is_banned = False
        self.ban_reason = None
        self.banned_at = None
        self.banned_by = None

    def has_permission(self, permission: str) -> bool:
        """Проверка права администратора (super имеет все права)."""
        if not self.is_admin:
            return False
        if self.admin_role == "super":
            return True
        return permission in (self.admin_permissions or [])

    def __repr__(self) -> str:
        return f"<User(id={self.id}, tg={self.telegram_id}, admin={self.is_admin})>"


class Question(Base):
    """
    Вопрос ученика.

    Статус меняется только в одну сторону:
    pending -> approved или pending -> declined.
    channel_message_id устанавливается один раз при первой публикации.

    Attributes:
        id: 24 hex символа
        user_id: Telegram ID автора
        content: Текст или подпись медиа
        media_type: text, photo, video, audio, voice, document
        grade_level: Код уровня обучения
        status: pending, approved, declined
        channel_message_id: ID поста в канале
    """

    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'declined')",
            name="check_question_status_valid",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(24),
        primary_key=True,
        default=generate_question_id,
    )

    # Автор
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        index=True,
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    first_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    # Содержимое
    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    media_type: Mapped[str] = mapped_column(
        String(20),
        default="text",
    )
    media_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    media_caption: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    grade_level: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    # Модерация
    status: Mapped[str] = mapped_column(
        String(20),
        default=STATUS_PENDING,
        index=True,
    )
    approved_by: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    declined_by: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )
    declined_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    # Публикация
    channel_message_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # Relationships
    answers: Mapped[List["Answer"]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="Answer.position",
    )

    def regular_answers(self) -> List["Answer"]:
        """Ответы других пользователей (без дополнений автора)."""
        return [answer for answer in self.answers if not answer.is_author_update]

    def author_updates(self) -> List["Answer"]:
        """Дополнения, добавленные автором вопроса."""
        return [answer for answer in self.answers if answer.is_author_update]

    def answer_at(self, position: int) -> Optional["Answer"]:
        """Ответ по позиции (None если позиции нет)."""
        for answer in self.answers:
            if answer.position == position:
                return answer
        return None

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, status={self.status}, grade={self.grade_level})>"


class Answer(Base):
    """
    Ответ на вопрос.

    Позиция (0, 1, 2, ...) - единственный адрес ответа для реакций
    и реплик. Ответы только добавляются, позиции не меняются.

    Attributes:
        question_id: ID вопроса (FK)
        position: Порядковый номер ответа внутри вопроса
        is_author_update: Дополнение от автора вопроса
        right_count: Количество реакций "верно"
        wrong_count: Количество реакций "неверно"
    """

    __tablename__ = "answers"
    __table_args__ = (
        UniqueConstraint("question_id", "position", name="uq_answer_question_position"),
        CheckConstraint("right_count >= 0", name="check_answer_right_count"),
        CheckConstraint("wrong_count >= 0", name="check_answer_wrong_count"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    question_id: Mapped[str] = mapped_column(
        String(24),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Автор
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    # Содержимое
    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    media_type: Mapped[str] = mapped_column(
        String(20),
        default="text",
    )
    media_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    media_caption: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    is_author_update: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )

    # Реакции
    right_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    wrong_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # Relationships
    question: Mapped["Question"] = relationship(
        back_populates="answers",
    )
    replies: Mapped[List["Reply"]] = relationship(
        back_populates="answer",
        cascade="all, delete-orphan",
        order_by="Reply.id",
    )

    def __repr__(self) -> str:
        return f"<Answer(q={self.question_id}, pos={self.position}, right={self.right_count})>"


class Reply(Base):
    """
    Реплика к ответу.

    Реплики только добавляются и хранятся в порядке добавления.
    """

    __tablename__ = "answer_replies"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    answer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("answers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    media_type: Mapped[str] = mapped_column(
        String(20),
        default="text",
    )
    media_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    media_caption: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    answer: Mapped["Answer"] = relationship(
        back_populates="replies",
    )

    def __repr__(self) -> str:
        return f"<Reply(id={self.id}, answer_id={self.answer_id})>"


class AdminAction(Base):
    """
    Журнал действий администратора.

    Хранит модерацию вопросов, баны и изменения ролей для аудита.

    Attributes:
        admin_id: Telegram ID администратора
        action_type: Тип действия (approve, decline, ban, make_admin, ...)
        target: ID вопроса или Telegram ID пользователя
        details: Детали действия в JSON формате
    """

    __tablename__ = "admin_actions"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    admin_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        index=True,
    )
    action_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    target: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    details: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<AdminAction(id={self.id}, type={self.action_type}, admin={self.admin_id})>"
