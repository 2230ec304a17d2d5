"""
Модерация вопросов и работа с каналом.

ModerationService объединяет операции, которые меняют общие данные
и затрагивают канал:
- approve / decline / republish - модерация (только администраторы)
- append_answer / append_reply / record_reaction - ответы, реплики, реакции
- refresh_channel_keyboard - обновление счётчика ответов в посте
- broadcast - рассылка всем пользователям
- notify_admins_of_new_question - уведомление админов о новом вопросе

Побочные уведомления (автору вопроса, администраторам, обновление
клавиатуры) выполняются по принципу best-effort: ошибка логируется
и не влияет на результат основной операции.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set, Tuple

import structlog
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from sqlalchemy.exc import SQLAlchemyError

from bot.config import settings
from bot.keyboards import get_moderation_keyboard
from core.access import is_admin
from core.callbacks import ensure_question_id
from core.content import ContentPayload
from core.exceptions import (
    ConfigurationMissing,
    ExternalTransientFailure,
    InvalidState,
    NotFound,
    QABotError,
    Unauthorized,
    ValidationFailure,
)
from core.publishing import ChannelPublisher, send_content
from database import admin_crud, crud
from database.models import STATUS_APPROVED, STATUS_DECLINED, Answer, Question, Reply
from templates.message_templates import (
    QUESTION_APPROVED_NOTICE,
    QUESTION_DECLINED_NOTICE,
    broadcast_text,
    new_question_admin_message,
)


logger = structlog.get_logger()

REACTION_KINDS = ("right", "wrong")


@dataclass
class BroadcastResult:
    """Итог рассылки."""

    total: int = 0
    success: int = 0
    failed: int = 0


@dataclass
class _RefreshLock:
    """Лок обновления клавиатуры одного вопроса и число его пользователей."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ModerationService:
    """
    Модерация вопросов и публикация в канал.

    Создаётся один раз при старте и передаётся в обработчики
    через workflow data диспетчера (аргумент moderation).
    """

    def __init__(self, bot: Bot, config: Any = None):
        self.bot = bot
        self.config = config or settings
        self.publisher = ChannelPublisher(bot, self.config)
        self._pending: Set[asyncio.Task] = set()
        self._refresh_locks: Dict[str, _RefreshLock] = {}

    # ==================== ПРОВЕРКИ ====================

    async def _require_admin(self, actor_id: int, action: str) -> None:
        if not await is_admin(actor_id):
            logger.warning("unauthorized_admin_action", actor_id=actor_id, action=action)
            raise Unauthorized()

    async def _audit(self, actor_id: int, action: str, **kwargs: Any) -> None:
        """Запись в журнал действий администраторов (best-effort)."""
        try:
            await admin_crud.log_admin_action(actor_id, action, **kwargs)
        except SQLAlchemyError as e:
            logger.warning("admin_action_log_failed", actor_id=actor_id, action=action, error=str(e))

    def _require_channel(self) -> None:
        if not self.config.channel_identifier:
            logger.error("channel_not_configured")
            raise ConfigurationMissing()

    # ==================== МОДЕРАЦИЯ ====================

    async def _change_status(self, question_id: str, status: str, actor_id: int) -> Question:
        """
        Смена статуса с ограничением по времени.

        Таймаут или ошибка БД до подтверждения записи превращаются
        в ExternalTransientFailure, статус остаётся прежним.
        """
        try:
            return await asyncio.wait_for(
                crud.set_question_status(question_id, status, actor_id),
                timeout=self.config.db_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("question_status_write_timeout", question_id=question_id, status=status)
            raise ExternalTransientFailure() from e
        except SQLAlchemyError as e:
            logger.error("question_status_write_failed", question_id=question_id, error=str(e))
            raise ExternalTransientFailure() from e

    async def approve(self, question_id: str, actor_id: int) -> Question:
        """
        Одобрить вопрос и опубликовать его в канал.

        Повторное одобрение не создаёт второй пост (InvalidState).
        Если публикация не удалась (в том числе канал не настроен),
        статус остаётся approved, автор всё равно получает уведомление,
        а вопрос можно опубликовать командой /republish.

        Raises:
            Unauthorized, ValidationFailure, NotFound, InvalidState,
            ExternalTransientFailure, ConfigurationMissing,
            ExternalPublishFailure
        """
        await self._require_admin(actor_id, "approve")
        question_id = ensure_question_id(question_id)

        question = await self._change_status(question_id, STATUS_APPROVED, actor_id)

        try:
            await self._publish(question)
        finally:
            await self._notify_user(question.user_id, QUESTION_APPROVED_NOTICE)
            await self._audit(actor_id, "approve", target=question_id)

        return question

    async def decline(self, question_id: str, actor_id: int) -> Question:
        """
        Отклонить вопрос. В канал ничего не публикуется.

        Raises:
            Unauthorized, ValidationFailure, NotFound, InvalidState,
            ExternalTransientFailure
        """
        await self._require_admin(actor_id, "decline")
        question_id = ensure_question_id(question_id)

        question = await self._change_status(question_id, STATUS_DECLINED, actor_id)

        await self._notify_user(question.user_id, QUESTION_DECLINED_NOTICE)
        await self._audit(actor_id, "decline", target=question_id)

        return question

    async def republish(self, question_id: str, actor_id: int) -> Question:
        """
        Повторить публикацию одобренного вопроса, который не попал в канал.

        Raises:
            Unauthorized, ValidationFailure, ConfigurationMissing, NotFound,
            InvalidState, ExternalPublishFailure
        """
        await self._require_admin(actor_id, "republish")
        question_id = ensure_question_id(question_id)
        self._require_channel()

        question = await crud.get_question(question_id)
        if question is None:
            raise NotFound()
        if question.status != STATUS_APPROVED:
            raise InvalidState("❌ Only approved questions can be posted to the channel.")
        if question.channel_message_id is not None:
            raise InvalidState("❌ This question is already posted to the channel.")

        await self._publish(question)
        await self._audit(actor_id, "republish", target=question_id)

        return question

    async def _publish(self, question: Question) -> int:
        answer_count = await crud.count_answers(question.id)
        message_id = await self.publisher.publish(question, answer_count)

        if await crud.set_channel_message_id(question.id, message_id):
            question.channel_message_id = message_id
        else:
            logger.warning(
                "channel_message_id_already_set",
                question_id=question.id,
                channel_message_id=message_id,
            )

        return message_id

    # ==================== КАНАЛ ====================

    async def refresh_channel_keyboard(self, question_id: str) -> bool:
        """
        Обновить счётчик ответов в посте канала.

        Идемпотентна: пересчитывает ответы и меняет только клавиатуру.
        Без поста или без настроенного канала ничего не делает.
        Обновления одного вопроса идут по очереди под общим локом
        (подсчёт и редактирование вместе), поэтому последним
        в канал попадает самый свежий счётчик.

        Returns:
            True если клавиатура обновлена

        Raises:
            ExternalPublishFailure: Ошибка Bot API
        """
        entry = self._refresh_locks.get(question_id)
        if entry is None:
            entry = self._refresh_locks[question_id] = _RefreshLock()
        entry.users += 1

        try:
            async with entry.lock:
                return await self._refresh_locked(question_id)
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._refresh_locks[question_id]

    async def _refresh_locked(self, question_id: str) -> bool:
        question = await crud.get_question(question_id)

        if question is None or question.channel_message_id is None:
            logger.warning("channel_keyboard_refresh_skipped", question_id=question_id, reason="no_channel_message")
            return False

        if not self.config.channel_identifier:
            logger.warning("channel_keyboard_refresh_skipped", question_id=question_id, reason="channel_not_configured")
            return False

        answer_count = await crud.count_answers(question_id)
        await self.publisher.refresh_keyboard(question_id, question.channel_message_id, answer_count)
        return True

    def schedule_keyboard_refresh(self, question_id: str) -> asyncio.Task:
        """Обновить клавиатуру в фоне (ошибки только логируются)."""
        task = asyncio.create_task(self._refresh_quietly(question_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _refresh_quietly(self, question_id: str) -> None:
        try:
            await self.refresh_channel_keyboard(question_id)
        except (QABotError, SQLAlchemyError) as e:
            logger.warning("channel_keyboard_refresh_error", question_id=question_id, error=str(e))

    async def wait_pending(self) -> None:
        """Дождаться фоновых обновлений (при остановке бота)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ==================== ОТВЕТЫ ====================

    async def append_answer(
        self,
        question_id: str,
        user_id: int,
        username: Optional[str],
        payload: ContentPayload,
        is_author_update: bool = False,
    ) -> Answer:
        """
        Добавить ответ к одобренному вопросу и обновить пост в канале.

        Raises:
            ValidationFailure, NotFound, InvalidState, ExternalTransientFailure
        """
        question_id = ensure_question_id(question_id)

        answer = await crud.append_answer(
            question_id,
            user_id=user_id,
            username=username,
            payload=payload,
            is_author_update=is_author_update,
        )

        self.schedule_keyboard_refresh(question_id)
        return answer

    async def append_reply(
        self,
        question_id: str,
        answer_index: int,
        user_id: int,
        username: Optional[str],
        payload: ContentPayload,
    ) -> Reply:
        """
        Добавить реплику к ответу.

        Raises:
            ValidationFailure, NotFound
        """
        question_id = ensure_question_id(question_id)
        return await crud.append_reply(question_id, answer_index, user_id, username, payload)

    async def record_reaction(self, question_id: str, answer_index: int, kind: str) -> Tuple[int, int]:
        """
        Засчитать реакцию на ответ.

        Returns:
            (right_count, wrong_count)

        Raises:
            ValidationFailure, NotFound
        """
        if kind not in REACTION_KINDS:
            raise ValidationFailure("❌ Invalid")
        question_id = ensure_question_id(question_id)
        return await crud.record_reaction(question_id, answer_index, kind)

    # ==================== УВЕДОМЛЕНИЯ ====================

    async def _notify_user(self, user_id: int, text: str) -> bool:
        try:
            await self.bot.send_message(chat_id=user_id, text=text)
            return True
        except TelegramAPIError as e:
            logger.warning("user_notification_failed", user_id=user_id, error=str(e))
            return False

    async def notify_admins_of_new_question(self, question: Question) -> int:
        """
        Отправить новый вопрос администраторам с кнопками модерации.

        Returns:
            Количество доставленных уведомлений
        """
        delivered = 0

        for admin_id in await admin_crud.get_admin_ids():
            try:
                await send_content(
                    self.bot,
                    admin_id,
                    question.media_type,
                    question.media_id,
                    new_question_admin_message(question),
                    reply_markup=get_moderation_keyboard(question.id),
                )
                delivered += 1
            except TelegramAPIError as e:
                logger.warning(
                    "admin_notification_failed",
                    admin_id=admin_id,
                    question_id=question.id,
                    error=str(e),
                )

        return delivered

    async def broadcast(self, text: str, actor_id: int) -> BroadcastResult:
        """
        Разослать сообщение всем пользователям.

        Отправка последовательная, с паузой broadcast_delay между
        сообщениями. Ошибка доставки одному пользователю не
        прерывает рассылку.

        Raises:
            Unauthorized, ValidationFailure
        """
        await self._require_admin(actor_id, "broadcast")
        if not text or not text.strip():
            raise ValidationFailure("Usage: /broadcast &lt;message&gt;")

        user_ids = await crud.get_all_user_ids()
        result = BroadcastResult(total=len(user_ids))
        message = broadcast_text(text.strip())

        for index, user_id in enumerate(user_ids):
            try:
                await self.bot.send_message(chat_id=user_id, text=message)
                result.success += 1
            except TelegramAPIError as e:
                result.failed += 1
                logger.warning("broadcast_delivery_failed", user_id=user_id, error=str(e))

            if index < len(user_ids) - 1:
                await asyncio.sleep(self.config.broadcast_delay)

        await self._audit(
            actor_id,
            "broadcast",
            details={"total": result.total, "success": result.success, "failed": result.failed},
        )

        logger.info(
            "broadcast_completed",
            actor_id=actor_id,
            total=result.total,
            success=result.success,
            failed=result.failed,
        )

        return result
