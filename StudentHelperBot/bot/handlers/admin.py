"""
Обработчики команд администратора.

Содержит:
- /admin, /admin_questions, /admin_stats - панель, очередь, статистика
- /approve, /decline, /republish и кнопки approve_/decline_ - модерация
- /broadcast - рассылка всем пользователям
- /makeadmin, /removeadmin, /listadmins, /adminstatus - администраторы
- /ban, /unban - блокировка пользователей

Права проверяются по флагу is_admin в БД (ModerationService
проверяет их сам для модерации и рассылки).
"""

from typing import Optional

from aiogram import F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message
import structlog

from config.constants import PENDING_QUESTIONS_LIMIT
from core.callbacks import MODERATION_PATTERN
from core.exceptions import (
    ConfigurationMissing,
    ExternalPublishFailure,
    QABotError,
    Unauthorized,
    ValidationFailure,
)
from core.moderation import ModerationService
from core.validators import first_argument, get_display_name, parse_telegram_id
from database import admin_crud, crud
from database.models import ROLE_PERMISSIONS, User
from templates.message_templates import (
    ADMIN_ONLY,
    QUESTION_APPROVED_ADMIN,
    QUESTION_DECLINED_ADMIN,
    QUESTION_REPUBLISHED_ADMIN,
    admin_panel_message,
    admin_status_message,
    admins_list_message,
    broadcast_result_message,
    escape_html,
    pending_questions_message,
    question_approved_not_posted_message,
    stats_message,
    usage_message,
)


logger = structlog.get_logger()
router = Router(name="admin_commands")

DEFAULT_ADMIN_ROLE = "content"
MANAGE_USERS = "manage_users"


# ============================================================
# ПРОВЕРКИ
# ============================================================

def require_admin(user: User) -> None:
    """
    Raises:
        Unauthorized: Пользователь не администратор
    """
    if not user.is_admin:
        raise Unauthorized(ADMIN_ONLY)


def require_permission(user: User, permission: str) -> None:
    """
    Raises:
        Unauthorized: Нет нужного права
    """
    require_admin(user)
    if not user.has_permission(permission):
        raise Unauthorized("❌ You don't have permission for this action.")


def target_user_id(message: Message, command: CommandObject, usage: str) -> int:
    """
    ID пользователя из аргумента команды или из ответа на его сообщение.

    Raises:
        ValidationFailure: ID не указан или некорректен
    """
    argument = first_argument(command.args)
    if argument is not None:
        telegram_id = parse_telegram_id(argument)
        if telegram_id is None:
            raise ValidationFailure("❌ Invalid user ID.")
        return telegram_id

    reply = message.reply_to_message
    if reply is not None and reply.from_user is not None:
        return reply.from_user.id

    raise ValidationFailure(usage)


def rest_arguments(args: Optional[str]) -> Optional[str]:
    """Всё после первого аргумента (/ban 123 spam links -> "spam links")."""
    if not args:
        return None
    parts = args.split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else None


# ============================================================
# ПАНЕЛЬ, ОЧЕРЕДЬ, СТАТИСТИКА
# ============================================================

@router.message(Command("admin"))
async def cmd_admin(message: Message, user: User) -> None:
    """Список админских команд."""
    if not user.is_admin:
        await message.answer(ADMIN_ONLY)
        return
    await message.answer(admin_panel_message())


@router.message(Command("admin_questions"))
async def cmd_admin_questions(message: Message, user: User) -> None:
    """Вопросы, ожидающие модерации."""
    if not user.is_admin:
        await message.answer(ADMIN_ONLY)
        return

    questions = await crud.list_pending_questions(limit=PENDING_QUESTIONS_LIMIT)
    await message.answer(pending_questions_message(questions))


@router.message(Command("admin_stats"))
async def cmd_admin_stats(message: Message, user: User) -> None:
    if not user.is_admin:
        await message.answer(ADMIN_ONLY)
        return

    stats = await crud.get_stats()
    await message.answer(stats_message(stats))

    logger.info("admin_stats_requested", admin_id=message.from_user.id)


# ============================================================
# МОДЕРАЦИЯ
# ============================================================

@router.message(Command("approve"))
async def cmd_approve(message: Message, command: CommandObject, moderation: ModerationService) -> None:
    question_id = first_argument(command.args)
    if not question_id:
        await message.answer(usage_message("approve", "<questionId>"))
        return

    try:
        await moderation.approve(question_id, message.from_user.id)
    except (ConfigurationMissing, ExternalPublishFailure) as e:
        await message.answer(question_approved_not_posted_message(question_id, e.user_message))
        return
    except QABotError as e:
        await message.answer(e.user_message)
        return

    await message.answer(QUESTION_APPROVED_ADMIN)


@router.message(Command("decline"))
async def cmd_decline(message: Message, command: CommandObject, moderation: ModerationService) -> None:
    question_id = first_argument(command.args)
    if not question_id:
        await message.answer(usage_message("decline", "<questionId>"))
        return

    try:
        await moderation.decline(question_id, message.from_user.id)
    except QABotError as e:
        await message.answer(e.user_message)
        return

    await message.answer(QUESTION_DECLINED_ADMIN)


@router.message(Command("republish"))
async def cmd_republish(message: Message, command: CommandObject, moderation: ModerationService) -> None:
    """Повторная публикация одобренного вопроса, который не попал в канал."""
    question_id = first_argument(command.args)
    if not question_id:
        await message.answer(usage_message("republish", "<questionId>"))
        return

    try:
        await moderation.republish(question_id, message.from_user.id)
    except QABotError as e:
        await message.answer(e.user_message)
        return

    await message.answer(QUESTION_REPUBLISHED_ADMIN)


@router.callback_query(F.data.regexp(MODERATION_PATTERN).as_("match"))
async def callback_moderation(callback: CallbackQuery, match, moderation: ModerationService) -> None:
    """
    Кнопки Approve / Decline из уведомления о новом вопросе.

    После успешной модерации кнопки убираются из сообщения.
    """
    action, question_id = match.group(1), match.group(2)
    confirmation = QUESTION_APPROVED_ADMIN if action == "approve" else QUESTION_DECLINED_ADMIN

    try:
        if action == "approve":
            await moderation.approve(question_id, callback.from_user.id)
        else:
            await moderation.decline(question_id, callback.from_user.id)
    except (ConfigurationMissing, ExternalPublishFailure) as e:
        # Статус уже approved, не удалась только публикация
        confirmation = question_approved_not_posted_message(question_id, e.user_message)
    except QABotError as e:
        await callback.answer(e.user_message, show_alert=True)
        return

    await callback.answer("✅ Approved" if action == "approve" else "❌ Declined")

    if callback.message is None:
        return

    try:
        await callback.message.edit_reply_markup(reply_markup=None)
    except TelegramAPIError as e:
        logger.warning("moderation_keyboard_remove_failed", question_id=question_id, error=str(e))

    await callback.message.answer(confirmation)


# ============================================================
# РАССЫЛКА
# ============================================================

@router.message(Command("broadcast"))
async def cmd_broadcast(message: Message, command: CommandObject, moderation: ModerationService) -> None:
    """
    Рассылка всем пользователям.

    Пример: /broadcast Завтра бот будет недоступен с 10:00 до 11:00
    """
    try:
        result = await moderation.broadcast(command.args or "", message.from_user.id)
    except QABotError as e:
        await message.answer(e.user_message)
        return

    await message.answer(broadcast_result_message(result.total, result.success, result.failed))


# ============================================================
# АДМИНИСТРАТОРЫ
# ============================================================

@router.message(Command("makeadmin"))
async def cmd_make_admin(message: Message, command: CommandObject, user: User) -> None:
    """/makeadmin <userId> [role] или ответом на сообщение пользователя."""
    try:
        require_permission(user, MANAGE_USERS)
        telegram_id = target_user_id(
            message,
            command,
            usage_message("makeadmin", "<userId> [role]") + "\nOr reply to a user's message with /makeadmin",
        )

        role = DEFAULT_ADMIN_ROLE
        if first_argument(command.args) is not None:
            role = (rest_arguments(command.args) or DEFAULT_ADMIN_ROLE).split()[0].lower()
        if role not in ROLE_PERMISSIONS:
            raise ValidationFailure(f"❌ Unknown role. Available roles: {', '.join(ROLE_PERMISSIONS)}")

        target = await admin_crud.make_admin(telegram_id, role, added_by=message.from_user.id)
    except QABotError as e:
        await message.answer(e.user_message)
        return

    await message.answer(
        f"✅ User {telegram_id} ({escape_html(get_display_name(target.username, target.first_name, 'Unknown'))}) "
        f"is now an admin with role {escape_html(role)}."
    )
    logger.info("admin_added", admin_id=message.from_user.id, target_user_id=telegram_id, role=role)


@router.message(Command("removeadmin"))
async def cmd_remove_admin(message: Message, command: CommandObject, user: User) -> None:
    try:
        require_permission(user, MANAGE_USERS)
        telegram_id = target_user_id(message, command, usage_message("removeadmin", "<userId>"))

        if telegram_id == message.from_user.id:
            raise ValidationFailure("❌ You cannot remove yourself.")

        await admin_crud.remove_admin(telegram_id, removed_by=message.from_user.id)
    except QABotError as e:
        await message.answer(e.user_message)
        return

    await message.answer(f"✅ User {telegram_id} is no longer an admin.")
    logger.info("admin_removed", admin_id=message.from_user.id, target_user_id=telegram_id)


@router.message(Command("listadmins"))
async def cmd_list_admins(message: Message, user: User) -> None:
    if not user.is_admin:
        await message.answer(ADMIN_ONLY)
        return

    admins = await admin_crud.list_admins()
    await message.answer(admins_list_message(admins))


@router.message(Command("adminstatus"))
async def cmd_admin_status(message: Message, user: User) -> None:
    """Статус администратора для отправителя (доступно всем)."""
    await message.answer(
        admin_status_message(
            message.from_user.id,
            message.from_user.first_name,
            message.from_user.username,
            user,
        )
    )


# ============================================================
# БЛОКИРОВКА
# ============================================================

@router.message(Command("ban"))
async def cmd_ban(message: Message, command: CommandObject, user: User) -> None:
    """/ban <userId> [reason]"""
    try:
        require_permission(user, MANAGE_USERS)
        telegram_id = target_user_id(message, command, usage_message("ban", "<userId> [reason]"))

        if telegram_id == message.from_user.id:
            raise ValidationFailure("❌ You cannot ban yourself.")

        reason = rest_arguments(command.args) or "No reason"
        await admin_crud.ban_user(telegram_id, reason, banned_by=message.from_user.id)
    except QABotError as e:
        await message.answer(e.user_message)
        return

    await message.answer(f"⛔ User {telegram_id} is banned.\nReason: {escape_html(reason)}")


@router.message(Command("unban"))
async def cmd_unban(message: Message, command: CommandObject, user: User) -> None:
    try:
        require_permission(user, MANAGE_USERS)
        telegram_id = target_user_id(message, command, usage_message("unban", "<userId>"))
        await admin_crud.unban_user(telegram_id, unbanned_by=message.from_user.id)
    except QABotError as e:
        await message.answer(e.user_message)
        return

    await message.answer(f"✅ User {telegram_id} is unbanned.")
