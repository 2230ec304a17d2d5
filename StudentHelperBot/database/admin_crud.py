"""
CRUD операции для администрирования.

Содержит функции для:
- Первичного назначения администраторов из конфигурации
- Управления ролями администраторов
- Блокировки пользователей
- Логирования действий администраторов
"""

import json
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFound
from database.database import get_session
from database.models import AdminAction, User


logger = structlog.get_logger()


# ==================== ADMIN ACTIONS LOG ====================

async def log_admin_action(
    admin_id: int,
    action_type: str,
    target: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
    session: Optional[AsyncSession] = None,
) -> AdminAction:
    """
    Логировать административное действие.

    Args:
        admin_id: Telegram ID администратора
        action_type: Тип действия (approve, decline, ban, make_admin, ...)
        target: ID вопроса или Telegram ID пользователя
        details: Дополнительные детали
        session: Опциональная существующая сессия (для избежания блокировок)

    Returns:
        Созданный объект AdminAction
    """
    action = AdminAction(
        admin_id=admin_id,
        action_type=action_type,
        target=str(target) if target is not None else None,
        details=json.dumps(details, ensure_ascii=False) if details else None,
    )

    if session:
        session.add(action)
        await session.flush()
    else:
        async with get_session() as new_session:
            new_session.add(action)
            await new_session.flush()

    logger.info(
        "admin_action_logged",
        admin_id=admin_id,
        action_type=action_type,
        target=action.target,
    )

    return action


async def get_admin_actions(limit: int = 50, action_type: Optional[str] = None) -> List[AdminAction]:
    """История административных действий, новые первыми."""
    async with get_session() as session:
        query = select(AdminAction).order_by(desc(AdminAction.id))
        if action_type:
            query = query.where(AdminAction.action_type == action_type)
        result = await session.execute(query.limit(limit))
        return list(result.scalars().all())


# ==================== ADMINS ====================

async def _get_user_for_update(session: AsyncSession, telegram_id: int) -> User:
    result = await session.execute(
        select(User).where(User.telegram_id == telegram_id)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("❌ User not found. They need to /start the bot first.")
    return user


async def seed_admins(admin_ids: List[int]) -> int:
    """
    Назначить администраторов из конфигурации (ADMIN_IDS_STR).

    Пользователи создаются, если их ещё нет, и получают роль super.
    Существующие админы не меняются.

    Returns:
        Количество назначенных администраторов
    """
    seeded = 0

    async with get_session() as session:
        for telegram_id in admin_ids:
            result = await session.execute(
                select(User).where(User.telegram_id == telegram_id)
            )
            user = result.scalar_one_or_none()

            if user is None:
                user = User(telegram_id=telegram_id)
                session.add(user)
            elif user.is_admin:
                continue

            user.make_admin("super")
            seeded += 1

    if seeded:
        logger.info("admins_seeded", count=seeded)

    return seeded


async def is_admin(telegram_id: int) -> bool:
    """Проверка флага администратора в БД."""
    async with get_session() as session:
        result = await session.execute(
            select(User.is_admin).where(User.telegram_id == telegram_id)
        )
        return bool(result.scalar_one_or_none())


async def get_admin_ids() -> List[int]:
    """Telegram ID всех администраторов."""
    async with get_session() as session:
        result = await session.execute(
            select(User.telegram_id).where(User.is_admin.is_(True)).order_by(User.id)
        )
        return list(result.scalars().all())


async def list_admins() -> List[User]:
    """Все администраторы."""
    async with get_session() as session:
        result = await session.execute(
            select(User).where(User.is_admin.is_(True)).order_by(User.admin_added_at, User.id)
        )
        return list(result.scalars().all())


async def make_admin(telegram_id: int, role: str, added_by: int) -> User:
    """
    Назначить пользователя администратором.

    Raises:
        NotFound: Пользователь не найден
    """
    async with get_session() as session:
        user = await _get_user_for_update(session, telegram_id)
        user.make_admin(role, added_by)

        await log_admin_action(
            admin_id=added_by,
            action_type="make_admin",
            target=telegram_id,
            details={"role": role},
            session=session,
        )

        return user


async def remove_admin(telegram_id: int, removed_by: int) -> User:
    """
    Снять роль администратора.

    Raises:
        NotFound: Пользователь не найден
    """
    async with get_session() as session:
        user = await _get_user_for_update(session, telegram_id)
        user.remove_admin()

        await log_admin_action(
            admin_id=removed_by,
            action_type="remove_admin",
            target=telegram_id,
            session=session,
        )

        return user


async def ban_user(telegram_id: int, reason: str, banned_by: int) -> User:
    """
    Заблокировать пользователя.

    Raises:
        NotFound: Пользователь не найден
    """
    async with get_session() as session:
        user = await _get_user_for_update(session, telegram_id)
        user.ban(reason, banned_by)

        await log_admin_action(
            admin_id=banned_by,
            action_type="ban",
            target=telegram_id,
            details={"reason": reason},
            session=session,
        )

        logger.info(
            "user_banned",
            admin_id=banned_by,
            target_user_id=telegram_id,
            reason=reason,
        )

        return user


async def unban_user(telegram_id: int, unbanned_by: int) -> User:
    """
    Разблокировать пользователя.

    Raises:
        NotFound: Пользователь не найден
    """
    async with get_session() as session:
        user = await _get_user_for_update(session, telegram_id)
        user.unban()

        await log_admin_action(
            admin_id=unbanned_by,
            action_type="unban",
            target=telegram_id,
            session=session,
        )

        return user
