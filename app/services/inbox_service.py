"""Per-user in-app notification list."""

import logging
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.notification import InboxItem
from app.services.errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


async def add_item(
    session: AsyncSession,
    user_id: int,
    kind: str,
    title: str,
    message: str,
    appointment_id: int | None = None,
    data: dict[str, Any] | None = None,
) -> InboxItem:
    item = InboxItem(
        user_id=user_id,
        appointment_id=appointment_id,
        type=kind,
        title=title,
        message=message,
        data=dict(data or {}),
    )
    session.add(item)
    await session.commit()
    await session.refresh(item)
    return item


async def list_items(
    session: AsyncSession, user_id: int, unread_only: bool = False, limit: int = DEFAULT_LIMIT
) -> list[InboxItem]:
    q = select(InboxItem).where(InboxItem.user_id == user_id)
    if unread_only:
        q = q.where(InboxItem.read.is_(False))
    q = q.order_by(InboxItem.created_at.desc(), InboxItem.id.desc()).limit(limit)
    result = await session.execute(q)
    return list(result.scalars().all())


async def mark_read(session: AsyncSession, user_id: int, item_id: int) -> InboxItem:
    item = await session.get(InboxItem, item_id)
    # Someone else's notification is reported as missing
    if item is None or item.user_id != user_id:
        raise NotFoundError("Notification not found")
    if not item.read:
        item.read = True
        session.add(item)
        await session.commit()
        await session.refresh(item)
    return item


async def mark_all_read(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        update(InboxItem)
        .where(InboxItem.user_id == user_id, InboxItem.read.is_(False))
        .values(read=True)
    )
    await session.commit()
    logger.info("Marked %s notifications read for user %s", result.rowcount, user_id)
    return result.rowcount
