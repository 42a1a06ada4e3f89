from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_session
from app.models.notification import InboxItem, InboxItemPublic
from app.models.user import User
from app.services import inbox_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[InboxItemPublic])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(inbox_service.DEFAULT_LIMIT, gt=0, le=200),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[InboxItem]:
    """The current user's notifications, newest first."""
    return await inbox_service.list_items(session, current_user.id, unread_only, limit)


@router.post("/read-all")
async def mark_all_notifications_read(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> dict[str, int]:
    updated = await inbox_service.mark_all_read(session, current_user.id)
    return {"updated": updated}


@router.post("/{notification_id}/read", response_model=InboxItemPublic)
async def mark_notification_read(
    notification_id: int,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> InboxItem:
    return await inbox_service.mark_read(session, current_user.id, notification_id)
