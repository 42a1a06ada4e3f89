import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.api.deps import get_current_stylist, get_session
from app.models.schedule import ScheduleSettings, StylistSchedule
from app.models.user import User
from app.services.conflict_service import get_schedule

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("/{stylist_id}", response_model=ScheduleSettings)
async def read_schedule(
    stylist_id: int,
    session: AsyncSession = Depends(get_session),
) -> ScheduleSettings:
    """Stored schedule, or the onboarding default when the stylist has none."""
    return await get_schedule(session, stylist_id)


@router.put("/me", response_model=ScheduleSettings)
async def update_my_schedule(
    body: ScheduleSettings,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_stylist),
) -> ScheduleSettings:
    result = await session.execute(
        select(StylistSchedule).where(StylistSchedule.stylist_id == current_user.id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = StylistSchedule(stylist_id=current_user.id, timezone=body.timezone)
        session.add(row)
    row.apply(body)
    await session.commit()
    logger.info("Schedule updated for stylist %s", current_user.id)
    return row.to_settings()
