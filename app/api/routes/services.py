from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.api.deps import get_current_stylist, get_session
from app.models.service import StylistService, StylistServiceCreate, StylistServicePublic
from app.models.user import User

router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=list[StylistServicePublic])
async def list_services(
    stylist_id: int,
    include_inactive: bool = False,
    session: AsyncSession = Depends(get_session),
) -> list[StylistService]:
    q = select(StylistService).where(StylistService.stylist_id == stylist_id)
    if not include_inactive:
        q = q.where(StylistService.active.is_(True))
    result = await session.execute(q.order_by(StylistService.name))
    return list(result.scalars().all())


@router.post("", response_model=StylistServicePublic, status_code=status.HTTP_201_CREATED)
async def create_service(
    body: StylistServiceCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_stylist),
) -> StylistService:
    service = StylistService(stylist_id=current_user.id, **body.model_dump())
    session.add(service)
    await session.commit()
    await session.refresh(service)
    return service
