import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session
from app.api.schemas.availability import AvailabilityResponse, AvailableStartsResponse
from app.models.service import StylistService
from app.services.conflict_service import (
    AvailabilityOutcome,
    check_conflicts,
    check_interval,
    get_schedule,
    list_available_starts,
)
from app.services.errors import NotFoundError, UpstreamFailure, ValidationError
from app.services.time_utils import format_display, parse, to_minutes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["availability"])


async def _duration(
    session: AsyncSession, stylist_id: int, service_id: int | None, duration_minutes: int | None
) -> int | None:
    if service_id is None:
        return duration_minutes
    try:
        service = await session.get(StylistService, service_id)
    except SQLAlchemyError as e:
        raise UpstreamFailure("Could not load the service, please retry") from e
    if service is None or service.stylist_id != stylist_id:
        raise NotFoundError("Service not found")
    return service.duration_minutes


@router.get("/check", response_model=AvailabilityResponse)
async def check_availability(
    stylist_id: int,
    date_param: date = Query(..., alias="date"),
    start: str = Query(..., description="Stylist-local start, HH:MM or h:mm AM/PM"),
    end: str | None = Query(None, description="Stylist-local end; or pass duration_minutes / service_id"),
    duration_minutes: int | None = Query(None, gt=0),
    service_id: int | None = None,
    exclude_booking_id: int | None = None,
    session: AsyncSession = Depends(get_session),
) -> AvailabilityResponse:
    """Advisory check: a clear answer is not a reservation.

    Like the resolver itself, a store outage answers "unavailable" with no
    conflicts instead of an error.
    """
    start_hhmm = parse(start)
    if end is not None:
        result = await check_conflicts(
            session, stylist_id, start_hhmm, parse(end), date_param, exclude_booking_id
        )
    else:
        try:
            duration = await _duration(session, stylist_id, service_id, duration_minutes)
        except UpstreamFailure as e:
            logger.warning(
                "Availability check for stylist %s could not load service %s: %s", stylist_id, service_id, e.__cause__
            )
            return AvailabilityResponse(
                outcome=AvailabilityOutcome.UNAVAILABLE, has_conflict=False, conflicts=[]
            )
        if duration is None:
            raise ValidationError("Pass end, duration_minutes or service_id")
        begin = to_minutes(start_hhmm)
        result = await check_interval(
            session, stylist_id, date_param, begin, begin + duration, exclude_booking_id
        )
    return AvailabilityResponse(
        outcome=result.outcome, has_conflict=result.has_conflict, conflicts=result.conflicts
    )


@router.get("/slots", response_model=AvailableStartsResponse)
async def available_starts(
    stylist_id: int,
    date_param: date = Query(..., alias="date"),
    duration_minutes: int | None = Query(None, gt=0),
    service_id: int | None = None,
    session: AsyncSession = Depends(get_session),
) -> AvailableStartsResponse:
    """Start times on the stylist-local date where the service fits."""
    duration = await _duration(session, stylist_id, service_id, duration_minutes)
    if duration is None:
        raise ValidationError("Pass duration_minutes or service_id")
    try:
        schedule = await get_schedule(session, stylist_id)
    except SQLAlchemyError as e:
        raise UpstreamFailure("Could not load availability, please retry") from e
    starts = await list_available_starts(session, stylist_id, date_param, duration, schedule)
    return AvailableStartsResponse(
        stylist_id=stylist_id,
        date=date_param.isoformat(),
        timezone=schedule.timezone,
        duration_minutes=duration,
        starts=starts,
        display=[format_display(s) for s in starts],
    )
