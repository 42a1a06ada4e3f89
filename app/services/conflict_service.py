"""Availability & conflict resolution for a stylist's day.

Everything here is advisory: a "no conflict" answer is not a booking
guarantee. The authoritative check is the unique slot index enforced when the
appointment row is written (see ``appointment_service``). When the record
store cannot be read the resolver logs and answers "no conflict" so booking is
not blocked by a read outage.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import settings
from app.models.appointment import SLOT_RELEASING_STATUSES, Appointment
from app.models.schedule import ScheduleSettings, StylistSchedule
from app.services.errors import UpstreamFailure, ValidationError
from app.services.time_utils import MINUTES_PER_DAY, from_minutes, overlaps, to_minutes, weekday_name

logger = logging.getLogger(__name__)


class AvailabilityOutcome(str, Enum):
    AVAILABLE = "available"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"  # store unreachable; answered optimistically


@dataclass
class ConflictCheck:
    outcome: AvailabilityOutcome
    conflicts: list[str] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0

    @classmethod
    def from_reasons(cls, reasons: list[str]) -> "ConflictCheck":
        outcome = AvailabilityOutcome.CONFLICT if reasons else AvailabilityOutcome.AVAILABLE
        return cls(outcome=outcome, conflicts=reasons)


@dataclass(frozen=True)
class BookedInterval:
    booking_id: int
    client_name: str
    start: int  # minutes since midnight, stylist-local
    duration_minutes: int

    @property
    def end(self) -> int:
        return self.start + self.duration_minutes


def _span(start: int, end: int) -> str:
    return f"{from_minutes(start)} - {from_minutes(end)}"


def booking_conflicts(
    bookings: list[BookedInterval],
    start: int,
    end: int,
    buffer_after: int = 0,
) -> list[str]:
    # TODO: apply buffer_time.before once product decides whether it should pad bookings
    reasons = []
    candidate = (start, end + buffer_after)
    for booking in bookings:
        existing = (booking.start, booking.end + buffer_after)
        if overlaps(candidate, existing):
            reasons.append(
                f"Conflicts with existing booking for {booking.client_name or 'another client'} "
                f"({_span(booking.start, booking.end)})"
            )
    return reasons


def evaluate_conflicts(
    schedule: ScheduleSettings,
    bookings: list[BookedInterval],
    start: int,
    end: int,
    day: date,
) -> list[str]:
    """Every reason the interval [start, end) on ``day`` is not bookable, in check order."""
    buffer_after = schedule.buffer_time.after if schedule.buffer_time else 0
    reasons = booking_conflicts(bookings, start, end, buffer_after)

    weekday = weekday_name(day)
    for brk in schedule.breaks_for(weekday):
        if overlaps((start, end), (brk.start.minutes, brk.end.minutes)):
            reasons.append(f"Overlaps with break: {brk.name} ({brk.start.hhmm} - {brk.end.hhmm})")

    hours = schedule.hours_for(weekday)
    if hours is None or not hours.is_enabled:
        reasons.append(f"Stylist is not available this day ({weekday.capitalize()})")
    else:
        if start < hours.start.minutes:
            reasons.append(f"Start time {from_minutes(start)} is before work hours ({hours.start.hhmm})")
        if end > hours.end.minutes:
            reasons.append(
                f"Service extends past work hours (ends {from_minutes(end)}, work ends {hours.end.hhmm})"
            )
    return reasons


async def get_schedule(session: AsyncSession, stylist_id: int) -> ScheduleSettings:
    result = await session.execute(
        select(StylistSchedule).where(StylistSchedule.stylist_id == stylist_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return ScheduleSettings.default(settings.default_timezone)
    return row.to_settings()


async def get_booked_intervals(
    session: AsyncSession,
    stylist_id: int,
    day: date,
    exclude_booking_id: int | None = None,
) -> list[BookedInterval]:
    """Active bookings on ``day``, plus the tail of any from the day before that
    runs past midnight (with a negative start)."""
    previous = (day - timedelta(days=1)).isoformat()
    q = select(Appointment).where(
        Appointment.stylist_id == stylist_id,
        Appointment.slot_date.in_([previous, day.isoformat()]),
        Appointment.status.not_in(SLOT_RELEASING_STATUSES),
    )
    if exclude_booking_id is not None:
        q = q.where(Appointment.id != exclude_booking_id)
    result = await session.execute(q)
    intervals = []
    for a in result.scalars().all():
        start = to_minutes(a.slot_time)
        if a.slot_date == previous:
            start -= MINUTES_PER_DAY
            if start + a.duration_minutes <= 0:
                continue
        intervals.append(
            BookedInterval(
                booking_id=a.id,
                client_name=a.client_name,
                start=start,
                duration_minutes=a.duration_minutes,
            )
        )
    return intervals


def _parse_interval(proposed_start: str, proposed_end: str) -> tuple[int, int]:
    start, end = to_minutes(proposed_start), to_minutes(proposed_end)
    if end <= start:
        raise ValidationError("Proposed end must be after proposed start")
    return start, end


async def check_interval(
    session: AsyncSession,
    stylist_id: int,
    day: date,
    start: int,
    end: int,
    exclude_booking_id: int | None = None,
) -> ConflictCheck:
    """Minute-offset form of ``check_conflicts``; ``end`` may run past midnight."""
    try:
        schedule = await get_schedule(session, stylist_id)
        bookings = await get_booked_intervals(session, stylist_id, day, exclude_booking_id)
    except SQLAlchemyError as e:
        logger.exception("Conflict check for stylist %s on %s could not read the store: %s", stylist_id, day, e)
        return ConflictCheck(outcome=AvailabilityOutcome.UNAVAILABLE)
    return ConflictCheck.from_reasons(evaluate_conflicts(schedule, bookings, start, end, day))


async def check_conflicts(
    session: AsyncSession,
    stylist_id: int,
    proposed_start: str,
    proposed_end: str,
    day: date,
    exclude_booking_id: int | None = None,
) -> ConflictCheck:
    start, end = _parse_interval(proposed_start, proposed_end)
    return await check_interval(session, stylist_id, day, start, end, exclude_booking_id)


async def has_simple_conflict(
    session: AsyncSession,
    stylist_id: int,
    proposed_start: str,
    proposed_end: str,
    day: date,
    exclude_booking_id: int | None = None,
) -> bool:
    """Booking-vs-booking overlap only, without buffer time."""
    start, end = _parse_interval(proposed_start, proposed_end)
    try:
        bookings = await get_booked_intervals(session, stylist_id, day, exclude_booking_id)
    except SQLAlchemyError as e:
        logger.exception("Simple conflict check for stylist %s on %s failed: %s", stylist_id, day, e)
        return False
    return bool(booking_conflicts(bookings, start, end))


async def list_available_starts(
    session: AsyncSession,
    stylist_id: int,
    day: date,
    duration_minutes: int,
    schedule: ScheduleSettings | None = None,
) -> list[str]:
    """Start times on ``day`` (stylist-local, stepped) where a service of this length fits.

    Pass ``schedule`` when the caller has already loaded it.
    """
    if duration_minutes <= 0:
        raise ValidationError("Duration must be positive")
    try:
        if schedule is None:
            schedule = await get_schedule(session, stylist_id)
        bookings = await get_booked_intervals(session, stylist_id, day)
    except SQLAlchemyError as e:
        raise UpstreamFailure("Could not load availability, please retry") from e

    hours = schedule.hours_for(weekday_name(day))
    if hours is None or not hours.is_enabled:
        return []
    starts: list[str] = []
    current = hours.start.minutes
    while current + duration_minutes <= hours.end.minutes:
        if not evaluate_conflicts(schedule, bookings, current, current + duration_minutes, day):
            starts.append(from_minutes(current))
        current += settings.slot_step_minutes
    return starts
