import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.models.appointment import Appointment, AppointmentStatus
from app.services.appointment_service import AppointmentLifecycle
from app.services.change_feed import AppointmentFeed
from app.services.errors import AppointmentError
from app.services.notifier import Notifier
from app.services.payment_gateway import CaptureHook
from app.services.time_utils import utc_naive_now

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired: int = 0
    completed: int = 0
    skipped: int = 0


async def _due_pending(session: AsyncSession, now: datetime) -> list[int]:
    result = await session.execute(
        select(Appointment.id).where(
            Appointment.status == AppointmentStatus.PENDING.value,
            Appointment.expires_at.is_not(None),
            Appointment.expires_at <= now,
        )
    )
    return list(result.scalars().all())


async def _due_completion(session: AsyncSession, now: datetime) -> list[int]:
    # Coarse filter in SQL; the exact end (start + duration) is checked per row
    result = await session.execute(
        select(Appointment.id, Appointment.date_time, Appointment.duration_minutes).where(
            Appointment.status == AppointmentStatus.CONFIRMED.value,
            Appointment.date_time <= now,
        )
    )
    return [
        row.id
        for row in result.all()
        if row.date_time + timedelta(minutes=row.duration_minutes) <= now
    ]


async def run_lifecycle_sweep(
    session_maker: async_sessionmaker[AsyncSession],
    notifier: Notifier,
    feed: AppointmentFeed | None = None,
    capture_hook: CaptureHook | None = None,
    now: datetime | None = None,
) -> SweepResult:
    """Expire unanswered requests and complete finished appointments.

    Each row goes through the same conditional transitions as the API, so a
    row that changed under the sweep is skipped rather than overwritten.
    """
    now = now or utc_naive_now()
    outcome = SweepResult()
    async with session_maker() as session:
        lifecycle = AppointmentLifecycle(session, notifier, feed, capture_hook)
        try:
            pending_ids = await _due_pending(session, now)
            finished_ids = await _due_completion(session, now)
        except SQLAlchemyError as e:
            logger.exception("Lifecycle sweep could not query due appointments: %s", e)
            return outcome

        for appointment_id in pending_ids:
            try:
                await lifecycle.expire_pending_appointment(appointment_id, now=now)
                outcome.expired += 1
            except AppointmentError as e:
                outcome.skipped += 1
                logger.info("Sweep skipped expiry of appointment %s: %s", appointment_id, e.detail)

        for appointment_id in finished_ids:
            try:
                await lifecycle.complete_appointment(appointment_id, now=now)
                outcome.completed += 1
            except AppointmentError as e:
                outcome.skipped += 1
                logger.info("Sweep skipped completion of appointment %s: %s", appointment_id, e.detail)

    if outcome.expired or outcome.completed:
        logger.info(
            "Lifecycle sweep: expired %d, completed %d, skipped %d",
            outcome.expired,
            outcome.completed,
            outcome.skipped,
        )
    return outcome
