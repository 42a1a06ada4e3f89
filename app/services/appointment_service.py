"""Write path for appointments.

Every transition is one conditional UPDATE guarded by the status and
payment_status the caller read (plus the proposal fields for reschedule
moves). Zero matched rows means someone else got there first and the caller is
told to refresh. Notifications, feed updates and capture requests happen only
after the commit and cannot undo it.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import select

from app.core.config import settings
from app.models.appointment import (
    Appointment,
    AppointmentRead,
    AppointmentStatus,
    PartyRole,
    PaymentStatus,
    PaymentType,
)
from app.models.service import StylistService
from app.models.user import User, UserRole
from app.services.appointment_status import can_reschedule, next_payment_status, next_status
from app.services.change_feed import AppointmentFeed
from app.services.conflict_service import AvailabilityOutcome, check_interval, get_schedule
from app.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    StaleStateError,
    UpstreamFailure,
    ValidationError,
)
from app.services.notification_templates import NotificationKind
from app.services.notifier import Notification, Notifier, Recipient, dispatch
from app.services.payment_gateway import CaptureHook
from app.services.time_utils import (
    format_display,
    format_hhmm,
    localize,
    to_minutes,
    to_naive_utc,
    to_wall_clock,
    utc_naive_now,
)

logger = logging.getLogger(__name__)

SLOT_TAKEN_REASON = "This time slot was just booked by someone else"
SYSTEM_ACTOR = "system"

_CLEARED_PROPOSAL = {
    "proposed_date_time": None,
    "proposed_by": None,
    "proposal_created_at": None,
    "proposal_reason": None,
}

# Only an uncaptured hold is released when a booking ends; captured funds stay
# captured until the gateway reports a refund
_RELEASABLE_PAYMENTS = (PaymentStatus.AUTHORIZED.value,)


def pending_deadline(start: datetime, now: datetime) -> datetime:
    """When an unanswered request lapses: ``lead`` minutes before it starts, or
    ``window`` minutes from now, whichever comes first."""
    return min(
        start - timedelta(minutes=settings.pending_expiry_lead_minutes),
        now + timedelta(minutes=settings.pending_response_window_minutes),
    )


def _money(amount: float) -> str:
    return f"${amount:,.2f}"


def _local_parts(dt: datetime, tz_name: str) -> tuple[str, str]:
    try:
        local = localize(dt, tz_name)
    except ValidationError:
        local = localize(dt, "UTC")
    return local.strftime("%A, %B %d, %Y"), format_display(format_hhmm(local.hour, local.minute))


class AppointmentLifecycle:
    """Booking, acceptance, cancellation, payment and reschedule transitions."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier,
        feed: AppointmentFeed | None = None,
        capture_hook: CaptureHook | None = None,
    ):
        self.session = session
        self.notifier = notifier
        self.feed = feed
        self.capture_hook = capture_hook

    # --- reads -------------------------------------------------------------

    async def _load(self, appointment_id: int) -> Appointment:
        try:
            result = await self.session.execute(
                select(Appointment)
                .where(Appointment.id == appointment_id)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise UpstreamFailure("Could not load the appointment, please retry") from e
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def _role(appointment: Appointment, actor_id: int, *allowed: PartyRole) -> PartyRole:
        role = appointment.role_of(actor_id)
        if role is None:
            # Only the two parties may see the record at all
            raise NotFoundError("Appointment not found")
        if allowed and role not in allowed:
            raise PermissionDeniedError(f"Only the {allowed[0].value} can do this")
        return role

    async def get_for_party(self, appointment_id: int, actor_id: int) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        self._role(appointment, actor_id)
        return appointment.to_read()

    async def _slot_for(self, stylist_id: int, start: datetime):
        try:
            schedule = await get_schedule(self.session, stylist_id)
        except SQLAlchemyError as e:
            raise UpstreamFailure("Could not load the stylist's schedule, please retry") from e
        return to_wall_clock(start, schedule.timezone)

    async def _ensure_free(
        self,
        stylist_id: int,
        start: datetime,
        duration_minutes: int,
        exclude_booking_id: int | None = None,
        detail: str = "Requested time is not available",
    ):
        day, slot_time = await self._slot_for(stylist_id, start)
        begin = to_minutes(slot_time)
        check = await check_interval(
            self.session, stylist_id, day, begin, begin + duration_minutes, exclude_booking_id
        )
        if check.has_conflict:
            raise ConflictError(check.conflicts, detail)
        if check.outcome == AvailabilityOutcome.UNAVAILABLE:
            logger.warning(
                "Availability unknown for stylist %s on %s; relying on the slot index", stylist_id, day
            )
        return day, slot_time

    # --- writes ------------------------------------------------------------

    async def _commit_new(self, appointment: Appointment) -> None:
        self.session.add(appointment)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError([SLOT_TAKEN_REASON]) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise UpstreamFailure("Could not save the appointment, please retry") from e

    async def _write(self, appointment: Appointment, values: dict, *guards) -> Appointment:
        """Compare-and-swap on the status pair the caller read."""
        values = {**values, "updated_at": utc_naive_now()}
        stmt = (
            update(Appointment)
            .where(
                Appointment.id == appointment.id,
                Appointment.status == appointment.status,
                Appointment.payment_status == appointment.payment_status,
                *guards,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            if result.rowcount != 1:
                await self.session.rollback()
                raise StaleStateError()
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError([SLOT_TAKEN_REASON]) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise UpstreamFailure("Could not save the appointment, please retry") from e
        for key, value in values.items():
            set_committed_value(appointment, key, value)
        return appointment

    # --- post-commit side effects --------------------------------------------

    async def _parties(self, appointment: Appointment) -> dict[PartyRole, User]:
        result = await self.session.execute(
            select(User).where(User.id.in_([appointment.client_id, appointment.stylist_id]))
        )
        users = {u.id: u for u in result.scalars().all()}
        parties = {}
        if appointment.client_id in users:
            parties[PartyRole.CLIENT] = users[appointment.client_id]
        if appointment.stylist_id in users:
            parties[PartyRole.STYLIST] = users[appointment.stylist_id]
        return parties

    def _notification(
        self,
        appointment: Appointment,
        kind: NotificationKind,
        recipient: User,
        counterparty: User | None,
        extra: dict,
    ) -> Notification:
        target = Recipient.from_user(recipient)
        when_date, when_time = _local_parts(appointment.date_time, target.timezone)
        data = {
            "recipient_name": target.name,
            "counterparty_name": counterparty.display_name if counterparty else "",
            "service_name": appointment.service_name,
            "appointment_date": when_date,
            "appointment_time": when_time,
            "payment_status": appointment.payment_status,
        }
        if appointment.proposed_date_time is not None:
            data["new_appointment_date"], data["new_appointment_time"] = _local_parts(
                appointment.proposed_date_time, target.timezone
            )
        data.update(extra)
        return Notification(recipient=target, kind=kind, appointment_id=appointment.id, data=data)

    async def _after_commit(
        self,
        appointment: Appointment,
        notices: dict[PartyRole, NotificationKind],
        extra: dict | None = None,
    ) -> AppointmentRead:
        snapshot = appointment.to_read()
        if self.feed is not None:
            await self.feed.publish(snapshot)
        if not notices:
            return snapshot
        try:
            parties = await self._parties(appointment)
        except SQLAlchemyError as e:
            logger.exception("Could not load parties for appointment %s notifications: %s", appointment.id, e)
            return snapshot
        notifications = []
        for role, kind in notices.items():
            recipient = parties.get(role)
            if recipient is None:
                logger.warning("Appointment %s has no %s profile to notify", appointment.id, role.value)
                continue
            other = PartyRole.CLIENT if role == PartyRole.STYLIST else PartyRole.STYLIST
            notifications.append(
                self._notification(appointment, kind, recipient, parties.get(other), extra or {})
            )
        await dispatch(self.notifier, notifications)
        return snapshot

    async def _request_capture(self, snapshot: AppointmentRead, amount: float, purpose: str) -> None:
        if self.capture_hook is None or amount <= 0:
            return
        try:
            await self.capture_hook.request_capture(snapshot, amount, purpose)
        except Exception as e:
            logger.exception("Capture request for appointment %s failed: %s", snapshot.id, e)

    # --- booking -----------------------------------------------------------

    async def book_appointment(
        self,
        client: User,
        stylist_id: int,
        service_id: int,
        date_time: datetime,
        payment_type: str = PaymentType.DEPOSIT.value,
        notes: str | None = None,
        payment_reference: str | None = None,
        now: datetime | None = None,
    ) -> AppointmentRead:
        now = now or utc_naive_now()
        start = to_naive_utc(date_time)
        if start <= now:
            raise ValidationError("Appointment time must be in the future")
        try:
            payment_type = PaymentType(payment_type).value
        except ValueError as e:
            raise ValidationError(f"Unknown payment type {payment_type!r}") from e
        if client.id == stylist_id:
            raise ValidationError("You cannot book an appointment with yourself")

        try:
            stylist = await self.session.get(User, stylist_id)
            service = await self.session.get(StylistService, service_id)
        except SQLAlchemyError as e:
            raise UpstreamFailure("Could not load booking details, please retry") from e
        if stylist is None or stylist.role != UserRole.STYLIST.value:
            raise NotFoundError("Stylist not found")
        if service is None or service.stylist_id != stylist_id or not service.active:
            raise NotFoundError("Service not found")

        if payment_type == PaymentType.DEPOSIT.value:
            if service.deposit_amount <= 0:
                raise ValidationError("This service does not take deposits, please pay in full")
            payment_amount = service.deposit_amount
        else:
            payment_amount = service.price

        day, slot_time = await self._ensure_free(stylist_id, start, service.duration_minutes)

        appointment = Appointment(
            client_id=client.id,
            stylist_id=stylist_id,
            client_name=client.display_name,
            stylist_name=stylist.display_name,
            date_time=start,
            slot_date=day.isoformat(),
            slot_time=slot_time,
            service_id=service.id,
            service_name=service.name,
            duration_minutes=service.duration_minutes,
            price=service.price,
            payment_type=payment_type,
            payment_amount=payment_amount,
            total_amount=service.price,
            deposit_amount=service.deposit_amount,
            payment_reference=payment_reference,
            notes=notes,
            created_at=now,
            updated_at=now,
            expires_at=pending_deadline(start, now),
        )
        await self._commit_new(appointment)
        logger.info(
            "Appointment %s booked: client=%s stylist=%s %s %s",
            appointment.id,
            client.id,
            stylist_id,
            appointment.slot_date,
            appointment.slot_time,
        )
        return await self._after_commit(
            appointment,
            {
                PartyRole.STYLIST: NotificationKind.BOOKING_REQUESTED,
                PartyRole.CLIENT: NotificationKind.BOOKING_RECEIVED,
            },
        )

    # --- stylist response ----------------------------------------------------

    async def accept_appointment(self, appointment_id: int, actor_id: int) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        self._role(appointment, actor_id, PartyRole.STYLIST)
        target = next_status("accept", appointment.status)
        await self._write(appointment, {"status": target.value, "expires_at": None})
        logger.info("Appointment %s accepted", appointment_id)
        snapshot = await self._after_commit(
            appointment, {PartyRole.CLIENT: NotificationKind.APPOINTMENT_CONFIRMED}
        )
        if snapshot.payment_status == PaymentStatus.AUTHORIZED.value:
            await self._request_capture(snapshot, snapshot.payment_amount, "booking")
        return snapshot

    async def reject_appointment(
        self, appointment_id: int, actor_id: int, reason: str | None = None
    ) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        self._role(appointment, actor_id, PartyRole.STYLIST)
        target = next_status("reject", appointment.status)
        values = {
            "status": target.value,
            "expires_at": None,
            "cancel_reason": reason,
            **_CLEARED_PROPOSAL,
        }
        if appointment.payment_status in _RELEASABLE_PAYMENTS:
            values["payment_status"] = next_payment_status(
                appointment.payment_status, PaymentStatus.CANCELLED.value
            ).value
        await self._write(appointment, values)
        logger.info("Appointment %s rejected", appointment_id)
        return await self._after_commit(
            appointment, {PartyRole.CLIENT: NotificationKind.APPOINTMENT_REJECTED}
        )

    # --- terminal actions ----------------------------------------------------

    async def cancel_appointment(
        self, appointment_id: int, actor_id: int, reason: str | None = None
    ) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        role = self._role(appointment, actor_id)
        target = next_status("cancel", appointment.status)
        values = {
            "status": target.value,
            "cancelled_at": utc_naive_now(),
            "cancelled_by": role.value,
            "cancel_reason": reason,
            **_CLEARED_PROPOSAL,
        }
        if appointment.payment_status in _RELEASABLE_PAYMENTS:
            values["payment_status"] = next_payment_status(
                appointment.payment_status, PaymentStatus.CANCELLED.value
            ).value
        await self._write(appointment, values)
        logger.info("Appointment %s cancelled by %s", appointment_id, role.value)
        other = PartyRole.CLIENT if role == PartyRole.STYLIST else PartyRole.STYLIST
        return await self._after_commit(
            appointment,
            {other: NotificationKind.APPOINTMENT_CANCELLED},
            {"reason": f"Reason: {reason}" if reason else ""},
        )

    async def complete_appointment(
        self, appointment_id: int, actor_id: int | None = None, now: datetime | None = None
    ) -> AppointmentRead:
        """Stylist marks the visit done, or the time trigger does once it has ended."""
        appointment = await self._load(appointment_id)
        if actor_id is not None:
            self._role(appointment, actor_id, PartyRole.STYLIST)
        else:
            now = now or utc_naive_now()
            ends = appointment.date_time + timedelta(minutes=appointment.duration_minutes)
            if ends > now:
                raise PreconditionError("Appointment has not finished yet")
        target = next_status("complete", appointment.status)
        await self._write(appointment, {"status": target.value, **_CLEARED_PROPOSAL})
        logger.info("Appointment %s completed", appointment_id)
        return await self._after_commit(
            appointment, {PartyRole.CLIENT: NotificationKind.APPOINTMENT_COMPLETED}
        )

    async def request_remaining_payment(self, appointment_id: int, actor_id: int) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        self._role(appointment, actor_id, PartyRole.STYLIST)
        target = next_status("request_payment", appointment.status)
        balance = round(appointment.total_amount - appointment.payment_amount, 2)
        if appointment.payment_type != PaymentType.DEPOSIT.value or balance <= 0:
            raise PreconditionError("Appointment is already paid in full")
        await self._write(
            appointment,
            {"status": target.value, "payment_requested_at": utc_naive_now(), **_CLEARED_PROPOSAL},
        )
        logger.info("Balance of %.2f requested for appointment %s", balance, appointment_id)
        snapshot = await self._after_commit(
            appointment,
            {PartyRole.CLIENT: NotificationKind.PAYMENT_REQUESTED},
            {"balance_amount": _money(balance)},
        )
        await self._request_capture(snapshot, balance, "balance")
        return snapshot

    # --- reschedule ----------------------------------------------------------

    async def propose_reschedule(
        self,
        appointment_id: int,
        actor_id: int,
        new_date_time: datetime,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        role = self._role(appointment, actor_id)
        if not can_reschedule(appointment.status):
            raise PreconditionError(f"Cannot reschedule an appointment that is {appointment.status}")
        if appointment.proposed_date_time is not None:
            raise PreconditionError("A reschedule proposal is already waiting for a response")
        now = now or utc_naive_now()
        proposed = to_naive_utc(new_date_time)
        if proposed <= now:
            raise ValidationError("Proposed time must be in the future")
        if proposed == appointment.date_time:
            raise ValidationError("Proposed time is the same as the current time")

        await self._ensure_free(
            appointment.stylist_id, proposed, appointment.duration_minutes, exclude_booking_id=appointment.id
        )
        await self._write(
            appointment,
            {
                "proposed_date_time": proposed,
                "proposed_by": role.value,
                "proposal_created_at": now,
                "proposal_reason": reason,
            },
            Appointment.proposed_date_time.is_(None),
        )
        logger.info("Reschedule of appointment %s proposed by %s", appointment_id, role.value)
        other = PartyRole.CLIENT if role == PartyRole.STYLIST else PartyRole.STYLIST
        return await self._after_commit(appointment, {other: NotificationKind.RESCHEDULE_PROPOSED})

    def _outstanding(self, appointment: Appointment):
        proposal = appointment.reschedule_proposal
        if proposal is None:
            raise PreconditionError("There is no reschedule proposal to respond to")
        guards = (
            Appointment.proposed_date_time == proposal.proposed_date_time,
            Appointment.proposed_by == proposal.proposed_by.value,
        )
        return proposal, guards

    async def accept_reschedule(
        self, appointment_id: int, actor_id: int, now: datetime | None = None
    ) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        role = self._role(appointment, actor_id)
        proposal, guards = self._outstanding(appointment)
        if role == proposal.proposed_by:
            raise PermissionDeniedError("You cannot accept your own reschedule proposal")
        if not can_reschedule(appointment.status):
            raise PreconditionError(f"Cannot reschedule an appointment that is {appointment.status}")

        # The slot may have filled since the proposal; on conflict the proposal stays
        day, slot_time = await self._ensure_free(
            appointment.stylist_id,
            proposal.proposed_date_time,
            appointment.duration_minutes,
            exclude_booking_id=appointment.id,
            detail="Proposed time is no longer available",
        )
        values = {
            "date_time": proposal.proposed_date_time,
            "slot_date": day.isoformat(),
            "slot_time": slot_time,
            **_CLEARED_PROPOSAL,
        }
        if appointment.status == AppointmentStatus.PENDING.value:
            values["expires_at"] = pending_deadline(proposal.proposed_date_time, now or utc_naive_now())
        await self._write(appointment, values, *guards)
        logger.info("Appointment %s rescheduled to %s %s", appointment_id, values["slot_date"], slot_time)
        return await self._after_commit(
            appointment,
            {
                PartyRole.CLIENT: NotificationKind.RESCHEDULE_ACCEPTED,
                PartyRole.STYLIST: NotificationKind.RESCHEDULE_ACCEPTED,
            },
        )

    async def reject_reschedule(self, appointment_id: int, actor_id: int) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        role = self._role(appointment, actor_id)
        proposal, guards = self._outstanding(appointment)
        if role == proposal.proposed_by:
            raise PermissionDeniedError("You cannot reject your own reschedule proposal, withdraw it instead")
        await self._write(appointment, dict(_CLEARED_PROPOSAL), *guards)
        logger.info("Reschedule of appointment %s rejected", appointment_id)
        return await self._after_commit(appointment, {proposal.proposed_by: NotificationKind.RESCHEDULE_REJECTED})

    async def withdraw_reschedule(self, appointment_id: int, actor_id: int) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        role = self._role(appointment, actor_id)
        proposal, guards = self._outstanding(appointment)
        if role != proposal.proposed_by:
            raise PermissionDeniedError("Only the party who proposed the new time can withdraw it")
        await self._write(appointment, dict(_CLEARED_PROPOSAL), *guards)
        logger.info("Reschedule of appointment %s withdrawn", appointment_id)
        other = PartyRole.CLIENT if role == PartyRole.STYLIST else PartyRole.STYLIST
        return await self._after_commit(appointment, {other: NotificationKind.RESCHEDULE_WITHDRAWN})

    # --- payment gateway callbacks -------------------------------------------

    async def apply_payment_event(
        self,
        appointment_id: int,
        event: str,
        payment_reference: str | None = None,
        failure_reason: str | None = None,
    ) -> AppointmentRead:
        try:
            target = PaymentStatus(event)
        except ValueError as e:
            raise ValidationError(f"Unknown payment event {event!r}") from e
        if target == PaymentStatus.EXPIRED:
            return await self.expire_payment_authorization(appointment_id)

        appointment = await self._load(appointment_id)
        values: dict = {}
        if payment_reference and not appointment.payment_reference:
            values["payment_reference"] = payment_reference

        if target == PaymentStatus.PAID and appointment.status == AppointmentStatus.TO_BE_PAID.value:
            values.update(
                status=next_status("settle_balance", appointment.status).value,
                payment_status=PaymentStatus.PAID.value,
                payment_type=PaymentType.FULL.value,
                payment_amount=appointment.total_amount,
            )
            await self._write(appointment, values)
            logger.info("Balance settled for appointment %s", appointment_id)
            return await self._after_commit(
                appointment,
                {
                    PartyRole.CLIENT: NotificationKind.PAYMENT_UPDATED,
                    PartyRole.STYLIST: NotificationKind.PAYMENT_UPDATED,
                },
            )

        if target == PaymentStatus.FAILED and appointment.status == AppointmentStatus.TO_BE_PAID.value:
            # The deposit stands; only the balance charge was declined
            values.update(payment_failed_at=utc_naive_now(), payment_failure_reason=failure_reason)
            await self._write(appointment, values)
            logger.info("Balance payment for appointment %s failed", appointment_id)
            return await self._after_commit(
                appointment,
                {PartyRole.CLIENT: NotificationKind.PAYMENT_FAILED},
                {"reason": failure_reason or ""},
            )

        if appointment.payment_status == target.value:
            # Gateways retry deliveries
            logger.info("Duplicate %s callback for appointment %s ignored", event, appointment_id)
            return appointment.to_read()

        values["payment_status"] = next_payment_status(appointment.payment_status, target.value).value
        notices = {PartyRole.CLIENT: NotificationKind.PAYMENT_UPDATED}
        extra = {}
        if target == PaymentStatus.FAILED:
            values["payment_failed_at"] = utc_naive_now()
            values["payment_failure_reason"] = failure_reason
            extra["reason"] = failure_reason or ""
            if appointment.status == AppointmentStatus.PENDING.value:
                values["status"] = next_status("payment_error", appointment.status).value
                values["expires_at"] = None
                values.update(_CLEARED_PROPOSAL)
                notices = {PartyRole.CLIENT: NotificationKind.BOOKING_FAILED}
            else:
                notices = {PartyRole.CLIENT: NotificationKind.PAYMENT_FAILED}
        elif target == PaymentStatus.PAID:
            notices[PartyRole.STYLIST] = NotificationKind.PAYMENT_UPDATED

        await self._write(appointment, values)
        logger.info("Payment for appointment %s is now %s", appointment_id, target.value)
        return await self._after_commit(appointment, notices, extra)

    # --- time-based triggers -------------------------------------------------

    async def expire_pending_appointment(
        self, appointment_id: int, now: datetime | None = None
    ) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        target = next_status("expire", appointment.status)
        now = now or utc_naive_now()
        if appointment.expires_at is None or appointment.expires_at > now:
            raise PreconditionError("Appointment has not reached its response deadline")
        values = {
            "status": target.value,
            "expires_at": None,
            "cancelled_at": now,
            "cancelled_by": SYSTEM_ACTOR,
            "cancel_reason": "Stylist did not respond in time",
            **_CLEARED_PROPOSAL,
        }
        if appointment.payment_status == PaymentStatus.PENDING.value:
            values["payment_status"] = PaymentStatus.EXPIRED.value
        elif appointment.payment_status in _RELEASABLE_PAYMENTS:
            values["payment_status"] = PaymentStatus.CANCELLED.value
        await self._write(appointment, values)
        logger.info("Appointment %s expired without a response", appointment_id)
        return await self._after_commit(
            appointment,
            {
                PartyRole.CLIENT: NotificationKind.APPOINTMENT_AUTO_CANCELLED,
                PartyRole.STYLIST: NotificationKind.APPOINTMENT_AUTO_CANCELLED,
            },
        )

    async def expire_payment_authorization(self, appointment_id: int) -> AppointmentRead:
        appointment = await self._load(appointment_id)
        values = {
            "payment_status": next_payment_status(
                appointment.payment_status, PaymentStatus.EXPIRED.value
            ).value,
        }
        notices = {PartyRole.CLIENT: NotificationKind.PAYMENT_UPDATED}
        if appointment.status == AppointmentStatus.PENDING.value:
            values["status"] = next_status("payment_error", appointment.status).value
            values["expires_at"] = None
            values.update(_CLEARED_PROPOSAL)
            notices = {PartyRole.CLIENT: NotificationKind.BOOKING_FAILED}
        await self._write(appointment, values)
        logger.info("Payment authorization for appointment %s expired", appointment_id)
        return await self._after_commit(
            appointment, notices, {"reason": "The payment authorization expired."}
        )
