from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import func, select

from app.models.appointment import Appointment
from app.services import appointment_service
from app.services.appointment_service import SLOT_TAKEN_REASON, AppointmentLifecycle
from app.services.appointment_status import display_status
from app.services.conflict_service import AvailabilityOutcome, ConflictCheck, check_conflicts
from app.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    StaleStateError,
    ValidationError,
)
from app.services.lifecycle_sweep import run_lifecycle_sweep
from app.services.time_utils import to_naive_utc
from helpers import NOW, STYLIST_TZ, FailingNotifier, make_schedule

MONDAY = date(2024, 6, 10)


def at(hhmm: str, day: date = MONDAY) -> datetime:
    hour, minute = (int(p) for p in hhmm.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=ZoneInfo(STYLIST_TZ))


@pytest.fixture
async def workday(stylist, save_schedule):
    await save_schedule(stylist.id, make_schedule(start="09:00", end="18:00"))


async def _count(session) -> int:
    result = await session.execute(select(func.count()).select_from(Appointment))
    return result.scalar_one()


async def test_book_accept_pay_then_overlap_is_flagged(
    lifecycle, session, notifier, capture_hook, stylist, client_user, service, save_schedule
):
    await save_schedule(stylist.id, make_schedule(start="09:00", end="18:00", buffer_after=10))

    before = await check_conflicts(session, stylist.id, "14:00", "15:30", MONDAY)
    assert before.has_conflict is False

    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("14:00"), now=NOW)
    assert booked.status == "pending"
    assert booked.payment_status == "pending"
    assert booked.date_time == datetime(2024, 6, 10, 18, 0)  # EDT is UTC-4
    assert (booked.slot_date, booked.slot_time) == ("2024-06-10", "14:00")
    assert (booked.payment_amount, booked.total_amount) == (50.0, 200.0)

    accepted = await lifecycle.accept_appointment(booked.id, stylist.id)
    assert accepted.status == "confirmed"
    assert accepted.expires_at is None

    await lifecycle.apply_payment_event(booked.id, "captured")
    paid = await lifecycle.apply_payment_event(booked.id, "paid")
    assert paid.payment_status == "paid"
    assert display_status(paid.status, paid.payment_status) == "Confirmed"
    assert capture_hook.calls == []

    overlap = await check_conflicts(session, stylist.id, "14:00", "15:00", MONDAY)
    assert overlap.has_conflict
    assert overlap.conflicts == ["Conflicts with existing booking for Ada Client (14:00 - 15:30)"]

    assert notifier.kinds_for(stylist.id) == ["booking_requested", "payment_updated"]
    assert notifier.kinds_for(client_user.id) == [
        "booking_received",
        "appointment_confirmed",
        "payment_updated",
        "payment_updated",
    ]


async def test_booking_refused_with_reasons(lifecycle, session, workday, stylist, client_user, other_client, service):
    await lifecycle.book_appointment(client_user, stylist.id, service.id, at("14:00"), now=NOW)
    with pytest.raises(ConflictError) as exc:
        await lifecycle.book_appointment(other_client, stylist.id, service.id, at("15:00"), now=NOW)
    assert exc.value.reasons == ["Conflicts with existing booking for Ada Client (14:00 - 15:30)"]
    assert await _count(session) == 1


async def test_slot_index_rejects_colliding_write(
    lifecycle, session, workday, stylist, client_user, other_client, service, monkeypatch
):
    async def always_free(*args, **kwargs):
        return ConflictCheck(outcome=AvailabilityOutcome.AVAILABLE)

    # Simulate two clients who both read "free" before either wrote
    monkeypatch.setattr(appointment_service, "check_interval", always_free)
    ids = (stylist.id, service.id)
    await lifecycle.book_appointment(client_user, *ids, at("11:00"), now=NOW)
    with pytest.raises(ConflictError) as exc:
        await lifecycle.book_appointment(other_client, *ids, at("11:00"), now=NOW)
    assert exc.value.reasons == [SLOT_TAKEN_REASON]
    assert await _count(session) == 1


async def test_booking_input_validation(lifecycle, session, workday, stylist, client_user, other_client, service):
    with pytest.raises(ValidationError):
        await lifecycle.book_appointment(client_user, stylist.id, service.id, datetime(2024, 5, 1, 12, 0), now=NOW)
    with pytest.raises(ValidationError):
        await lifecycle.book_appointment(stylist, stylist.id, service.id, at("10:00"), now=NOW)
    with pytest.raises(NotFoundError):
        await lifecycle.book_appointment(client_user, other_client.id, service.id, at("10:00"), now=NOW)
    with pytest.raises(ValidationError):
        await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), payment_type="later", now=NOW)
    assert await _count(session) == 0


async def test_pending_deadline(lifecycle, workday, stylist, client_user, service):
    far = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    assert far.expires_at == NOW + timedelta(minutes=120)

    # Booked an hour before it starts: lapses 30 minutes before the start
    late_now = datetime(2024, 6, 10, 17, 0)
    soon = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("14:00"), now=late_now)
    assert soon.expires_at == datetime(2024, 6, 10, 17, 30)


async def test_propose_on_rejected_appointment_fails(lifecycle, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    rejected = await lifecycle.reject_appointment(booked.id, stylist.id, "Fully booked that week")

    with pytest.raises(PreconditionError):
        await lifecycle.propose_reschedule(booked.id, client_user.id, at("15:00"), now=NOW)

    current = await lifecycle.get_for_party(booked.id, client_user.id)
    assert current.status == "rejected"
    assert current.reschedule_proposal is None
    assert current.updated_at == rejected.updated_at


async def test_reschedule_acceptance_revalidates(
    lifecycle, notifier, workday, stylist, client_user, other_client, service, short_service
):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.accept_appointment(booked.id, stylist.id)
    proposed = await lifecycle.propose_reschedule(booked.id, client_user.id, at("13:00"), "Running late", now=NOW)
    assert proposed.reschedule_proposal.proposed_by.value == "client"
    assert "reschedule_proposed" in notifier.kinds_for(stylist.id)

    # Another client takes the proposed slot before the stylist answers
    await lifecycle.book_appointment(other_client, stylist.id, short_service.id, at("13:00"), now=NOW)

    with pytest.raises(ConflictError) as exc:
        await lifecycle.accept_reschedule(booked.id, stylist.id)
    assert exc.value.reasons

    current = await lifecycle.get_for_party(booked.id, stylist.id)
    assert current.proposed_date_time == to_naive_utc(at("13:00"))
    assert current.proposal_reason == "Running late"
    assert current.date_time == to_naive_utc(at("10:00"))
    assert current.status == "confirmed"

    withdrawn = await lifecycle.withdraw_reschedule(booked.id, client_user.id)
    assert withdrawn.reschedule_proposal is None
    assert notifier.kinds_for(stylist.id)[-1] == "reschedule_withdrawn"


async def test_reschedule_accept_moves_appointment(lifecycle, session, notifier, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.accept_appointment(booked.id, stylist.id)
    await lifecycle.propose_reschedule(booked.id, stylist.id, at("15:00"), now=NOW)

    moved = await lifecycle.accept_reschedule(booked.id, client_user.id)
    assert moved.date_time == to_naive_utc(at("15:00"))
    assert moved.slot_time == "15:00"
    assert moved.reschedule_proposal is None
    assert notifier.kinds_for(client_user.id)[-1] == "reschedule_accepted"
    assert notifier.kinds_for(stylist.id)[-1] == "reschedule_accepted"

    freed = await check_conflicts(session, stylist.id, "10:00", "11:00", MONDAY)
    assert not freed.has_conflict


async def test_reschedule_party_rules(lifecycle, notifier, workday, stylist, client_user, other_client, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.propose_reschedule(booked.id, stylist.id, at("15:00"), now=NOW)

    with pytest.raises(PermissionDeniedError):
        await lifecycle.accept_reschedule(booked.id, stylist.id)
    with pytest.raises(PermissionDeniedError):
        await lifecycle.withdraw_reschedule(booked.id, client_user.id)
    with pytest.raises(PreconditionError):
        await lifecycle.propose_reschedule(booked.id, client_user.id, at("16:00"), now=NOW)
    with pytest.raises(NotFoundError):
        await lifecycle.reject_reschedule(booked.id, other_client.id)

    kept = await lifecycle.reject_reschedule(booked.id, client_user.id)
    assert kept.reschedule_proposal is None
    assert kept.date_time == to_naive_utc(at("10:00"))
    assert notifier.kinds_for(stylist.id)[-1] == "reschedule_rejected"
    with pytest.raises(PreconditionError):
        await lifecycle.accept_reschedule(booked.id, client_user.id)


async def test_only_stylist_answers_requests(lifecycle, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    with pytest.raises(PermissionDeniedError):
        await lifecycle.accept_appointment(booked.id, client_user.id)
    with pytest.raises(PermissionDeniedError):
        await lifecycle.reject_appointment(booked.id, client_user.id)
    with pytest.raises(PreconditionError):
        await lifecycle.cancel_appointment(booked.id, client_user.id)


async def test_conditional_write_refuses_stale_state(
    lifecycle, session_maker, notifier, workday, stylist, client_user, service
):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    async with session_maker() as other:
        stale = await other.get(Appointment, booked.id)
        await lifecycle.accept_appointment(booked.id, stylist.id)

        racing = AppointmentLifecycle(other, notifier)
        with pytest.raises(StaleStateError):
            await racing._write(stale, {"status": "rejected"})

    current = await lifecycle.get_for_party(booked.id, stylist.id)
    assert current.status == "confirmed"


async def test_notifier_failure_never_rolls_back(session, feed, workday, stylist, client_user, service):
    failing = FailingNotifier()
    lifecycle = AppointmentLifecycle(session, failing, feed)
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    assert failing.attempts == 2
    assert (await lifecycle.get_for_party(booked.id, client_user.id)).status == "pending"


async def test_payment_failure_releases_slot(lifecycle, workday, stylist, client_user, other_client, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    failed = await lifecycle.apply_payment_event(booked.id, "failed", failure_reason="Card declined")
    assert (failed.status, failed.payment_status) == ("failed", "failed")
    assert failed.payment_failure_reason == "Card declined"
    assert failed.payment_failed_at is not None
    assert display_status(failed.status, failed.payment_status) == "Failed"

    again = await lifecycle.book_appointment(other_client, stylist.id, service.id, at("10:00"), now=NOW)
    assert again.status == "pending"


async def test_payment_callbacks(lifecycle, notifier, capture_hook, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.apply_payment_event(booked.id, "authorized", payment_reference="pi_123")
    sent = len(notifier.sent)
    duplicate = await lifecycle.apply_payment_event(booked.id, "authorized")
    assert duplicate.payment_reference == "pi_123"
    assert len(notifier.sent) == sent

    await lifecycle.accept_appointment(booked.id, stylist.id)
    assert capture_hook.calls == [(booked.id, 50.0, "booking")]

    with pytest.raises(PreconditionError):
        await lifecycle.apply_payment_event(booked.id, "refunded")
    with pytest.raises(ValidationError):
        await lifecycle.apply_payment_event(booked.id, "teleported")


async def test_reject_releases_payment_hold(lifecycle, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.apply_payment_event(booked.id, "authorized")
    rejected = await lifecycle.reject_appointment(booked.id, stylist.id)
    assert (rejected.status, rejected.payment_status) == ("rejected", "cancelled")


async def test_remaining_balance(lifecycle, notifier, capture_hook, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.accept_appointment(booked.id, stylist.id)
    await lifecycle.apply_payment_event(booked.id, "paid")

    requested = await lifecycle.request_remaining_payment(booked.id, stylist.id)
    assert requested.status == "to-be-paid"
    assert requested.payment_requested_at is not None
    assert capture_hook.calls == [(booked.id, 150.0, "balance")]
    assert notifier.sent[-1].data["balance_amount"] == "$150.00"

    settled = await lifecycle.apply_payment_event(booked.id, "paid")
    assert settled.status == "confirmed"
    assert (settled.payment_type, settled.payment_amount) == ("full", 200.0)

    with pytest.raises(PreconditionError):
        await lifecycle.request_remaining_payment(booked.id, stylist.id)


async def test_cancel_by_client_notifies_stylist(lifecycle, notifier, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.accept_appointment(booked.id, stylist.id)
    cancelled = await lifecycle.cancel_appointment(booked.id, client_user.id, "Sick")
    assert (cancelled.status, cancelled.cancelled_by, cancelled.cancel_reason) == ("cancelled", "client", "Sick")
    last = notifier.sent[-1]
    assert (last.recipient.user_id, last.kind.value) == (stylist.id, "appointment_cancelled")
    assert last.data["counterparty_name"] == "Ada Client"


async def test_cancel_keeps_captured_payment_until_refund(lifecycle, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.apply_payment_event(booked.id, "authorized")
    await lifecycle.accept_appointment(booked.id, stylist.id)
    await lifecycle.apply_payment_event(booked.id, "captured")

    cancelled = await lifecycle.cancel_appointment(booked.id, client_user.id, "Sick")
    assert (cancelled.status, cancelled.payment_status) == ("cancelled", "captured")

    refunded = await lifecycle.apply_payment_event(booked.id, "refunded")
    assert (refunded.status, refunded.payment_status) == ("cancelled", "refunded")


async def test_cancel_releases_uncaptured_hold(lifecycle, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.apply_payment_event(booked.id, "authorized")
    await lifecycle.accept_appointment(booked.id, stylist.id)
    cancelled = await lifecycle.cancel_appointment(booked.id, stylist.id)
    assert cancelled.payment_status == "cancelled"


async def test_pending_expiry(lifecycle, notifier, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    with pytest.raises(PreconditionError):
        await lifecycle.expire_pending_appointment(booked.id, now=NOW + timedelta(hours=1))

    expired = await lifecycle.expire_pending_appointment(booked.id, now=NOW + timedelta(hours=3))
    assert (expired.status, expired.payment_status, expired.cancelled_by) == ("cancelled", "expired", "system")
    assert notifier.kinds_for(stylist.id)[-1] == "appointment_auto_cancelled"
    assert notifier.kinds_for(client_user.id)[-1] == "appointment_auto_cancelled"


async def test_complete_after_service_ends(lifecycle, workday, stylist, client_user, service):
    booked = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    await lifecycle.accept_appointment(booked.id, stylist.id)
    with pytest.raises(PreconditionError):
        await lifecycle.complete_appointment(booked.id, now=datetime(2024, 6, 10, 15, 0))
    done = await lifecycle.complete_appointment(booked.id, now=datetime(2024, 6, 10, 15, 30))
    assert done.status == "completed"


async def test_lifecycle_sweep(lifecycle, session_maker, notifier, workday, stylist, client_user, service):
    unanswered = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("10:00"), now=NOW)
    confirmed = await lifecycle.book_appointment(client_user, stylist.id, service.id, at("14:00"), now=NOW)
    await lifecycle.accept_appointment(confirmed.id, stylist.id)

    result = await run_lifecycle_sweep(session_maker, notifier, now=datetime(2024, 6, 11, 0, 0))
    assert (result.expired, result.completed, result.skipped) == (1, 1, 0)

    assert (await lifecycle.get_for_party(unanswered.id, stylist.id)).status == "cancelled"
    assert (await lifecycle.get_for_party(confirmed.id, stylist.id)).status == "completed"
