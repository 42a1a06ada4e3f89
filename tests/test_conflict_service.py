from datetime import date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from app.models.appointment import Appointment, AppointmentStatus
from app.services import conflict_service
from app.services.conflict_service import (
    AvailabilityOutcome,
    BookedInterval,
    check_conflicts,
    evaluate_conflicts,
    has_simple_conflict,
    list_available_starts,
)
from app.services.errors import ValidationError
from helpers import make_schedule

MONDAY = date(2024, 6, 10)
SUNDAY = date(2024, 6, 9)


def m(hhmm: str) -> int:
    hour, minute = hhmm.split(":")
    return int(hour) * 60 + int(minute)


def booking(start: str, duration: int, name: str = "Ada") -> BookedInterval:
    return BookedInterval(booking_id=1, client_name=name, start=m(start), duration_minutes=duration)


class TestBreakBoundaries:
    schedule = make_schedule(breaks=[("Lunch", "12:00", "13:00", ("monday",))])

    def test_service_ending_at_break_start_is_clear(self):
        assert evaluate_conflicts(self.schedule, [], m("11:00"), m("12:00"), MONDAY) == []

    def test_service_starting_at_break_end_is_clear(self):
        assert evaluate_conflicts(self.schedule, [], m("13:00"), m("14:00"), MONDAY) == []

    def test_service_spanning_break_conflicts(self):
        assert evaluate_conflicts(self.schedule, [], m("11:30"), m("12:30"), MONDAY) == [
            "Overlaps with break: Lunch (12:00 - 13:00)"
        ]

    def test_break_only_applies_on_its_days(self):
        tuesday = date(2024, 6, 11)
        assert evaluate_conflicts(self.schedule, [], m("12:00"), m("13:00"), tuesday) == []


class TestBuffer:
    schedule = make_schedule(buffer_after=15)

    def test_start_inside_buffer_conflicts(self):
        reasons = evaluate_conflicts(self.schedule, [booking("10:00", 60)], m("11:10"), m("11:40"), MONDAY)
        assert reasons == ["Conflicts with existing booking for Ada (10:00 - 11:00)"]

    def test_start_at_buffer_end_is_clear(self):
        assert evaluate_conflicts(self.schedule, [booking("10:00", 60)], m("11:15"), m("11:45"), MONDAY) == []

    def test_buffer_before_is_not_applied(self):
        # Only "after" pads the intervals; "before" is stored but unused
        schedule = make_schedule(buffer_after=0, buffer_before=30)
        assert evaluate_conflicts(schedule, [booking("10:00", 60)], m("09:30"), m("10:00"), MONDAY) == []

    def test_candidate_is_padded_too(self):
        # Candidate 09:00-09:50 padded to 10:05 reaches the 10:00 booking
        reasons = evaluate_conflicts(self.schedule, [booking("10:00", 60)], m("09:00"), m("09:50"), MONDAY)
        assert len(reasons) == 1


class TestWorkHours:
    schedule = make_schedule(start="09:00", end="17:00")

    def test_past_end_of_day(self):
        reasons = evaluate_conflicts(self.schedule, [], m("16:30"), m("17:30"), MONDAY)
        assert reasons == ["Service extends past work hours (ends 17:30, work ends 17:00)"]

    def test_before_start_of_day(self):
        reasons = evaluate_conflicts(self.schedule, [], m("08:30"), m("09:30"), MONDAY)
        assert reasons == ["Start time 08:30 is before work hours (09:00)"]

    def test_both_ends_outside(self):
        reasons = evaluate_conflicts(self.schedule, [], m("08:00"), m("18:00"), MONDAY)
        assert len(reasons) == 2

    @pytest.mark.parametrize("start, end", [("03:00", "04:00"), ("10:00", "11:00"), ("16:30", "18:00")])
    def test_disabled_day_gives_exactly_one_reason(self, start, end):
        schedule = make_schedule(disabled=("sunday",))
        reasons = evaluate_conflicts(schedule, [], m(start), m(end), SUNDAY)
        assert reasons == ["Stylist is not available this day (Sunday)"]

    def test_reasons_accumulate(self):
        schedule = make_schedule(buffer_after=10, breaks=[("Lunch", "12:00", "13:00", ("monday",))])
        reasons = evaluate_conflicts(schedule, [booking("11:00", 60)], m("11:30"), m("17:30"), MONDAY)
        assert len(reasons) == 3


async def _insert(
    session, stylist_id, client_id, slot_time, duration=60, status="pending", client_name="Ada", day=MONDAY
):
    appointment = Appointment(
        client_id=client_id,
        stylist_id=stylist_id,
        client_name=client_name,
        date_time=datetime(day.year, day.month, day.day, 12, 0),
        slot_date=day.isoformat(),
        slot_time=slot_time,
        service_name="Cut",
        duration_minutes=duration,
        price=50,
        status=status,
    )
    session.add(appointment)
    await session.commit()
    await session.refresh(appointment)
    return appointment


async def test_check_conflicts_reads_stored_bookings(session, stylist, client_user, save_schedule):
    await save_schedule(stylist.id, make_schedule(buffer_after=15))
    existing = await _insert(session, stylist.id, client_user.id, "10:00")
    await _insert(session, stylist.id, client_user.id, "14:00", status=AppointmentStatus.CANCELLED.value)

    result = await check_conflicts(session, stylist.id, "11:10", "11:40", MONDAY)
    assert result.outcome == AvailabilityOutcome.CONFLICT
    assert result.has_conflict
    assert result.conflicts == ["Conflicts with existing booking for Ada (10:00 - 11:00)"]

    # Cancelled bookings release their slot
    result = await check_conflicts(session, stylist.id, "14:00", "15:00", MONDAY)
    assert not result.has_conflict

    # A booking does not conflict with itself when it is the one being moved
    result = await check_conflicts(session, stylist.id, "10:30", "11:30", MONDAY, exclude_booking_id=existing.id)
    assert result.outcome == AvailabilityOutcome.AVAILABLE


async def test_late_booking_spills_into_next_day(session, stylist, client_user):
    late = await _insert(session, stylist.id, client_user.id, "23:30", duration=90, day=SUNDAY)
    await _insert(session, stylist.id, client_user.id, "23:00", duration=60, client_name="Bea", day=SUNDAY)

    result = await check_conflicts(session, stylist.id, "00:30", "01:30", MONDAY)
    assert result.outcome == AvailabilityOutcome.CONFLICT
    assert result.conflicts[0] == "Conflicts with existing booking for Ada (23:30 - 01:00)"
    assert not any("Bea" in reason for reason in result.conflicts)

    assert await has_simple_conflict(session, stylist.id, "00:00", "00:30", MONDAY) is True
    assert await has_simple_conflict(session, stylist.id, "01:00", "02:00", MONDAY) is False
    assert await has_simple_conflict(session, stylist.id, "00:00", "00:30", MONDAY, exclude_booking_id=late.id) is False


async def test_default_schedule_when_none_stored(session, stylist):
    result = await check_conflicts(session, stylist.id, "10:00", "11:00", SUNDAY)
    assert result.conflicts == ["Stylist is not available this day (Sunday)"]


async def test_check_conflicts_rejects_inverted_interval(session, stylist):
    with pytest.raises(ValidationError):
        await check_conflicts(session, stylist.id, "11:00", "10:00", MONDAY)


async def test_store_failure_fails_open(session, stylist, monkeypatch):
    async def broken(*args, **kwargs):
        raise OperationalError("SELECT appointments", {}, Exception("connection refused"))

    monkeypatch.setattr(conflict_service, "get_booked_intervals", broken)
    result = await check_conflicts(session, stylist.id, "10:00", "11:00", MONDAY)
    assert result.outcome == AvailabilityOutcome.UNAVAILABLE
    assert not result.has_conflict
    assert result.conflicts == []
    assert await has_simple_conflict(session, stylist.id, "10:00", "11:00", MONDAY) is False


async def test_simple_conflict_ignores_buffer(session, stylist, client_user, save_schedule):
    await save_schedule(stylist.id, make_schedule(buffer_after=15))
    await _insert(session, stylist.id, client_user.id, "10:00")
    assert await has_simple_conflict(session, stylist.id, "11:10", "11:40", MONDAY) is False
    assert await has_simple_conflict(session, stylist.id, "10:30", "11:00", MONDAY) is True
    assert await has_simple_conflict(session, stylist.id, "11:00", "12:00", MONDAY) is False


async def test_list_available_starts(session, stylist, save_schedule):
    await save_schedule(
        stylist.id, make_schedule(start="09:00", end="12:00", breaks=[("Coffee", "10:00", "10:30", ("monday",))])
    )
    starts = await list_available_starts(session, stylist.id, MONDAY, 30)
    assert starts == ["09:00", "09:15", "09:30", "10:30", "10:45", "11:00", "11:15", "11:30"]
    saturday = date(2024, 6, 8)
    assert "10:00" in await list_available_starts(session, stylist.id, saturday, 30)
