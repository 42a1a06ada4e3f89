from datetime import datetime

from app.models.schedule import BufferTime, DayHours, ScheduleBreak, ScheduleSettings, TimeOfDay
from app.services.time_utils import WEEKDAYS

STYLIST_TZ = "America/New_York"
# Fixed clock: Saturday 2024-06-01 12:00 UTC
NOW = datetime(2024, 6, 1, 12, 0)


def hhmm(value: str) -> TimeOfDay:
    hour, minute = value.split(":")
    return TimeOfDay(hour=int(hour), minute=int(minute))


def make_schedule(
    start: str = "09:00",
    end: str = "17:00",
    disabled: tuple[str, ...] = (),
    breaks: list[tuple[str, str, str, tuple[str, ...]]] | None = None,
    buffer_after: int | None = None,
    buffer_before: int = 0,
    timezone: str = STYLIST_TZ,
) -> ScheduleSettings:
    work_hours = {
        day: DayHours(is_enabled=day not in disabled, start=hhmm(start), end=hhmm(end)) for day in WEEKDAYS
    }
    schedule_breaks = [
        ScheduleBreak(id=f"b{i}", name=name, start=hhmm(b_start), end=hhmm(b_end), days=list(days))
        for i, (name, b_start, b_end, days) in enumerate(breaks or [])
    ]
    buffer = None
    if buffer_after is not None:
        buffer = BufferTime(before=buffer_before, after=buffer_after)
    return ScheduleSettings(timezone=timezone, work_hours=work_hours, breaks=schedule_breaks, buffer_time=buffer)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, notification) -> None:
        self.sent.append(notification)

    def kinds_for(self, user_id: int) -> list[str]:
        return [n.kind.value for n in self.sent if n.recipient.user_id == user_id]


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    async def notify(self, notification) -> None:
        self.attempts += 1
        raise RuntimeError("SMTP relay unreachable")


class FakeCaptureHook:
    def __init__(self):
        self.calls = []

    async def request_capture(self, appointment, amount: float, purpose: str) -> None:
        self.calls.append((appointment.id, amount, purpose))


