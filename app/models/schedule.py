from datetime import UTC, datetime

from pydantic import BaseModel, Field as PydanticField, field_validator, model_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.services.errors import ValidationError as ScheduleInputError
from app.services.time_utils import WEEKDAYS, format_hhmm, get_zone, normalize_weekday


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class TimeOfDay(BaseModel):
    hour: int = PydanticField(ge=0, le=23)
    minute: int = PydanticField(ge=0, le=59)

    @property
    def hhmm(self) -> str:
        return format_hhmm(self.hour, self.minute)

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute


class DayHours(BaseModel):
    is_enabled: bool
    start: TimeOfDay
    end: TimeOfDay

    @model_validator(mode="after")
    def _end_after_start(self) -> "DayHours":
        if self.is_enabled and self.end.minutes <= self.start.minutes:
            raise ValueError("work hours end must be after start")
        return self


class ScheduleBreak(BaseModel):
    id: str
    name: str = PydanticField(min_length=1)
    start: TimeOfDay
    end: TimeOfDay
    days: list[str] = PydanticField(default_factory=list)

    @field_validator("days")
    @classmethod
    def _known_days(cls, days: list[str]) -> list[str]:
        try:
            return [normalize_weekday(d) for d in days]
        except ScheduleInputError as e:
            raise ValueError(e.detail) from e

    @model_validator(mode="after")
    def _end_after_start(self) -> "ScheduleBreak":
        if self.end.minutes <= self.start.minutes:
            raise ValueError("break end must be after start")
        return self


class BufferTime(BaseModel):
    before: int = PydanticField(default=0, ge=0, le=60)
    after: int = PydanticField(default=0, ge=0, le=60)


def _default_work_hours() -> dict[str, DayHours]:
    nine, five = TimeOfDay(hour=9, minute=0), TimeOfDay(hour=17, minute=0)
    return {
        day: DayHours(is_enabled=day not in ("saturday", "sunday"), start=nine, end=five)
        for day in WEEKDAYS
    }


class ScheduleSettings(BaseModel):
    """Validated view of a stylist's recurring availability (stylist-local wall clock)."""

    timezone: str
    work_hours: dict[str, DayHours] = PydanticField(default_factory=_default_work_hours)
    breaks: list[ScheduleBreak] = PydanticField(default_factory=list)
    buffer_time: BufferTime | None = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, tz: str) -> str:
        try:
            get_zone(tz)
        except ScheduleInputError as e:
            raise ValueError(e.detail) from e
        return tz

    @field_validator("work_hours")
    @classmethod
    def _known_work_days(cls, hours: dict[str, DayHours]) -> dict[str, DayHours]:
        try:
            return {normalize_weekday(day): value for day, value in hours.items()}
        except ScheduleInputError as e:
            raise ValueError(e.detail) from e

    def hours_for(self, weekday: str) -> DayHours | None:
        return self.work_hours.get(weekday)

    def breaks_for(self, weekday: str) -> list[ScheduleBreak]:
        return [b for b in self.breaks if weekday in b.days]

    @classmethod
    def default(cls, timezone: str) -> "ScheduleSettings":
        return cls(timezone=timezone, buffer_time=BufferTime(before=15, after=15))


class StylistSchedule(SQLModel, table=True):
    __tablename__ = "stylist_schedules"
    id: int | None = Field(default=None, primary_key=True)
    stylist_id: int = Field(foreign_key="users.id", unique=True, index=True)
    timezone: str
    work_hours: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    breaks: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    buffer_time: dict | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    updated_at: datetime = Field(default_factory=_utc_naive_now)

    def to_settings(self) -> ScheduleSettings:
        return ScheduleSettings.model_validate(
            {
                "timezone": self.timezone,
                "work_hours": self.work_hours,
                "breaks": self.breaks,
                "buffer_time": self.buffer_time,
            }
        )

    def apply(self, data: ScheduleSettings) -> None:
        dumped = data.model_dump(mode="json")
        self.timezone = dumped["timezone"]
        self.work_hours = dumped["work_hours"]
        self.breaks = dumped["breaks"]
        self.buffer_time = dumped["buffer_time"]
        self.updated_at = _utc_naive_now()
