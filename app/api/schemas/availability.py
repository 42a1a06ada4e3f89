from pydantic import BaseModel

from app.services.conflict_service import AvailabilityOutcome


class AvailabilityResponse(BaseModel):
    outcome: AvailabilityOutcome
    has_conflict: bool
    conflicts: list[str]


class AvailableStartsResponse(BaseModel):
    stylist_id: int
    date: str  # YYYY-MM-DD, stylist-local
    timezone: str
    duration_minutes: int
    starts: list[str]  # HH:MM
    display: list[str]  # h:mm AM/PM
