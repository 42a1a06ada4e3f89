from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel
from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    FAILED = "failed"
    TO_BE_PAID = "to-be-paid"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class PaymentType(str, Enum):
    DEPOSIT = "deposit"
    FULL = "full"


class PartyRole(str, Enum):
    CLIENT = "client"
    STYLIST = "stylist"


# Statuses that no longer hold their slot; the storage-level uniqueness
# constraint only covers the others.
SLOT_RELEASING_STATUSES = (
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.REJECTED.value,
    AppointmentStatus.FAILED.value,
)

_ACTIVE_SLOT_WHERE = text(
    "status NOT IN (" + ", ".join(f"'{s}'" for s in SLOT_RELEASING_STATUSES) + ")"
)


class RescheduleProposal(BaseModel):
    proposed_date_time: datetime
    proposed_by: PartyRole
    proposed_at: datetime
    reason: str | None = None


class AppointmentBase(SQLModel):
    client_id: int = Field(foreign_key="users.id", index=True)
    stylist_id: int = Field(foreign_key="users.id", index=True)
    client_name: str = ""
    stylist_name: str = ""

    # Absolute instant (naive UTC) and its stylist-local wall-clock projection
    date_time: datetime = Field(index=True)
    slot_date: str = Field(index=True)  # YYYY-MM-DD
    slot_time: str  # HH:MM

    # Service snapshot
    service_id: int | None = Field(default=None, foreign_key="stylist_services.id")
    service_name: str
    duration_minutes: int
    price: float

    payment_type: str = PaymentType.DEPOSIT.value
    payment_amount: float = 0
    total_amount: float = 0
    deposit_amount: float = 0
    payment_reference: str | None = Field(default=None, index=True)

    status: str = Field(default=AppointmentStatus.PENDING.value, index=True)
    payment_status: str = Field(default=PaymentStatus.PENDING.value, index=True)

    # Embedded reschedule proposal; present only while an offer is outstanding
    proposed_date_time: datetime | None = None
    proposed_by: str | None = None
    proposal_created_at: datetime | None = None
    proposal_reason: str | None = None

    notes: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now, index=True)
    expires_at: datetime | None = Field(default=None, index=True)
    payment_failed_at: datetime | None = None
    payment_failure_reason: str | None = None
    payment_requested_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancel_reason: str | None = None

    @property
    def reschedule_proposal(self) -> RescheduleProposal | None:
        if self.proposed_date_time is None or self.proposed_by is None:
            return None
        return RescheduleProposal(
            proposed_date_time=self.proposed_date_time,
            proposed_by=PartyRole(self.proposed_by),
            proposed_at=self.proposal_created_at or self.updated_at,
            reason=self.proposal_reason,
        )

    def role_of(self, user_id: int) -> PartyRole | None:
        if user_id == self.stylist_id:
            return PartyRole.STYLIST
        if user_id == self.client_id:
            return PartyRole.CLIENT
        return None


class Appointment(AppointmentBase, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        # Authoritative double-booking guard; the conflict resolver is only advisory
        Index(
            "uq_appointments_active_slot",
            "stylist_id",
            "slot_date",
            "slot_time",
            unique=True,
            sqlite_where=_ACTIVE_SLOT_WHERE,
            postgresql_where=_ACTIVE_SLOT_WHERE,
        ),
    )
    id: int | None = Field(default=None, primary_key=True)

    def to_read(self) -> "AppointmentRead":
        return AppointmentRead.model_validate(self.model_dump())


class AppointmentRead(AppointmentBase):
    """Detached, read-only copy handed to change-feed subscribers."""

    id: int
