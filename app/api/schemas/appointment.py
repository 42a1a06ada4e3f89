from datetime import datetime

from pydantic import BaseModel, Field

from app.models.appointment import PaymentType


class BookAppointmentRequest(BaseModel):
    stylist_id: int
    service_id: int
    date_time: datetime  # absolute instant; naive values are taken as UTC
    payment_type: PaymentType = PaymentType.DEPOSIT
    notes: str | None = Field(default=None, max_length=2000)
    payment_reference: str | None = None


class ReasonRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ProposeRescheduleRequest(BaseModel):
    new_date_time: datetime
    reason: str | None = Field(default=None, max_length=500)
