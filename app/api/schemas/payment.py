from typing import Literal

from pydantic import BaseModel

PaymentEventType = Literal["authorized", "captured", "paid", "failed", "refunded", "expired"]


class PaymentCallback(BaseModel):
    appointment_id: int
    event: PaymentEventType
    payment_reference: str | None = None
    failure_reason: str | None = None
