import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.api.deps import get_lifecycle
from app.api.schemas.payment import PaymentCallback
from app.core.config import settings
from app.models.appointment import AppointmentRead
from app.services.appointment_service import AppointmentLifecycle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


def verify_webhook_secret(x_webhook_secret: str | None = Header(default=None, alias="X-Webhook-Secret")) -> None:
    if not settings.payment_webhook_secret:
        logger.warning("Payment callback received but PAYMENT_WEBHOOK_SECRET is not set")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Payment callbacks are not enabled")
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, settings.payment_webhook_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")


@router.post("/callbacks", response_model=AppointmentRead, dependencies=[Depends(verify_webhook_secret)])
async def payment_callback(
    body: PaymentCallback,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> AppointmentRead:
    """Gateway reports progress on an appointment's payment."""
    logger.info("Payment callback: appointment=%s event=%s", body.appointment_id, body.event)
    return await lifecycle.apply_payment_event(
        body.appointment_id,
        body.event,
        payment_reference=body.payment_reference,
        failure_reason=body.failure_reason,
    )
