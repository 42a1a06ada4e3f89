import logging
from typing import Protocol

import httpx

from app.core.config import settings
from app.models.appointment import AppointmentRead

logger = logging.getLogger(__name__)


class CaptureHook(Protocol):
    async def request_capture(self, appointment: AppointmentRead, amount: float, purpose: str) -> None: ...


class HttpCaptureHook:
    """Asks the payment service to capture funds for an appointment.

    The gateway answers later through ``POST /payments/callbacks``; nothing here
    changes appointment state.
    """

    def __init__(self, url: str | None = None, timeout: float = 10.0):
        self.url = url if url is not None else settings.payment_capture_url
        self.timeout = timeout

    async def request_capture(self, appointment: AppointmentRead, amount: float, purpose: str) -> None:
        if not self.url:
            logger.info(
                "Capture hook not configured; would capture %.2f (%s) for appointment %s",
                amount,
                purpose,
                appointment.id,
            )
            return
        payload = {
            "appointment_id": appointment.id,
            "payment_reference": appointment.payment_reference,
            "amount": round(amount, 2),
            "purpose": purpose,
            "client_id": appointment.client_id,
            "stylist_id": appointment.stylist_id,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.url, json=payload)
        if resp.status_code >= 400:
            logger.warning(
                "Capture request for appointment %s failed: status=%s body=%s",
                appointment.id,
                resp.status_code,
                resp.text[:500],
            )
            return
        logger.info("Capture requested for appointment %s (%s, %.2f)", appointment.id, purpose, amount)
