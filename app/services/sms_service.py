import logging

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


async def send_sms(to_phone: str | None, body: str) -> bool:
    """Send SMS via the Twilio REST API. Returns False when skipped or rejected."""
    if not settings.sms_enabled:
        logger.debug("SMS disabled (Twilio not configured), skipping send")
        return False
    if not to_phone:
        logger.debug("No phone number on recipient, skipping SMS")
        return False
    if not to_phone.startswith("+"):
        logger.warning("Phone number not in E.164 format: %s", to_phone)
        return False

    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.post(
            TWILIO_MESSAGES_URL.format(account_sid=settings.twilio_account_sid),
            auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            data={
                "To": to_phone,
                "From": settings.twilio_from_number,
                "Body": f"{body}\n- {settings.site_name}",
            },
        )
    if resp.status_code not in (200, 201):
        logger.warning("Twilio send failed: status=%s body=%s", resp.status_code, resp.text[:500])
        return False
    logger.info("SMS sent to %s", to_phone)
    return True
