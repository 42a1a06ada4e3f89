"""Fire-and-forget fan-out of appointment notifications: in-app list, email and SMS."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.user import User
from app.services.email_service import send_notification_email
from app.services.inbox_service import add_item
from app.services.notification_templates import NotificationKind, render
from app.services.sms_service import send_sms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    user_id: int
    name: str
    email: str | None = None
    phone: str | None = None
    timezone: str = "UTC"

    @classmethod
    def from_user(cls, user: User) -> "Recipient":
        return cls(
            user_id=user.id,
            name=user.display_name,
            email=user.email,
            phone=user.phone,
            timezone=user.timezone,
        )


@dataclass(frozen=True)
class Notification:
    recipient: Recipient
    kind: NotificationKind
    appointment_id: int
    data: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    async def notify(self, notification: Notification) -> None: ...


def _details(data: dict[str, Any]) -> list[tuple[str, str]]:
    when = ""
    if data.get("appointment_date"):
        when = f"{data['appointment_date']} at {data.get('appointment_time', '')}".strip()
    proposed = ""
    if data.get("new_appointment_date"):
        proposed = f"{data['new_appointment_date']} at {data.get('new_appointment_time', '')}".strip()
    return [
        ("Service", data.get("service_name", "")),
        ("With", data.get("counterparty_name", "")),
        ("When", when),
        ("Proposed", proposed),
    ]


class EmailSmsNotifier:
    """Stores each notification in the recipient's in-app list (when given a
    session maker), then sends it by email and, when the recipient has a phone,
    by SMS. Each channel fails on its own."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        self.session_maker = session_maker

    async def notify(self, notification: Notification) -> None:
        rendered = render(notification.kind, notification.data)
        recipient = notification.recipient
        if self.session_maker is not None:
            try:
                async with self.session_maker() as session:
                    await add_item(
                        session,
                        recipient.user_id,
                        notification.kind.value,
                        rendered.subject,
                        rendered.body,
                        notification.appointment_id,
                        notification.data,
                    )
            except SQLAlchemyError as e:
                logger.exception(
                    "In-app %s for appointment %s failed: %s", notification.kind.value, notification.appointment_id, e
                )
        if recipient.email:
            try:
                # smtplib blocks; keep it off the event loop
                await asyncio.to_thread(
                    send_notification_email,
                    recipient.email,
                    recipient.name,
                    rendered.subject,
                    rendered.headline,
                    rendered.body,
                    _details(notification.data),
                )
            except Exception as e:
                logger.exception(
                    "Email %s for appointment %s failed: %s", notification.kind.value, notification.appointment_id, e
                )
        if recipient.phone:
            try:
                await send_sms(recipient.phone, rendered.body)
            except Exception as e:
                logger.exception(
                    "SMS %s for appointment %s failed: %s", notification.kind.value, notification.appointment_id, e
                )


class BackgroundTasksNotifier:
    """Defers delivery until FastAPI has sent the response."""

    def __init__(self, background_tasks: BackgroundTasks, delegate: Notifier):
        self.background_tasks = background_tasks
        self.delegate = delegate

    async def notify(self, notification: Notification) -> None:
        self.background_tasks.add_task(self.delegate.notify, notification)


async def dispatch(notifier: Notifier, notifications: list[Notification]) -> None:
    """Hand every notification to ``notifier``; a failure is logged and never raised."""
    for notification in notifications:
        try:
            await notifier.notify(notification)
        except Exception as e:
            logger.exception(
                "Notifier rejected %s for appointment %s (user %s): %s",
                notification.kind.value,
                notification.appointment_id,
                notification.recipient.user_id,
                e,
            )
