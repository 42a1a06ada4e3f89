"""In-process change feed over the appointments table.

A subscription is a single ``field == value`` filter (the store cannot OR two
fields in one subscription). The listener receives the full matching set once
on subscribe and again after every committed write that touches a matching
row. Writers call ``publish`` after their commit.

Each delivery carries a version taken before its query runs. Deliveries can
finish out of order, so a listener should ignore a version lower than one it
has already applied.
"""

import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.models.appointment import Appointment, AppointmentRead

logger = logging.getLogger(__name__)

FILTERABLE_FIELDS = ("client_id", "stylist_id")

Listener = Callable[[list[AppointmentRead], int], Awaitable[None]]


@dataclass(eq=False)
class Subscription:
    field: str
    value: int
    listener: Listener
    active: bool = field(default=True)


class AppointmentFeed:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._subscriptions: set[Subscription] = set()
        self._versions = itertools.count(1)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def subscribe(self, field_name: str, value: int, listener: Listener) -> Subscription:
        if field_name not in FILTERABLE_FIELDS:
            raise ValueError(f"Cannot subscribe on {field_name!r}")
        subscription = Subscription(field=field_name, value=value, listener=listener)
        self._subscriptions.add(subscription)
        await self._deliver(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        self._subscriptions.discard(subscription)

    async def publish(self, changed: AppointmentRead) -> None:
        for subscription in list(self._subscriptions):
            if getattr(changed, subscription.field) == subscription.value:
                await self._deliver(subscription)

    async def _fetch(self, field_name: str, value: int) -> list[AppointmentRead]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Appointment).where(getattr(Appointment, field_name) == value)
            )
            return [a.to_read() for a in result.scalars().all()]

    async def _deliver(self, subscription: Subscription) -> None:
        version = next(self._versions)
        try:
            rows = await self._fetch(subscription.field, subscription.value)
        except SQLAlchemyError as e:
            logger.exception(
                "Change feed fetch for %s=%s failed: %s", subscription.field, subscription.value, e
            )
            return
        if not subscription.active:
            return
        try:
            await subscription.listener(rows, version)
        except Exception as e:
            logger.exception(
                "Change feed listener for %s=%s failed: %s", subscription.field, subscription.value, e
            )
