"""Dual-role appointment view.

A viewer can be the client on some appointments and the stylist on others.
Each side is its own change-feed subscription; every emission from either side
goes through ``merge_snapshots``, which is the only place the two lists meet.
"""

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from functools import partial

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.appointment import Appointment, AppointmentRead, PartyRole
from app.services.appointment_status import display_status
from app.services.change_feed import AppointmentFeed, Subscription
from app.services.errors import UpstreamFailure, ValidationError
from app.services.time_utils import get_zone, localize, utc_naive_now


_ROLE_FIELDS = ((PartyRole.CLIENT, "client_id"), (PartyRole.STYLIST, "stylist_id"))

VIEW_NAMES = ("all", "today", "upcoming", "past")


@dataclass(frozen=True)
class RoleSnapshot:
    seq: int  # feed version of the fetch; later fetches win ties
    rows: tuple[AppointmentRead, ...]


def merge_snapshots(*snapshots: RoleSnapshot | None) -> list[AppointmentRead]:
    """Dedupe by id and order by ``updated_at`` descending.

    For a duplicated id the copy with the newer ``updated_at`` wins, then the
    later fetch. Rows with equal ``updated_at`` list the higher id first. The
    result does not depend on argument order or repetition.
    """
    best: dict[int, tuple[tuple[datetime, int], AppointmentRead]] = {}
    for snapshot in snapshots:
        if snapshot is None:
            continue
        for row in snapshot.rows:
            rank = (row.updated_at, snapshot.seq)
            held = best.get(row.id)
            if held is None or rank > held[0]:
                best[row.id] = (rank, row)
    merged = [row for _, row in best.values()]
    merged.sort(key=lambda r: (r.updated_at, r.id), reverse=True)
    return merged


class LocalProposal(BaseModel):
    proposed_date_time: datetime
    proposed_by: PartyRole
    proposed_at: datetime
    reason: str | None = None


class AppointmentView(BaseModel):
    id: int
    role: PartyRole
    counterparty_id: int
    counterparty_name: str
    status: str
    payment_status: str
    display_status: str
    date_time: datetime  # viewer-local, aware
    local_date: date
    service_name: str
    duration_minutes: int
    price: float
    payment_type: str
    payment_amount: float
    total_amount: float
    deposit_amount: float
    reschedule_proposal: LocalProposal | None = None
    notes: str | None = None
    cancel_reason: str | None = None
    created_at: datetime
    updated_at: datetime


def to_view(row: AppointmentRead, viewer_id: int, tz_name: str) -> AppointmentView:
    role = row.role_of(viewer_id)
    if role is None:
        raise ValueError(f"User {viewer_id} is not a party to appointment {row.id}")
    local = localize(row.date_time, tz_name)
    proposal = row.reschedule_proposal
    local_proposal = None
    if proposal is not None:
        local_proposal = LocalProposal(
            proposed_date_time=localize(proposal.proposed_date_time, tz_name),
            proposed_by=proposal.proposed_by,
            proposed_at=proposal.proposed_at,
            reason=proposal.reason,
        )
    if role == PartyRole.CLIENT:
        counterparty_id, counterparty_name = row.stylist_id, row.stylist_name
    else:
        counterparty_id, counterparty_name = row.client_id, row.client_name
    return AppointmentView(
        id=row.id,
        role=role,
        counterparty_id=counterparty_id,
        counterparty_name=counterparty_name,
        status=row.status,
        payment_status=row.payment_status,
        display_status=display_status(row.status, row.payment_status),
        date_time=local,
        local_date=local.date(),
        service_name=row.service_name,
        duration_minutes=row.duration_minutes,
        price=row.price,
        payment_type=row.payment_type,
        payment_amount=row.payment_amount,
        total_amount=row.total_amount,
        deposit_amount=row.deposit_amount,
        reschedule_proposal=local_proposal,
        notes=row.notes,
        cancel_reason=row.cancel_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# Projections: pure filters over one merged snapshot


def local_today(tz_name: str, now: datetime | None = None) -> date:
    return localize(now or utc_naive_now(), tz_name).date()


def for_role(views: Iterable[AppointmentView], role: PartyRole) -> list[AppointmentView]:
    return [v for v in views if v.role == role]


def with_status(views: Iterable[AppointmentView], status: str) -> list[AppointmentView]:
    return [v for v in views if v.status == status]


def todays(views: Iterable[AppointmentView], today: date) -> list[AppointmentView]:
    return [v for v in views if v.local_date == today]


def upcoming(views: Iterable[AppointmentView], today: date) -> list[AppointmentView]:
    return [v for v in views if v.local_date >= today]


def past(views: Iterable[AppointmentView], today: date) -> list[AppointmentView]:
    return [v for v in views if v.local_date < today]


def project(
    views: list[AppointmentView],
    today: date,
    view: str = "all",
    role: PartyRole | None = None,
    status: str | None = None,
) -> list[AppointmentView]:
    if view not in VIEW_NAMES:
        raise ValidationError(f"Unknown view {view!r}, expected one of: {', '.join(VIEW_NAMES)}")
    if view == "today":
        views = todays(views, today)
    elif view == "upcoming":
        views = upcoming(views, today)
    elif view == "past":
        views = past(views, today)
    if role is not None:
        views = for_role(views, role)
    if status is not None:
        views = with_status(views, status)
    return views


Publisher = Callable[[list[AppointmentView]], Awaitable[None]]


class DualRoleView:
    """Keeps one viewer's merged, localized appointment list current.

    Both subscriptions are opened by ``start`` and released together by
    ``close`` (or on leaving ``async with``).
    """

    def __init__(self, feed: AppointmentFeed, viewer_id: int, tz_name: str, on_change: Publisher):
        get_zone(tz_name)
        self.feed = feed
        self.viewer_id = viewer_id
        self.tz_name = tz_name
        self.on_change = on_change
        self.current: list[AppointmentView] = []
        self._snapshots: dict[PartyRole, RoleSnapshot | None] = {role: None for role, _ in _ROLE_FIELDS}
        self._subscriptions: list[Subscription] = []

    @property
    def is_open(self) -> bool:
        return bool(self._subscriptions)

    async def start(self) -> None:
        if self._subscriptions:
            return
        try:
            for role, field_name in _ROLE_FIELDS:
                subscription = await self.feed.subscribe(
                    field_name, self.viewer_id, partial(self._on_snapshot, role)
                )
                self._subscriptions.append(subscription)
        except Exception:
            await self.close()
            raise

    async def close(self) -> None:
        for subscription in self._subscriptions:
            self.feed.unsubscribe(subscription)
        self._subscriptions.clear()

    async def __aenter__(self) -> "DualRoleView":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _on_snapshot(self, role: PartyRole, rows: list[AppointmentRead], version: int) -> None:
        held = self._snapshots[role]
        if held is not None and held.seq > version:
            # fetched before the snapshot we already show
            return
        self._snapshots[role] = RoleSnapshot(seq=version, rows=tuple(rows))
        merged = merge_snapshots(*self._snapshots.values())
        self.current = [to_view(row, self.viewer_id, self.tz_name) for row in merged]
        await self.on_change(self.current)


async def load_merged(session: AsyncSession, viewer_id: int, tz_name: str) -> list[AppointmentView]:
    """One-shot read through the same reducer the live view uses."""
    get_zone(tz_name)
    snapshots = []
    try:
        for seq, (_, field_name) in enumerate(_ROLE_FIELDS, start=1):
            result = await session.execute(
                select(Appointment).where(getattr(Appointment, field_name) == viewer_id)
            )
            snapshots.append(RoleSnapshot(seq=seq, rows=tuple(a.to_read() for a in result.scalars().all())))
    except SQLAlchemyError as e:
        raise UpstreamFailure("Could not load appointments, please retry") from e
    return [to_view(row, viewer_id, tz_name) for row in merge_snapshots(*snapshots)]
