import asyncio
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_current_user,
    get_lifecycle,
    get_session,
    user_from_token,
)
from app.api.schemas.appointment import (
    BookAppointmentRequest,
    ProposeRescheduleRequest,
    ReasonRequest,
)
from app.core.db import async_session_maker
from app.models.appointment import AppointmentRead, PartyRole
from app.models.user import User
from app.services.appointment_service import AppointmentLifecycle
from app.services.errors import AppointmentError
from app.services.live_view import AppointmentView, DualRoleView, load_merged, local_today, project

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", response_model=AppointmentRead, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: BookAppointmentRequest,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.book_appointment(
        client=current_user,
        stylist_id=body.stylist_id,
        service_id=body.service_id,
        date_time=body.date_time,
        payment_type=body.payment_type.value,
        notes=body.notes,
        payment_reference=body.payment_reference,
    )


@router.get("", response_model=list[AppointmentView])
async def list_my_appointments(
    view: str = Query("all", description="all | today | upcoming | past"),
    role: PartyRole | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    tz: str | None = Query(None, description="IANA timezone; defaults to the profile timezone"),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[AppointmentView]:
    """Appointments where the caller is client or stylist, merged and localized."""
    tz_name = tz or current_user.timezone
    views = await load_merged(session, current_user.id, tz_name)
    return project(views, local_today(tz_name), view=view, role=role, status=status_filter)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/live")
async def live_appointments(
    websocket: WebSocket,
    token: str | None = Query(None),
    tz: str | None = Query(None),
) -> None:
    """Push the merged dual-role list on connect and after every change."""
    async with async_session_maker() as session:
        user = await user_from_token(session, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    updates: asyncio.Queue[list[AppointmentView]] = asyncio.Queue()

    async def push(views: list[AppointmentView]) -> None:
        updates.put_nowait(views)

    try:
        live = DualRoleView(websocket.app.state.appointment_feed, user.id, tz or user.timezone, push)
    except AppointmentError as e:
        logger.info("Rejected live view for user %s: %s", user.id, e.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        async with live:
            while not disconnected.done():
                next_update = asyncio.create_task(updates.get())
                await asyncio.wait({next_update, disconnected}, return_when=asyncio.FIRST_COMPLETED)
                if not next_update.done():
                    next_update.cancel()
                    break
                views = next_update.result()
                # Only the newest snapshot matters
                while not updates.empty():
                    views = updates.get_nowait()
                await websocket.send_json(
                    {"type": "snapshot", "appointments": [v.model_dump(mode="json") for v in views]}
                )
    except WebSocketDisconnect:
        pass
    finally:
        disconnected.cancel()
        logger.debug("Live view for user %s closed", user.id)


@router.get("/{appointment_id}", response_model=AppointmentRead)
async def get_appointment(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.get_for_party(appointment_id, current_user.id)


@router.post("/{appointment_id}/accept", response_model=AppointmentRead)
async def accept_appointment(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.accept_appointment(appointment_id, current_user.id)


@router.post("/{appointment_id}/reject", response_model=AppointmentRead)
async def reject_appointment(
    appointment_id: int,
    body: ReasonRequest | None = None,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    reason = body.reason if body else None
    return await lifecycle.reject_appointment(appointment_id, current_user.id, reason)


@router.post("/{appointment_id}/cancel", response_model=AppointmentRead)
async def cancel_appointment(
    appointment_id: int,
    body: ReasonRequest | None = None,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    reason = body.reason if body else None
    return await lifecycle.cancel_appointment(appointment_id, current_user.id, reason)


@router.post("/{appointment_id}/complete", response_model=AppointmentRead)
async def complete_appointment(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.complete_appointment(appointment_id, current_user.id)


@router.post("/{appointment_id}/request-payment", response_model=AppointmentRead)
async def request_remaining_payment(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.request_remaining_payment(appointment_id, current_user.id)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentRead)
async def propose_reschedule(
    appointment_id: int,
    body: ProposeRescheduleRequest,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.propose_reschedule(
        appointment_id, current_user.id, body.new_date_time, body.reason
    )


@router.post("/{appointment_id}/reschedule/accept", response_model=AppointmentRead)
async def accept_reschedule(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.accept_reschedule(appointment_id, current_user.id)


@router.post("/{appointment_id}/reschedule/reject", response_model=AppointmentRead)
async def reject_reschedule(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.reject_reschedule(appointment_id, current_user.id)


@router.post("/{appointment_id}/reschedule/withdraw", response_model=AppointmentRead)
async def withdraw_reschedule(
    appointment_id: int,
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    current_user: User = Depends(get_current_user),
) -> AppointmentRead:
    return await lifecycle.withdraw_reschedule(appointment_id, current_user.id)
