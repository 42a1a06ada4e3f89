from fastapi import BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import async_session_maker, get_session
from app.core.security import decode_access_token
from app.models.user import User, UserRole
from app.services.appointment_service import AppointmentLifecycle
from app.services.change_feed import AppointmentFeed
from app.services.notifier import BackgroundTasksNotifier, EmailSmsNotifier, Notifier
from app.services.payment_gateway import CaptureHook, HttpCaptureHook

security = HTTPBearer(auto_error=False)


async def user_from_token(session: AsyncSession, token: str | None) -> User | None:
    """Resolve a bearer token to its user; None when missing, invalid or unknown."""
    if not token:
        return None
    user_id = decode_access_token(token)
    if not user_id:
        return None
    try:
        uid = int(user_id)
    except ValueError:
        return None
    result = await session.execute(select(User).where(User.id == uid))
    return result.scalar_one_or_none()


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = await user_from_token(session, credentials.credentials)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_stylist(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.STYLIST.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only stylists can do this",
        )
    return current_user


def get_appointment_feed(request: Request) -> AppointmentFeed:
    return request.app.state.appointment_feed


def get_base_notifier() -> Notifier:
    return EmailSmsNotifier(async_session_maker)


def get_notifier(
    background_tasks: BackgroundTasks,
    base: Notifier = Depends(get_base_notifier),
) -> Notifier:
    return BackgroundTasksNotifier(background_tasks, base)


def get_capture_hook() -> CaptureHook:
    return HttpCaptureHook()


def get_lifecycle(
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
    feed: AppointmentFeed = Depends(get_appointment_feed),
    capture_hook: CaptureHook = Depends(get_capture_hook),
) -> AppointmentLifecycle:
    return AppointmentLifecycle(session, notifier, feed, capture_hook)
