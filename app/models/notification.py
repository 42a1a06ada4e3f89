from datetime import UTC, datetime

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class InboxItemBase(SQLModel):
    appointment_id: int | None = Field(default=None, index=True)
    type: str  # NotificationKind value
    title: str
    message: str
    read: bool = False


class InboxItem(InboxItemBase, table=True):
    """One in-app notification, shown in the recipient's notification list."""

    __tablename__ = "notifications"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utc_naive_now, index=True)


class InboxItemPublic(InboxItemBase):
    id: int
    user_id: int
    data: dict
    created_at: datetime
