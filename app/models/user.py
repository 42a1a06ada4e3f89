from enum import Enum

from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    CLIENT = "client"
    STYLIST = "stylist"


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str | None = None
    phone: str | None = None  # E.164, used for SMS
    role: str = Field(default=UserRole.CLIENT.value, index=True)
    timezone: str = "UTC"


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email.split("@")[0]
