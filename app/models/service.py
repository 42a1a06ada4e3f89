from sqlmodel import Field, SQLModel


class StylistServiceBase(SQLModel):
    name: str
    duration_minutes: int = Field(gt=0)
    price: float = Field(ge=0)
    deposit_amount: float = Field(default=0, ge=0)
    active: bool = True


class StylistService(StylistServiceBase, table=True):
    __tablename__ = "stylist_services"
    id: int | None = Field(default=None, primary_key=True)
    stylist_id: int = Field(foreign_key="users.id", index=True)


class StylistServiceCreate(StylistServiceBase):
    pass


class StylistServicePublic(StylistServiceBase):
    id: int
    stylist_id: int
