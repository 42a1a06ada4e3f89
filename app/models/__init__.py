from app.models.user import User, UserRole
from app.models.service import StylistService, StylistServiceCreate, StylistServicePublic
from app.models.schedule import ScheduleSettings, StylistSchedule
from app.models.appointment import (
    Appointment,
    AppointmentRead,
    AppointmentStatus,
    PartyRole,
    PaymentStatus,
    PaymentType,
    RescheduleProposal,
)
from app.models.notification import InboxItem, InboxItemPublic

__all__ = [
    "User",
    "UserRole",
    "StylistService",
    "StylistServiceCreate",
    "StylistServicePublic",
    "ScheduleSettings",
    "StylistSchedule",
    "Appointment",
    "AppointmentRead",
    "AppointmentStatus",
    "PartyRole",
    "PaymentStatus",
    "PaymentType",
    "RescheduleProposal",
    "InboxItem",
    "InboxItemPublic",
]
