from enum import Enum
from typing import NamedTuple


class NotificationKind(str, Enum):
    BOOKING_REQUESTED = "booking_requested"
    BOOKING_RECEIVED = "booking_received"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_REJECTED = "appointment_rejected"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_AUTO_CANCELLED = "appointment_auto_cancelled"
    APPOINTMENT_COMPLETED = "appointment_completed"
    BOOKING_FAILED = "booking_failed"
    PAYMENT_REQUESTED = "payment_requested"
    PAYMENT_UPDATED = "payment_updated"
    PAYMENT_FAILED = "payment_failed"
    RESCHEDULE_PROPOSED = "reschedule_proposed"
    RESCHEDULE_ACCEPTED = "reschedule_accepted"
    RESCHEDULE_REJECTED = "reschedule_rejected"
    RESCHEDULE_WITHDRAWN = "reschedule_withdrawn"


class Template(NamedTuple):
    subject: str
    headline: str
    body: str  # shared by the email paragraph and the SMS text


TEMPLATES: dict[NotificationKind, Template] = {
    NotificationKind.BOOKING_REQUESTED: Template(
        "New appointment request",
        "New Appointment Request",
        "{counterparty_name} requested {service_name} on {appointment_date} at {appointment_time}. "
        "Please accept or reject this booking in your dashboard.",
    ),
    NotificationKind.BOOKING_RECEIVED: Template(
        "Booking request sent",
        "Booking Request Sent",
        "Your request for {service_name} with {counterparty_name} on {appointment_date} at "
        "{appointment_time} was sent. We will let you know when the stylist responds.",
    ),
    NotificationKind.APPOINTMENT_CONFIRMED: Template(
        "Appointment confirmed",
        "Appointment Confirmed",
        "{counterparty_name} confirmed your {service_name} appointment on {appointment_date} at {appointment_time}.",
    ),
    NotificationKind.APPOINTMENT_REJECTED: Template(
        "Appointment request declined",
        "Appointment Declined",
        "{counterparty_name} could not take your {service_name} appointment on {appointment_date} at "
        "{appointment_time}. Any held funds have been released.",
    ),
    NotificationKind.APPOINTMENT_CANCELLED: Template(
        "Appointment cancelled",
        "Appointment Cancelled",
        "Your {service_name} appointment on {appointment_date} at {appointment_time} was cancelled by "
        "{counterparty_name}. {reason}",
    ),
    NotificationKind.APPOINTMENT_AUTO_CANCELLED: Template(
        "Appointment automatically cancelled",
        "Appointment Cancelled",
        "The {service_name} booking on {appointment_date} at {appointment_time} was automatically "
        "cancelled because the stylist did not respond in time.",
    ),
    NotificationKind.APPOINTMENT_COMPLETED: Template(
        "Appointment completed",
        "Thanks for visiting",
        "Your {service_name} appointment on {appointment_date} is complete.",
    ),
    NotificationKind.BOOKING_FAILED: Template(
        "Booking payment failed",
        "Booking Failed",
        "Payment for {service_name} on {appointment_date} at {appointment_time} did not go through, "
        "so the booking was not placed. {reason}",
    ),
    NotificationKind.PAYMENT_REQUESTED: Template(
        "Payment requested",
        "Payment Requested",
        "{counterparty_name} requested the remaining balance of {balance_amount} for your {service_name} "
        "appointment on {appointment_date} at {appointment_time}. Please complete payment in your dashboard.",
    ),
    NotificationKind.PAYMENT_UPDATED: Template(
        "Payment update",
        "Payment Update",
        "Payment for your {service_name} appointment on {appointment_date} is now {payment_status}.",
    ),
    NotificationKind.PAYMENT_FAILED: Template(
        "Payment failed",
        "Payment Failed",
        "We could not process payment for your {service_name} appointment on {appointment_date}. {reason}",
    ),
    NotificationKind.RESCHEDULE_PROPOSED: Template(
        "New time proposed for your appointment",
        "Reschedule Proposed",
        "{counterparty_name} proposed a new time for your {service_name} appointment. "
        "Current: {appointment_date} at {appointment_time}. Proposed: {new_appointment_date} at "
        "{new_appointment_time}. Please respond in your dashboard.",
    ),
    NotificationKind.RESCHEDULE_ACCEPTED: Template(
        "Appointment rescheduled",
        "Reschedule Accepted",
        "Your {service_name} appointment with {counterparty_name} is now on {appointment_date} at "
        "{appointment_time}.",
    ),
    NotificationKind.RESCHEDULE_REJECTED: Template(
        "Reschedule declined",
        "Reschedule Declined",
        "{counterparty_name} declined your reschedule proposal for {service_name}. Your appointment remains "
        "on {appointment_date} at {appointment_time}.",
    ),
    NotificationKind.RESCHEDULE_WITHDRAWN: Template(
        "Reschedule withdrawn",
        "Reschedule Withdrawn",
        "{counterparty_name} withdrew the proposed new time for {service_name}. Your appointment remains "
        "on {appointment_date} at {appointment_time}.",
    ),
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render(kind: NotificationKind, data: dict) -> Template:
    template = TEMPLATES[kind]
    values = _Defaults(data)
    return Template(
        subject=template.subject,
        headline=template.headline,
        body=template.body.format_map(values).strip(),
    )
