"""Legal transitions for the two status axes and the composite display rule.

``status`` and ``payment_status`` move independently; the write path
(``appointment_service``) looks up every move here before issuing a
conditional update, so the rules can be tested without a database.
"""

from collections.abc import Callable
from typing import NamedTuple

from app.models.appointment import AppointmentStatus as S
from app.models.appointment import PaymentStatus as P
from app.services.errors import PreconditionError


class StatusTransition(NamedTuple):
    sources: frozenset[S]
    target: S


STATUS_TRANSITIONS: dict[str, StatusTransition] = {
    "accept": StatusTransition(frozenset({S.PENDING}), S.CONFIRMED),
    "reject": StatusTransition(frozenset({S.PENDING}), S.REJECTED),
    "expire": StatusTransition(frozenset({S.PENDING}), S.CANCELLED),
    "cancel": StatusTransition(frozenset({S.CONFIRMED, S.TO_BE_PAID}), S.CANCELLED),
    "complete": StatusTransition(frozenset({S.CONFIRMED}), S.COMPLETED),
    "request_payment": StatusTransition(frozenset({S.CONFIRMED}), S.TO_BE_PAID),
    "settle_balance": StatusTransition(frozenset({S.TO_BE_PAID}), S.CONFIRMED),
    "payment_error": StatusTransition(frozenset({S.PENDING}), S.FAILED),
}

# Gateway progress; a callback may skip intermediate steps.
PAYMENT_CHAIN: tuple[P, ...] = (P.PENDING, P.AUTHORIZED, P.CAPTURED, P.PAID)

PAYMENT_TRANSITIONS: dict[P, frozenset[P]] = {
    P.FAILED: frozenset({P.PENDING, P.AUTHORIZED, P.CAPTURED}),
    P.REFUNDED: frozenset({P.CAPTURED, P.PAID}),
    P.EXPIRED: frozenset({P.PENDING}),
    P.CANCELLED: frozenset({P.AUTHORIZED, P.CAPTURED}),
}

RESCHEDULABLE = frozenset({S.PENDING, S.CONFIRMED})


def next_status(action: str, current: str) -> S:
    transition = STATUS_TRANSITIONS[action]
    if S(current) not in transition.sources:
        allowed = ", ".join(sorted(s.value for s in transition.sources))
        raise PreconditionError(
            f"Cannot {action.replace('_', ' ')} an appointment that is {current} (allowed from: {allowed})"
        )
    return transition.target


def can_move_payment(current: str, target: str) -> bool:
    cur, tgt = P(current), P(target)
    if cur in PAYMENT_CHAIN and tgt in PAYMENT_CHAIN:
        return PAYMENT_CHAIN.index(tgt) > PAYMENT_CHAIN.index(cur)
    return cur in PAYMENT_TRANSITIONS.get(tgt, frozenset())


def next_payment_status(current: str, target: str) -> P:
    if not can_move_payment(current, target):
        raise PreconditionError(f"Payment cannot move from {current} to {target}")
    return P(target)


def can_reschedule(status: str) -> bool:
    return S(status) in RESCHEDULABLE


class DisplayRule(NamedTuple):
    tier: str
    matches: Callable[[str, str], bool]
    label: str


# Evaluated top to bottom; first match wins.
DISPLAY_RULES: tuple[DisplayRule, ...] = (
    DisplayRule("failure", lambda s, p: s == S.FAILED.value or p == P.FAILED.value, "Failed"),
    DisplayRule("confirmed", lambda s, p: s == S.CONFIRMED.value and p == P.PAID.value, "Confirmed"),
    DisplayRule("pending", lambda s, p: s == S.PENDING.value, "Pending"),
)


def display_status(status: str, payment_status: str) -> str:
    for rule in DISPLAY_RULES:
        if rule.matches(status, payment_status):
            return rule.label
    return status[:1].upper() + status[1:]
