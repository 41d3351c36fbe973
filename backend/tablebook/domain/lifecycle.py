from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..models import ReservationStatus
from .errors import InvalidTransitionError

# target -> statuses it may be entered from
_ALLOWED_SOURCES: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.PENDING}),
    ReservationStatus.CANCELLED: frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED}),
    ReservationStatus.NO_SHOW: frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED}),
}

# targets for which "already there" is a successful no-op
_IDEMPOTENT_TARGETS = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED})


@dataclass(frozen=True)
class TransitionResult:
    reservation_id: int
    status_from: ReservationStatus
    status_to: ReservationStatus
    changed: bool


def plan_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    """
    Decide whether moving ``current`` to ``target`` is a change, a no-op, or illegal.

    Returns True when the transition must be applied and False when the
    reservation already holds ``target``. Raises InvalidTransitionError for
    any other edge.
    """
    if current == target and target in _IDEMPOTENT_TARGETS:
        return False
    if current in _ALLOWED_SOURCES.get(target, frozenset()):
        return True
    raise InvalidTransitionError(current.value, target.value)


def normalize_reason(reason: str | None) -> str | None:
    if reason is None or not reason.strip():
        return None
    return reason.strip()


@dataclass(frozen=True)
class CancellationFields:
    cancelled_at: datetime
    cancellation_reason: str | None


def cancellation_fields(
    *,
    existing_cancelled_at: datetime | None,
    existing_reason: str | None,
    reason: str | None,
    now: datetime,
) -> CancellationFields:
    """Audit fields are written once; values already present are kept."""
    return CancellationFields(
        cancelled_at=existing_cancelled_at if existing_cancelled_at is not None else now,
        cancellation_reason=existing_reason if existing_reason is not None else normalize_reason(reason),
    )
