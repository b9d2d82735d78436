"""
Appointment lifecycle.

    pending  --assign-->  assigned  --complete-->  completed
       |                  |   ^
       |                  +---+ (re-assign)
       +--cancel--> cancelled <--cancel--+

``completed`` and ``cancelled`` are terminal. The functions here only check
legality and mutate the record; slot checks, authorization and persistence
belong to the orchestrator so that all of them share one transaction.
"""
from datetime import datetime
from typing import Optional

from ..core.exceptions import InvalidTransitionError, TerminalStateError
from ..models.appointment import AppointmentStatus

PENDING = AppointmentStatus.PENDING
ASSIGNED = AppointmentStatus.ASSIGNED
COMPLETED = AppointmentStatus.COMPLETED
CANCELLED = AppointmentStatus.CANCELLED

# Allowed source states for each target
TRANSITIONS = {
    ASSIGNED: frozenset({PENDING, ASSIGNED}),
    CANCELLED: frozenset({PENDING, ASSIGNED}),
    COMPLETED: frozenset({ASSIGNED}),
}


def initial_status(clinician_id: Optional[int]) -> AppointmentStatus:
    return ASSIGNED if clinician_id is not None else PENDING


def ensure_not_terminal(appointment) -> None:
    current = AppointmentStatus(appointment.status)
    if current.is_terminal:
        raise TerminalStateError(current.value)


def ensure_transition(appointment, target: AppointmentStatus) -> None:
    """Raise unless ``appointment`` may move to ``target``."""
    ensure_not_terminal(appointment)
    current = AppointmentStatus(appointment.status)
    if target not in TRANSITIONS:
        raise InvalidTransitionError(current.value, target.value)
    if current not in TRANSITIONS[target]:
        detail = None
        if target == COMPLETED and current == PENDING:
            detail = "Cannot complete an appointment that has no clinician assigned"
        raise InvalidTransitionError(current.value, target.value, detail)


def _append_note(existing: Optional[str], label: str, text: Optional[str]) -> Optional[str]:
    if not text:
        return existing
    line = f"{label}: {text}"
    return f"{existing}\n{line}" if existing else line


def assign(appointment, clinician_id: int) -> None:
    ensure_transition(appointment, ASSIGNED)
    appointment.clinician_id = clinician_id
    appointment.status = ASSIGNED


def cancel(appointment, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
    ensure_transition(appointment, CANCELLED)
    appointment.status = CANCELLED
    appointment.cancelled_at = now or datetime.utcnow()
    if reason:
        appointment.cancellation_reason = reason[:255]
        appointment.notes = _append_note(appointment.notes, "Cancellation reason", reason)


def complete(appointment, notes: Optional[str] = None, now: Optional[datetime] = None) -> None:
    ensure_transition(appointment, COMPLETED)
    if appointment.clinician_id is None:
        raise InvalidTransitionError(
            AppointmentStatus(appointment.status).value,
            COMPLETED.value,
            "Cannot complete an appointment that has no clinician assigned",
        )
    appointment.status = COMPLETED
    appointment.completed_at = now or datetime.utcnow()
    appointment.notes = _append_note(appointment.notes, "Completion notes", notes)


def resolve_status(status: Optional[str] = None, status_id: Optional[int] = None) -> Optional[AppointmentStatus]:
    """
    Map the compatibility inputs of a generic patch to a status member.

    An explicit numeric id wins over a symbolic name when both are given.
    Returns None when neither is supplied; raises ValueError for unknown
    values.
    """
    if status_id is not None:
        return AppointmentStatus.from_id(status_id)
    if status is not None:
        return AppointmentStatus.from_name(status)
    return None
