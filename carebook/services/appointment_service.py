from datetime import date, time
from typing import Any, Dict, List, Optional, Tuple
import logging
import math

from sqlalchemy.orm import Session

from ..core.authorization import OwnerOrRoleIn, RoleIn, require
from ..core.database import transaction
from ..core.exceptions import (
    ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
)
from ..core.security import Identity, Role
from ..models.appointment import Appointment, AppointmentStatus
from ..repositories.appointment_repository import AppointmentFilters, AppointmentRepository
from ..repositories.user_repository import UserRepository
from ..schemas.appointment import AppointmentCreate, AppointmentUpdate
from . import appointment_state as lifecycle
from .availability_service import AvailabilityService, ConflictChecker

logger = logging.getLogger(__name__)

ANY_ACTOR = RoleIn(set(Role))
CAN_BOOK = RoleIn({Role.CLIENT, Role.COORDINATOR})
CAN_ASSIGN = RoleIn({Role.COORDINATOR})
CAN_COMPLETE = RoleIn({Role.CLINICIAN, Role.COORDINATOR})
CAN_VIEW_STATISTICS = RoleIn({Role.CLINICIAN, Role.COORDINATOR})
PARTICIPANT = OwnerOrRoleIn(set(), ("client_id", "clinician_id"))
ASSIGNED_CLINICIAN = OwnerOrRoleIn(set(), "clinician_id")
CLIENT_OWNER = OwnerOrRoleIn(set(), "client_id")
CLINICIAN_OWNER = OwnerOrRoleIn(set(), "clinician_id")


def paginate(items: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "data": items,
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


class AppointmentService:
    """
    Appointment use cases.

    Every method takes the caller's ``Identity`` explicitly. Writes load the
    appointment row for update, authorize against it, run the state machine
    and the slot check, and flush inside a single transaction; the slot
    index and the row version counter turn any race that slips past the
    read into a 409 instead of a double booking.
    """

    def __init__(self, db: Session):
        self.db = db
        self.appointments = AppointmentRepository(db)
        self.users = UserRepository(db)
        self.slots = ConflictChecker(db)

    # Helpers

    def _ensure_actor(self, actor_id: int, role: Role, label: str) -> None:
        actor = self.users.find_by_id(actor_id)
        if not self.users.is_active(actor) or actor.role != role:
            raise NotFoundError(f"{label} not found")

    def _load(self, appointment_id: int, for_update: bool = False) -> Appointment:
        appointment = self.appointments.find_by_id(appointment_id, for_update=for_update)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def _assign(self, appointment: Appointment, clinician_id: int) -> None:
        lifecycle.ensure_transition(appointment, AppointmentStatus.ASSIGNED)
        self.slots.ensure_free(
            clinician_id,
            appointment.scheduled_date,
            appointment.scheduled_time,
            exclude_appointment_id=appointment.id,
        )
        lifecycle.assign(appointment, clinician_id)
        self.appointments.save(appointment)

    # Writes

    def create(self, identity: Identity, data: AppointmentCreate) -> Appointment:
        require(identity, CAN_BOOK)

        if identity.role == Role.CLIENT:
            if data.client_id is not None and data.client_id != identity.actor_id:
                raise ForbiddenError("Clients can only book appointments for themselves")
            client_id = identity.actor_id
        else:
            if data.client_id is None:
                raise ValidationError("client_id is required when booking on behalf of a client")
            client_id = data.client_id
            self._ensure_actor(client_id, Role.CLIENT, "Client")

        if data.clinician_id is not None:
            self._ensure_actor(data.clinician_id, Role.CLINICIAN, "Clinician")

        appointment = Appointment(
            client_id=client_id,
            clinician_id=data.clinician_id,
            scheduled_date=data.scheduled_date,
            scheduled_time=data.scheduled_time,
            status=lifecycle.initial_status(data.clinician_id),
            reason_for_visit=data.reason_for_visit,
            notes=data.notes,
        )
        with transaction(self.db):
            if data.clinician_id is not None:
                self.slots.ensure_free(data.clinician_id, data.scheduled_date, data.scheduled_time)
            self.appointments.insert(appointment)

        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} created for client {client_id} "
            f"by {identity.role.value} {identity.actor_id} ({appointment.status.value})"
        )
        return appointment

    def assign(self, identity: Identity, appointment_id: int, clinician_id: int) -> Appointment:
        require(identity, CAN_ASSIGN)
        self._ensure_actor(clinician_id, Role.CLINICIAN, "Clinician")

        with transaction(self.db):
            appointment = self._load(appointment_id, for_update=True)
            self._assign(appointment, clinician_id)

        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment_id} assigned to clinician {clinician_id}")
        return appointment

    def cancel(self, identity: Identity, appointment_id: int, reason: Optional[str] = None) -> Appointment:
        with transaction(self.db):
            appointment = self._load(appointment_id, for_update=True)
            require(identity, PARTICIPANT, appointment)
            lifecycle.cancel(appointment, reason)
            self.appointments.save(appointment)

        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment_id} cancelled by {identity.role.value} {identity.actor_id}")
        return appointment

    def complete(self, identity: Identity, appointment_id: int, notes: Optional[str] = None) -> Appointment:
        require(identity, CAN_COMPLETE)

        with transaction(self.db):
            appointment = self._load(appointment_id, for_update=True)
            require(identity, ASSIGNED_CLINICIAN, appointment)
            lifecycle.complete(appointment, notes)
            self.appointments.save(appointment)

        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment_id} completed by {identity.role.value} {identity.actor_id}")
        return appointment

    def update(self, identity: Identity, appointment_id: int, data: AppointmentUpdate) -> Appointment:
        """
        Generic partial update.

        Plain fields are written directly. A clinician change is an
        assignment and a status change is the matching transition, each
        with the same policy and legality checks as its dedicated operation.
        """
        changes = data.model_dump(exclude_unset=True)
        try:
            target = lifecycle.resolve_status(changes.pop("status", None), changes.pop("status_id", None))
        except ValueError as e:
            raise ValidationError(str(e))
        clinician_id = changes.pop("clinician_id", None)
        cancellation_reason = changes.pop("cancellation_reason", None)
        if cancellation_reason is not None and target != AppointmentStatus.CANCELLED:
            raise ValidationError("cancellation_reason is only accepted when cancelling")

        with transaction(self.db):
            appointment = self._load(appointment_id, for_update=True)
            require(identity, PARTICIPANT, appointment)
            lifecycle.ensure_not_terminal(appointment)

            reassigning = clinician_id is not None and clinician_id != appointment.clinician_id
            if target == AppointmentStatus.ASSIGNED and appointment.status != AppointmentStatus.ASSIGNED:
                reassigning = True
                clinician_id = clinician_id or appointment.clinician_id
                if clinician_id is None:
                    raise InvalidTransitionError(
                        appointment.status.value,
                        AppointmentStatus.ASSIGNED.value,
                        "A clinician is required to assign an appointment",
                    )
            if reassigning:
                require(identity, CAN_ASSIGN)
                self._ensure_actor(clinician_id, Role.CLINICIAN, "Clinician")

            new_date = changes.get("scheduled_date", appointment.scheduled_date)
            new_time = changes.get("scheduled_time", appointment.scheduled_time)
            slot_moved = new_date != appointment.scheduled_date or new_time != appointment.scheduled_time
            if slot_moved and not reassigning and appointment.clinician_id is not None:
                self.slots.ensure_free(
                    appointment.clinician_id,
                    new_date,
                    new_time,
                    exclude_appointment_id=appointment.id,
                )

            self.appointments.update(appointment, changes)
            if reassigning:
                self._assign(appointment, clinician_id)

            if target == AppointmentStatus.CANCELLED:
                lifecycle.cancel(appointment, cancellation_reason)
            elif target == AppointmentStatus.COMPLETED:
                require(identity, CAN_COMPLETE)
                require(identity, ASSIGNED_CLINICIAN, appointment)
                lifecycle.complete(appointment)
            elif target == AppointmentStatus.PENDING and appointment.status != AppointmentStatus.PENDING:
                raise InvalidTransitionError(appointment.status.value, AppointmentStatus.PENDING.value)

            self.appointments.save(appointment)

        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment_id} updated by {identity.role.value} {identity.actor_id}")
        return appointment

    # Reads

    def get(self, identity: Identity, appointment_id: int) -> Appointment:
        appointment = self._load(appointment_id)
        require(identity, PARTICIPANT, appointment)
        return appointment

    def list_appointments(
        self,
        identity: Identity,
        filters: AppointmentFilters,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Appointment], int]:
        require(identity, ANY_ACTOR)
        if identity.role == Role.CLIENT:
            if filters.client_id not in (None, identity.actor_id):
                raise ForbiddenError("Clients can only list their own appointments")
            filters.client_id = identity.actor_id
        elif identity.role == Role.CLINICIAN:
            if filters.clinician_id not in (None, identity.actor_id):
                raise ForbiddenError("Clinicians can only list their own appointments")
            filters.clinician_id = identity.actor_id
        return self.appointments.find_all(filters, page, limit)

    def list_mine(self, identity: Identity, page: int = 1, limit: int = 10) -> Tuple[List[Appointment], int]:
        if identity.role == Role.CLIENT:
            return self.appointments.find_by_client(identity.actor_id, page, limit)
        if identity.role == Role.CLINICIAN:
            return self.appointments.find_by_clinician(identity.actor_id, page, limit)
        raise ForbiddenError("Coordinators have no personal appointments; use the filtered list")

    def list_for_client(
        self, identity: Identity, client_id: int, page: int = 1, limit: int = 10
    ) -> Tuple[List[Appointment], int]:
        require(identity, CLIENT_OWNER, {"client_id": client_id})
        return self.appointments.find_by_client(client_id, page, limit)

    def list_for_clinician(
        self, identity: Identity, clinician_id: int, page: int = 1, limit: int = 10
    ) -> Tuple[List[Appointment], int]:
        require(identity, CLINICIAN_OWNER, {"clinician_id": clinician_id})
        return self.appointments.find_by_clinician(clinician_id, page, limit)

    def statistics(
        self,
        identity: Identity,
        clinician_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Dict[str, int]:
        require(identity, CAN_VIEW_STATISTICS)
        if identity.role == Role.CLINICIAN:
            if clinician_id not in (None, identity.actor_id):
                raise ForbiddenError("Clinicians can only view their own statistics")
            clinician_id = identity.actor_id
        return self.appointments.statistics(clinician_id, date_from, date_to)

    def check_availability(
        self,
        identity: Identity,
        clinician_id: int,
        scheduled_date: date,
        scheduled_time: time,
    ) -> Dict[str, Any]:
        require(identity, ANY_ACTOR)
        return {
            "is_available": self.slots.is_free(clinician_id, scheduled_date, scheduled_time),
            "within_schedule": AvailabilityService(self.db).is_within_window(
                clinician_id, scheduled_date, scheduled_time
            ),
            "clinician_id": clinician_id,
            "scheduled_date": scheduled_date,
            "scheduled_time": scheduled_time,
        }

    @staticmethod
    def status_types() -> List[Dict[str, Any]]:
        return [
            {"id": status.status_id, "name": status.label, "description": status.description}
            for status in AppointmentStatus
        ]
