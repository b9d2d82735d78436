from dataclasses import dataclass
from datetime import date, time
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.exceptions import ConflictError, SlotConflictError
from ..models.appointment import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

SLOT_INDEX_NAME = "uq_appointments_active_slot"
# SQLite reports the columns instead of the index name
SLOT_COLUMNS = "appointments.clinician_id, appointments.scheduled_date, appointments.scheduled_time"


@dataclass
class AppointmentFilters:
    status: Optional[AppointmentStatus] = None
    clinician_id: Optional[int] = None
    client_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


def _is_slot_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return SLOT_INDEX_NAME in message or SLOT_COLUMNS in message


class AppointmentRepository:
    """Persistence for appointments. Never commits; the caller owns the transaction."""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        return self.save(appointment)

    def save(self, appointment: Appointment) -> Appointment:
        """Flush pending changes, translating store-level races into 409s."""
        # A failed flush expires the instance, so read what the log needs first
        appointment_id = appointment.id
        slot = (appointment.clinician_id, appointment.scheduled_date, appointment.scheduled_time)
        try:
            self.db.flush()
        except IntegrityError as e:
            if _is_slot_violation(e):
                logger.warning(f"Slot already taken for clinician {slot[0]} at {slot[1]} {slot[2]}")
                raise SlotConflictError() from e
            raise
        except StaleDataError as e:
            logger.warning(f"Appointment {appointment_id} was modified concurrently")
            raise ConflictError("Appointment was modified by another request; reload and retry") from e
        return appointment

    def find_by_id(self, appointment_id: int, for_update: bool = False) -> Optional[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _paginate(self, query, page: int, limit: int) -> Tuple[List[Appointment], int]:
        total = query.order_by(None).count()
        items = (
            query.order_by(Appointment.scheduled_date.desc(), Appointment.scheduled_time.desc(), Appointment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def find_by_client(self, client_id: int, page: int = 1, limit: int = 10) -> Tuple[List[Appointment], int]:
        query = self.db.query(Appointment).filter(Appointment.client_id == client_id)
        return self._paginate(query, page, limit)

    def find_by_clinician(self, clinician_id: int, page: int = 1, limit: int = 10) -> Tuple[List[Appointment], int]:
        query = self.db.query(Appointment).filter(Appointment.clinician_id == clinician_id)
        return self._paginate(query, page, limit)

    def _apply_filters(self, query, filters: AppointmentFilters):
        if filters.status is not None:
            query = query.filter(Appointment.status == filters.status)
        if filters.clinician_id is not None:
            query = query.filter(Appointment.clinician_id == filters.clinician_id)
        if filters.client_id is not None:
            query = query.filter(Appointment.client_id == filters.client_id)
        if filters.date_from is not None:
            query = query.filter(Appointment.scheduled_date >= filters.date_from)
        if filters.date_to is not None:
            query = query.filter(Appointment.scheduled_date <= filters.date_to)
        return query

    def find_all(
        self,
        filters: Optional[AppointmentFilters] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Appointment], int]:
        query = self._apply_filters(self.db.query(Appointment), filters or AppointmentFilters())
        return self._paginate(query, page, limit)

    def update(self, appointment: Appointment, fields: Dict[str, Any]) -> Appointment:
        """Apply plain column changes. Status and clinician are lifecycle-owned."""
        for field, value in fields.items():
            if field in ("id", "status", "clinician_id", "version"):
                continue
            setattr(appointment, field, value)
        return self.save(appointment)

    def exists_active_slot(
        self,
        clinician_id: int,
        scheduled_date: date,
        scheduled_time: time,
        exclude_id: Optional[int] = None,
    ) -> bool:
        query = self.db.query(Appointment.id).filter(
            Appointment.clinician_id == clinician_id,
            Appointment.scheduled_date == scheduled_date,
            Appointment.scheduled_time == scheduled_time,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return self.db.query(query.exists()).scalar()

    def statistics(
        self,
        clinician_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Dict[str, int]:
        def count_status(status: AppointmentStatus):
            return func.coalesce(func.sum(case((Appointment.status == status, 1), else_=0)), 0)

        query = self.db.query(
            func.count(Appointment.id),
            count_status(AppointmentStatus.PENDING),
            count_status(AppointmentStatus.ASSIGNED),
            count_status(AppointmentStatus.COMPLETED),
            count_status(AppointmentStatus.CANCELLED),
        )
        query = self._apply_filters(
            query,
            AppointmentFilters(clinician_id=clinician_id, date_from=date_from, date_to=date_to),
        )
        total, pending, assigned, completed, cancelled = query.one()
        return {
            "total_appointments": int(total or 0),
            "pending_appointments": int(pending or 0),
            "assigned_appointments": int(assigned or 0),
            "completed_appointments": int(completed or 0),
            "cancelled_appointments": int(cancelled or 0),
        }
