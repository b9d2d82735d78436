from datetime import date, time
from typing import List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.authorization import OwnerOrRoleIn, RoleIn, require
from ..core.database import transaction
from ..core.exceptions import ConflictError, NotFoundError, SlotConflictError, ValidationError
from ..core.security import Identity, Role
from ..models.availability import AvailabilityWindow
from ..repositories.appointment_repository import AppointmentRepository
from ..repositories.user_repository import UserRepository
from ..schemas.appointment import AvailabilityWindowCreate, AvailabilityWindowUpdate

logger = logging.getLogger(__name__)

MANAGE_WINDOWS = RoleIn({Role.CLINICIAN, Role.COORDINATOR})
OWN_WINDOW = OwnerOrRoleIn(set(), "clinician_id")


class ConflictChecker:
    """Exact-match slot check against non-cancelled appointments."""

    def __init__(self, db: Session):
        self.appointments = AppointmentRepository(db)

    def is_free(
        self,
        clinician_id: int,
        scheduled_date: date,
        scheduled_time: time,
        exclude_appointment_id: Optional[int] = None,
    ) -> bool:
        return not self.appointments.exists_active_slot(
            clinician_id, scheduled_date, scheduled_time, exclude_id=exclude_appointment_id
        )

    def ensure_free(
        self,
        clinician_id: int,
        scheduled_date: date,
        scheduled_time: time,
        exclude_appointment_id: Optional[int] = None,
    ) -> None:
        if not self.is_free(clinician_id, scheduled_date, scheduled_time, exclude_appointment_id):
            logger.warning(
                f"Rejected booking: clinician {clinician_id} already holds "
                f"{scheduled_date} {scheduled_time}"
            )
            raise SlotConflictError()


class AvailabilityService:
    """Advisory weekly availability windows for clinicians."""

    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)

    def _get_window(self, window_id: int) -> AvailabilityWindow:
        window = self.db.query(AvailabilityWindow).filter(AvailabilityWindow.id == window_id).first()
        if not window:
            raise NotFoundError("Availability window not found")
        return window

    def _ensure_clinician(self, clinician_id: int) -> None:
        clinician = self.users.find_by_id(clinician_id)
        if not clinician or clinician.role != Role.CLINICIAN:
            raise NotFoundError("Clinician not found")

    @staticmethod
    def _check_range(start: time, end: time) -> None:
        if start >= end:
            raise ValidationError("start_time must be earlier than end_time")

    def create_window(self, identity: Identity, data: AvailabilityWindowCreate) -> AvailabilityWindow:
        require(identity, MANAGE_WINDOWS)
        clinician_id = data.clinician_id if data.clinician_id is not None else identity.actor_id
        require(identity, OWN_WINDOW, {"clinician_id": clinician_id})
        self._ensure_clinician(clinician_id)
        self._check_range(data.start_time, data.end_time)

        window = AvailabilityWindow(
            clinician_id=clinician_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            is_available=data.is_available,
        )
        try:
            with transaction(self.db):
                self.db.add(window)
                self.db.flush()
        except IntegrityError as e:
            raise ConflictError("Availability for that day already exists") from e
        self.db.refresh(window)
        return window

    def list_for_clinician(self, clinician_id: int) -> List[AvailabilityWindow]:
        return (
            self.db.query(AvailabilityWindow)
            .filter(AvailabilityWindow.clinician_id == clinician_id)
            .order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time)
            .all()
        )

    def update_window(
        self, identity: Identity, window_id: int, data: AvailabilityWindowUpdate
    ) -> AvailabilityWindow:
        require(identity, MANAGE_WINDOWS)
        window = self._get_window(window_id)
        require(identity, OWN_WINDOW, window)

        changes = data.model_dump(exclude_unset=True)
        self._check_range(
            changes.get("start_time", window.start_time),
            changes.get("end_time", window.end_time),
        )
        try:
            with transaction(self.db):
                for field, value in changes.items():
                    setattr(window, field, value)
                self.db.flush()
        except IntegrityError as e:
            raise ConflictError("Availability for that day already exists") from e
        self.db.refresh(window)
        return window

    def delete_window(self, identity: Identity, window_id: int) -> None:
        require(identity, MANAGE_WINDOWS)
        window = self._get_window(window_id)
        require(identity, OWN_WINDOW, window)
        with transaction(self.db):
            self.db.delete(window)

    def is_within_window(self, clinician_id: int, scheduled_date: date, scheduled_time: time) -> bool:
        """Whether the clinician generally works at that time. Not a booking guard."""
        window = (
            self.db.query(AvailabilityWindow)
            .filter(
                AvailabilityWindow.clinician_id == clinician_id,
                AvailabilityWindow.day_of_week == scheduled_date.weekday(),
            )
            .first()
        )
        if not window or not window.is_available:
            return False
        return window.start_time <= scheduled_time < window.end_time
