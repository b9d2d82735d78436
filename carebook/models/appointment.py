from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Date, Time, Text, Index,
    Enum as SQLEnum, text
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def status_id(self) -> int:
        return STATUS_IDS[self]

    @property
    def label(self) -> str:
        return self.name

    @property
    def description(self) -> str:
        return STATUS_DESCRIPTIONS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_name(cls, name: str) -> "AppointmentStatus":
        """Map a symbolic status name (any case) to its member."""
        try:
            return cls[name.strip().upper()]
        except (KeyError, AttributeError):
            raise ValueError(f"Unknown appointment status: {name!r}")

    @classmethod
    def from_id(cls, status_id: int) -> "AppointmentStatus":
        for status, known_id in STATUS_IDS.items():
            if known_id == status_id:
                return status
        raise ValueError(f"Unknown appointment status id: {status_id!r}")


STATUS_IDS = {
    AppointmentStatus.PENDING: 1,
    AppointmentStatus.ASSIGNED: 2,
    AppointmentStatus.COMPLETED: 3,
    AppointmentStatus.CANCELLED: 4,
}

STATUS_DESCRIPTIONS = {
    AppointmentStatus.PENDING: "Awaiting clinician assignment",
    AppointmentStatus.ASSIGNED: "Assigned to a clinician",
    AppointmentStatus.COMPLETED: "Appointment completed",
    AppointmentStatus.CANCELLED: "Appointment cancelled",
}

TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})

# Slot-holding rows: everything except cancelled
ACTIVE_SLOT_PREDICATE = "status <> 'cancelled'"


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one non-cancelled appointment per clinician slot
        Index(
            "uq_appointments_active_slot",
            "clinician_id", "scheduled_date", "scheduled_time",
            unique=True,
            postgresql_where=text(ACTIVE_SLOT_PREDICATE),
            sqlite_where=text(ACTIVE_SLOT_PREDICATE),
        ),
        Index("idx_appointments_slot", "scheduled_date", "scheduled_time"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    clinician_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # Appointment details
    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(Time, nullable=False)
    status = Column(
        SQLEnum(
            AppointmentStatus,
            name="appointment_status",
            values_callable=lambda enum: [m.value for m in enum],
        ),
        nullable=False,
        default=AppointmentStatus.PENDING,
        index=True,
    )
    reason_for_visit = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    client = relationship("User", foreign_keys=[client_id])
    clinician = relationship("User", foreign_keys=[clinician_id])

    @property
    def status_id(self) -> int:
        return AppointmentStatus(self.status).status_id

    @property
    def status_name(self) -> str:
        return AppointmentStatus(self.status).label

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, client_id={self.client_id}, "
            f"clinician_id={self.clinician_id}, slot='{self.scheduled_date} {self.scheduled_time}', "
            f"status='{self.status}')>"
        )
