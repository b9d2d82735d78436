from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.appointment import AppointmentStatus


class AppointmentCreate(BaseModel):
    client_id: Optional[int] = Field(None, gt=0)
    clinician_id: Optional[int] = Field(None, gt=0)
    scheduled_date: date
    scheduled_time: time
    reason_for_visit: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=2000)


class AppointmentUpdate(BaseModel):
    """
    Generic partial update. ``status`` (symbolic name) and ``status_id``
    are accepted for compatibility and are applied as state transitions.
    """
    clinician_id: Optional[int] = Field(None, gt=0)
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    status: Optional[str] = None
    status_id: Optional[int] = Field(None, gt=0)
    reason_for_visit: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=2000)
    cancellation_reason: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def reject_nulls(self):
        for field in ("clinician_id", "scheduled_date", "scheduled_time"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class AssignClinician(BaseModel):
    clinician_id: int = Field(..., gt=0)


class CancelAppointment(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class CompleteAppointment(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class AppointmentResponse(BaseModel):
    id: int
    client_id: int
    clinician_id: Optional[int] = None
    scheduled_date: date
    scheduled_time: time
    status: AppointmentStatus
    status_id: int
    status_name: str
    reason_for_visit: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaginatedAppointments(BaseModel):
    data: List[AppointmentResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class StatusTypeResponse(BaseModel):
    id: int
    name: str
    description: str


class AppointmentStatistics(BaseModel):
    total_appointments: int
    pending_appointments: int
    assigned_appointments: int
    completed_appointments: int
    cancelled_appointments: int


class AvailabilityCheckResponse(BaseModel):
    is_available: bool
    within_schedule: bool
    clinician_id: int
    scheduled_date: date
    scheduled_time: time


class AvailabilityWindowCreate(BaseModel):
    clinician_id: Optional[int] = Field(None, gt=0)
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    is_available: bool = True


class AvailabilityWindowUpdate(BaseModel):
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_available: Optional[bool] = None


class AvailabilityWindowResponse(BaseModel):
    id: int
    clinician_id: int
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool

    class Config:
        from_attributes = True
