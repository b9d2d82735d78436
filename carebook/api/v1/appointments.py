from datetime import date, time
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...api.deps import api_rate_limit, get_current_identity
from ...core.config import settings
from ...core.database import get_db
from ...core.exceptions import ValidationError
from ...core.security import Identity
from ...repositories.appointment_repository import AppointmentFilters
from ...schemas.appointment import (
    AppointmentCreate, AppointmentUpdate, AppointmentResponse, AssignClinician,
    CancelAppointment, CompleteAppointment, PaginatedAppointments,
    StatusTypeResponse, AppointmentStatistics, AvailabilityCheckResponse
)
from ...services import appointment_state as lifecycle
from ...services.appointment_service import AppointmentService, paginate

router = APIRouter(
    prefix="/appointments",
    tags=["Appointments"],
    dependencies=[Depends(api_rate_limit)],
)


def _page(items, total: int, page: int, limit: int) -> dict:
    return paginate(
        [AppointmentResponse.model_validate(a) for a in items], total, page, limit
    )


@router.post("/", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: AppointmentCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Book an appointment. Starts as pending, or assigned when a clinician is given."""
    appointment = AppointmentService(db).create(identity, data)
    return AppointmentResponse.model_validate(appointment)


@router.get("/", response_model=PaginatedAppointments)
def list_appointments(
    status_name: Optional[str] = Query(None, alias="status"),
    status_id: Optional[int] = Query(None, ge=1),
    clinician_id: Optional[int] = Query(None, ge=1),
    client_id: Optional[int] = Query(None, ge=1),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """List appointments. Clients and clinicians only ever see their own."""
    try:
        status_filter = lifecycle.resolve_status(status_name, status_id)
    except ValueError as e:
        raise ValidationError(str(e))

    filters = AppointmentFilters(
        status=status_filter,
        clinician_id=clinician_id,
        client_id=client_id,
        date_from=date_from,
        date_to=date_to,
    )
    items, total = AppointmentService(db).list_appointments(identity, filters, page, limit)
    return _page(items, total, page, limit)


@router.get("/my-appointments", response_model=PaginatedAppointments)
def my_appointments(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    items, total = AppointmentService(db).list_mine(identity, page, limit)
    return _page(items, total, page, limit)


@router.get("/status-types", response_model=List[StatusTypeResponse])
def status_types(identity: Identity = Depends(get_current_identity)):
    return AppointmentService.status_types()


@router.get("/statistics", response_model=AppointmentStatistics)
def appointment_statistics(
    clinician_id: Optional[int] = Query(None, ge=1),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Counts per status. Clinicians see their own numbers only."""
    return AppointmentService(db).statistics(identity, clinician_id, date_from, date_to)


@router.get("/check-availability", response_model=AvailabilityCheckResponse)
def check_availability(
    clinician_id: int = Query(..., ge=1),
    scheduled_date: date = Query(...),
    scheduled_time: time = Query(...),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return AppointmentService(db).check_availability(
        identity, clinician_id, scheduled_date, scheduled_time
    )


@router.get("/client/{client_id}", response_model=PaginatedAppointments)
def client_appointments(
    client_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    items, total = AppointmentService(db).list_for_client(identity, client_id, page, limit)
    return _page(items, total, page, limit)


@router.get("/clinician/{clinician_id}", response_model=PaginatedAppointments)
def clinician_appointments(
    clinician_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    items, total = AppointmentService(db).list_for_clinician(identity, clinician_id, page, limit)
    return _page(items, total, page, limit)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    appointment = AppointmentService(db).get(identity, appointment_id)
    return AppointmentResponse.model_validate(appointment)


@router.put("/{appointment_id}", response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Partial update. ``status``/``status_id`` changes are applied as lifecycle
    transitions, so they obey the same rules as the dedicated endpoints.
    """
    appointment = AppointmentService(db).update(identity, appointment_id, data)
    return AppointmentResponse.model_validate(appointment)


@router.put("/{appointment_id}/assign-clinician", response_model=AppointmentResponse)
def assign_clinician(
    appointment_id: int,
    data: AssignClinician,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    appointment = AppointmentService(db).assign(identity, appointment_id, data.clinician_id)
    return AppointmentResponse.model_validate(appointment)


@router.put("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: Optional[CancelAppointment] = None,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    reason = data.reason if data else None
    appointment = AppointmentService(db).cancel(identity, appointment_id, reason)
    return AppointmentResponse.model_validate(appointment)


@router.put("/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    data: Optional[CompleteAppointment] = None,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    notes = data.notes if data else None
    appointment = AppointmentService(db).complete(identity, appointment_id, notes)
    return AppointmentResponse.model_validate(appointment)
