from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...api.deps import api_rate_limit, get_current_identity
from ...core.database import get_db
from ...core.security import Identity
from ...schemas.appointment import (
    AvailabilityWindowCreate, AvailabilityWindowUpdate, AvailabilityWindowResponse
)
from ...services.availability_service import AvailabilityService

router = APIRouter(
    prefix="/availability",
    tags=["Availability"],
    dependencies=[Depends(api_rate_limit)],
)


@router.post("/", response_model=AvailabilityWindowResponse, status_code=status.HTTP_201_CREATED)
def create_window(
    data: AvailabilityWindowCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Declare a clinician's working hours for one day of the week."""
    window = AvailabilityService(db).create_window(identity, data)
    return AvailabilityWindowResponse.model_validate(window)


@router.get("/clinician/{clinician_id}", response_model=List[AvailabilityWindowResponse])
def list_windows(
    clinician_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    windows = AvailabilityService(db).list_for_clinician(clinician_id)
    return [AvailabilityWindowResponse.model_validate(w) for w in windows]


@router.put("/{window_id}", response_model=AvailabilityWindowResponse)
def update_window(
    window_id: int,
    data: AvailabilityWindowUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    window = AvailabilityService(db).update_window(identity, window_id, data)
    return AvailabilityWindowResponse.model_validate(window)


@router.delete("/{window_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_window(
    window_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    AvailabilityService(db).delete_window(identity, window_id)
