from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...api.deps import api_rate_limit, get_current_identity
from ...core.config import settings
from ...core.database import get_db
from ...core.security import Identity, Role, TokenService, get_token_service
from ...schemas.auth import PaginatedUsers, UserResponse, UserStatusUpdate
from ...services.appointment_service import paginate
from ...services.auth_service import AuthService

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(api_rate_limit)],
)


@router.get("/", response_model=PaginatedUsers)
def list_users(
    role: Optional[Role] = None,
    include_inactive: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """List users (coordinator only)."""
    users, total = AuthService(db, tokens).list_users(identity, page, limit, role, include_inactive)
    return paginate([UserResponse.model_validate(u) for u in users], total, page, limit)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    user = AuthService(db, tokens).get_user(identity, user_id)
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/status", response_model=UserResponse)
def update_user_status(
    user_id: int,
    data: UserStatusUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """Activate or deactivate a user (coordinator only)."""
    user = AuthService(db, tokens).set_user_active(identity, user_id, data.is_active)
    return UserResponse.model_validate(user)
