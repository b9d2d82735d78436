from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Identity, TokenService, get_token_service
from ...api.deps import (
    auth_rate_limit, get_current_identity, get_current_user
)
from ...services.auth_service import AuthService
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse,
    RefreshTokenRequest, ChangePassword, TokenInfo
)
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse, status_code=201)
def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    _: None = Depends(auth_rate_limit)
):
    """Register a new user."""
    auth_service = AuthService(db, tokens)
    user = auth_service.register_user(user_data)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse)
def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    _: None = Depends(auth_rate_limit)
):
    """Authenticate user and return access tokens."""
    auth_service = AuthService(db, tokens)
    return auth_service.authenticate_user(login_data)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """Exchange a refresh token for a new token pair."""
    auth_service = AuthService(db, tokens)
    return auth_service.refresh_access_token(refresh_data.refresh_token)


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return UserResponse.model_validate(current_user)


@router.post("/change-password")
def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """Change user password."""
    AuthService(db, tokens).change_password(current_user, password_data)
    return {"message": "Password changed successfully"}


@router.post("/verify-token", response_model=TokenInfo)
def verify_token_endpoint(
    identity: Identity = Depends(get_current_identity),
):
    """Verify if token is valid."""
    return TokenInfo(
        valid=True,
        user_id=identity.actor_id,
        role=identity.role,
        expires=identity.expires_at,
    )
