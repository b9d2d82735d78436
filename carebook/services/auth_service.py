from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import datetime
import logging

from ..core.authorization import OwnerOrRoleIn, RoleIn, require
from ..core.database import transaction
from ..core.exceptions import NotFoundError, UnauthenticatedError, ValidationError
from ..core.security import (
    ACCESS_TOKEN, REFRESH_TOKEN, Identity, Role, TokenFailure, TokenService, get_password_hash
)
from ..models.user import User
from ..repositories.user_repository import UserRepository
from ..schemas.auth import (
    ChangePassword, TokenResponse, UserLogin, UserRegister, UserResponse
)

logger = logging.getLogger(__name__)

MANAGE_USERS = RoleIn({Role.COORDINATOR})
SELF_OR_COORDINATOR = OwnerOrRoleIn(set(), "id")


class AuthService:
    def __init__(self, db: Session, tokens: TokenService):
        self.db = db
        self.tokens = tokens
        self.users = UserRepository(db)

    def _token_response(self, user: User) -> TokenResponse:
        pair = self.tokens.issue(user.id, user.role, email=user.email)
        return TokenResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            token_type=pair.token_type,
            expires_in=pair.expires_in,
            user=UserResponse.model_validate(user),
        )

    def register_user(self, user_data: UserRegister) -> User:
        """Register a new user."""
        if self.users.find_by_email(user_data.email):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        new_user = User(
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            phone=user_data.phone,
            role=user_data.role,
            is_active=True,
            is_verified=False,  # Require email verification
        )
        with transaction(self.db):
            self.users.add(new_user)
        self.db.refresh(new_user)

        logger.info(f"Registered {new_user.role.value} account {new_user.id}")
        return new_user

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Authenticate user and return tokens."""
        user = self.users.find_by_email(login_data.email)

        if not user or not self.users.verify_password(login_data.password, user.password_hash):
            logger.warning("Failed login attempt")
            raise UnauthenticatedError("Invalid email or password")

        if not user.is_active:
            raise UnauthenticatedError("Account is deactivated")

        with transaction(self.db):
            user.last_login = datetime.utcnow()
        self.db.refresh(user)

        return self._token_response(user)

    def resolve_identity(self, token: str) -> Identity:
        """
        Bearer token to identity. Combines signature/expiry verification with
        the active-actor check so deactivation revokes every outstanding token.
        """
        verification = self.tokens.verify(token, expected_type=ACCESS_TOKEN)
        if not verification.ok:
            if verification.failure == TokenFailure.EXPIRED:
                raise UnauthenticatedError("Token has expired")
            raise UnauthenticatedError("Invalid token")

        identity = verification.identity
        user = self.users.find_by_id(identity.actor_id)
        if not self.users.is_active(user):
            raise UnauthenticatedError("User not found or inactive")

        # The stored role is authoritative over the one baked into the token
        if user.role != identity.role:
            identity = identity.model_copy(update={"role": user.role})
        return identity

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Refresh access token using refresh token."""
        verification = self.tokens.verify(refresh_token, expected_type=REFRESH_TOKEN)
        if not verification.ok:
            detail = (
                "Refresh token has expired"
                if verification.failure == TokenFailure.EXPIRED
                else "Invalid refresh token"
            )
            raise UnauthenticatedError(detail)

        user = self.users.find_by_id(verification.identity.actor_id)
        if not self.users.is_active(user):
            raise UnauthenticatedError("User not found or inactive")

        return self._token_response(user)

    def change_password(self, user: User, password_data: ChangePassword) -> None:
        if not self.users.verify_password(password_data.current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")

        with transaction(self.db):
            user.password_hash = get_password_hash(password_data.new_password)
        logger.info(f"Password changed for user {user.id}")

    def get_user(self, identity: Identity, user_id: int) -> User:
        require(identity, SELF_OR_COORDINATOR, {"id": user_id})
        user = self.users.find_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def list_users(self, identity: Identity, page: int, limit: int, role: Role = None, include_inactive: bool = False):
        require(identity, MANAGE_USERS)
        return self.users.find_all(page, limit, role=role, include_inactive=include_inactive)

    def set_user_active(self, identity: Identity, user_id: int, is_active: bool) -> User:
        """Soft (de)activation. Deactivated actors fail every subsequent token resolve."""
        require(identity, MANAGE_USERS)
        user = self.users.find_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        if user.id == identity.actor_id and not is_active:
            raise ValidationError("Coordinators cannot deactivate their own account")

        with transaction(self.db):
            user.is_active = is_active
        self.db.refresh(user)

        logger.info(f"User {user_id} {'activated' if is_active else 'deactivated'} by {identity.actor_id}")
        return user
