from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
import logging

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.exceptions import UnauthenticatedError
from ..core.security import security, Identity, TokenService, get_token_service
from ..models.user import User
from ..services.auth_service import AuthService

logger = logging.getLogger(__name__)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """Extract the bearer token from the Authorization header."""
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("Authentication required")
    return credentials.credentials


def get_current_identity(
    token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    """Resolve the caller's identity from a verified access token."""
    return AuthService(db, tokens).resolve_identity(token)


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    user = db.query(User).filter(User.id == identity.actor_id).first()
    if not user:
        raise UnauthenticatedError("User not found or inactive")
    return user


def rate_limit_check(scope: str = "api", max_requests: int = None):
    """
    Fixed-window request counter per client address, kept in Redis.

    ``scope`` separates budgets so auth endpoints can be throttled harder
    than the rest of the API.
    """
    def checker(
        request: Request,
        redis_client=Depends(get_redis)
    ) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return None

        limit = max_requests or settings.RATE_LIMIT_MAX_REQUESTS
        client_ip = request.client.host if request.client else "unknown"
        key = f"rate_limit:{scope}:{client_ip}"

        current_requests = redis_client.get(key)
        if current_requests is None:
            redis_client.setex(key, settings.RATE_LIMIT_WINDOW_SECONDS, 1)
            return None

        if int(current_requests) >= limit:
            logger.warning(f"Rate limit exceeded for {client_ip} on {scope}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)

    return checker


auth_rate_limit = rate_limit_check("auth", settings.AUTH_RATE_LIMIT_MAX_REQUESTS)
api_rate_limit = rate_limit_check("api")
