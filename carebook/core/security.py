from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi.security import HTTPBearer
from pydantic import BaseModel
from enum import Enum
import logging

from .config import settings

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token extraction; missing headers are reported by our own 401
security = HTTPBearer(auto_error=False)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


class Role(str, Enum):
    COORDINATOR = "coordinator"
    CLINICIAN = "clinician"
    CLIENT = "client"


class TokenFailure(str, Enum):
    INVALID = "invalid"
    EXPIRED = "expired"


class Identity(BaseModel):
    """Resolved caller identity, passed explicitly into every core operation."""
    actor_id: int
    role: Role
    token_type: str = ACCESS_TOKEN
    expires_at: Optional[datetime] = None


class TokenVerification(BaseModel):
    """Tagged result of ``TokenService.verify``: exactly one field is set."""
    identity: Optional[Identity] = None
    failure: Optional[TokenFailure] = None

    @property
    def ok(self) -> bool:
        return self.identity is not None


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


# Password utilities
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash."""
    return pwd_context.hash(password)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """
    Issues and verifies signed session tokens.

    Both token flavors share the signing secret and payload shape
    ``{sub, email, role, iat, exp, token_type}``; only the TTL and the
    ``token_type`` claim differ. The service is stateless: ``now`` is the
    only input besides the secret, so tests can move the clock.
    """

    def __init__(
        self,
        secret_key: str = None,
        algorithm: str = None,
        access_ttl: timedelta = None,
        refresh_ttl: timedelta = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.secret_key = secret_key or settings.SECRET_KEY
        self.algorithm = algorithm or settings.ALGORITHM
        self.access_ttl = access_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.now = now

    def _encode(self, actor_id: int, role: Role, token_type: str, ttl: timedelta, email: str = None) -> str:
        issued_at = self.now()
        claims = {
            "sub": str(actor_id),
            "role": Role(role).value,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + ttl).timestamp()),
            "token_type": token_type,
        }
        if email:
            claims["email"] = email
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def issue(self, actor_id: int, role: Role, email: str = None) -> Token:
        """Create both access and refresh tokens."""
        return Token(
            access_token=self._encode(actor_id, role, ACCESS_TOKEN, self.access_ttl, email),
            refresh_token=self._encode(actor_id, role, REFRESH_TOKEN, self.refresh_ttl, email),
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def verify(self, token: str, expected_type: Optional[str] = None) -> TokenVerification:
        """Check signature, claims and expiry. Never raises for a bad token."""
        try:
            # Expiry is checked against self.now so the clock stays injectable
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return TokenVerification(failure=TokenFailure.INVALID)

        try:
            actor_id = int(payload["sub"])
            role = Role(payload["role"])
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
            token_type = payload.get("token_type", ACCESS_TOKEN)
        except (KeyError, TypeError, ValueError):
            return TokenVerification(failure=TokenFailure.INVALID)

        if expected_type and token_type != expected_type:
            return TokenVerification(failure=TokenFailure.INVALID)

        if self.now() >= expires_at:
            return TokenVerification(failure=TokenFailure.EXPIRED)

        return TokenVerification(
            identity=Identity(
                actor_id=actor_id,
                role=role,
                token_type=token_type,
                expires_at=expires_at,
            )
        )


token_service = TokenService()


def get_token_service() -> TokenService:
    """FastAPI dependency returning the process-wide token service."""
    return token_service
