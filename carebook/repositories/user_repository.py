from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.security import Role, verify_password
from ..models.user import User


class UserRepository:
    """Read-mostly access to actor records (the credential store)."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[Role] = None,
        include_inactive: bool = False,
    ) -> Tuple[List[User], int]:
        query = self.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if not include_inactive:
            query = query.filter(User.is_active.is_(True))
        total = query.count()
        users = query.order_by(User.id).offset((page - 1) * limit).limit(limit).all()
        return users, total

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    @staticmethod
    def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
        if not password_hash:
            return False
        return verify_password(plain_password, password_hash)

    @staticmethod
    def is_active(user: Optional[User]) -> bool:
        return bool(user is not None and user.is_active)
