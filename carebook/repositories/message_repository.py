from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session

from ..models.message import Message


class MessageRepository:
    """Persistence for messages. Never commits; the caller owns the transaction."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, message: Message) -> Message:
        self.db.add(message)
        self.db.flush()
        return message

    def delete(self, message: Message) -> None:
        self.db.delete(message)
        self.db.flush()

    def find_by_id(self, message_id: int) -> Optional[Message]:
        return self.db.query(Message).filter(Message.id == message_id).first()

    @staticmethod
    def _paginate(query, page: int, limit: int, newest_first: bool = True) -> Tuple[List[Message], int]:
        total = query.order_by(None).count()
        order = (Message.created_at.desc(), Message.id.desc()) if newest_first else (Message.created_at, Message.id)
        items = query.order_by(*order).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def find_for_actor(
        self, actor_id: int, page: int = 1, limit: int = 20, search: Optional[str] = None
    ) -> Tuple[List[Message], int]:
        query = self.db.query(Message).filter(
            or_(Message.sender_id == actor_id, Message.recipient_id == actor_id)
        )
        if search:
            query = query.filter(Message.content.ilike(f"%{search}%"))
        return self._paginate(query, page, limit)

    def find_conversation(
        self, user_a: int, user_b: int, page: int = 1, limit: int = 50
    ) -> Tuple[List[Message], int]:
        query = self.db.query(Message).filter(
            or_(
                and_(Message.sender_id == user_a, Message.recipient_id == user_b),
                and_(Message.sender_id == user_b, Message.recipient_id == user_a),
            )
        )
        return self._paginate(query, page, limit, newest_first=False)

    def find_unread(self, recipient_id: int) -> List[Message]:
        return (
            self.db.query(Message)
            .filter(Message.recipient_id == recipient_id, Message.is_read.is_(False))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .all()
        )

    def count_unread(self, recipient_id: int) -> int:
        return (
            self.db.query(Message)
            .filter(Message.recipient_id == recipient_id, Message.is_read.is_(False))
            .count()
        )

    def find_by_appointment(self, appointment_id: int) -> List[Message]:
        return (
            self.db.query(Message)
            .filter(Message.appointment_id == appointment_id)
            .order_by(Message.created_at, Message.id)
            .all()
        )

    def mark_conversation_read(self, sender_id: int, recipient_id: int, read_at: datetime) -> int:
        """Mark every unread message from ``sender_id`` to ``recipient_id``; returns the count."""
        return (
            self.db.query(Message)
            .filter(
                Message.sender_id == sender_id,
                Message.recipient_id == recipient_id,
                Message.is_read.is_(False),
            )
            .update({Message.is_read: True, Message.read_at: read_at}, synchronize_session=False)
        )

    def statistics(self, actor_id: int) -> Dict[str, int]:
        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        sent, received, unread = self.db.query(
            count_where(Message.sender_id == actor_id),
            count_where(Message.recipient_id == actor_id),
            count_where(and_(Message.recipient_id == actor_id, Message.is_read.is_(False))),
        ).one()
        return {
            "sent_messages": int(sent or 0),
            "received_messages": int(received or 0),
            "unread_messages": int(unread or 0),
        }
