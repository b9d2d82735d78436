from datetime import datetime
from typing import Dict, List, Tuple
import logging

from sqlalchemy.orm import Session

from ..core.authorization import OwnerOrRoleIn, RoleIn, require
from ..core.database import transaction
from ..core.exceptions import ForbiddenError, NotFoundError, ValidationError
from ..core.security import Identity, Role
from ..models.message import Message
from ..repositories.appointment_repository import AppointmentRepository
from ..repositories.message_repository import MessageRepository
from ..repositories.user_repository import UserRepository
from ..schemas.message import MessageCreate

logger = logging.getLogger(__name__)

ANY_ACTOR = RoleIn(set(Role))
PARTICIPANTS = OwnerOrRoleIn(set(), ("sender_id", "recipient_id"))
SENDER = OwnerOrRoleIn(set(), "sender_id")
APPOINTMENT_PARTICIPANT = OwnerOrRoleIn(set(), ("client_id", "clinician_id"))
CONVERSATION_MEMBER = OwnerOrRoleIn(set(), ("user_a", "user_b"))


class MessageService:
    """
    Direct messaging between actors.

    A message is visible to its sender and recipient, and to coordinators.
    Messages linked to an appointment can only be sent by someone who may
    see that appointment.
    """

    def __init__(self, db: Session):
        self.db = db
        self.messages = MessageRepository(db)
        self.users = UserRepository(db)
        self.appointments = AppointmentRepository(db)

    def _load(self, message_id: int) -> Message:
        message = self.messages.find_by_id(message_id)
        if not message:
            raise NotFoundError("Message not found")
        return message

    def _appointment(self, identity: Identity, appointment_id: int):
        appointment = self.appointments.find_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        require(identity, APPOINTMENT_PARTICIPANT, appointment)
        return appointment

    def send(self, identity: Identity, data: MessageCreate) -> Message:
        require(identity, ANY_ACTOR)
        if data.recipient_id == identity.actor_id:
            raise ValidationError("Cannot send a message to yourself")
        if not self.users.is_active(self.users.find_by_id(data.recipient_id)):
            raise NotFoundError("Recipient not found")
        if data.appointment_id is not None:
            self._appointment(identity, data.appointment_id)

        message = Message(
            sender_id=identity.actor_id,
            recipient_id=data.recipient_id,
            appointment_id=data.appointment_id,
            content=data.content,
        )
        with transaction(self.db):
            self.messages.add(message)
        self.db.refresh(message)

        logger.info(f"Message {message.id} sent from {identity.actor_id} to {data.recipient_id}")
        return message

    def get(self, identity: Identity, message_id: int) -> Message:
        message = self._load(message_id)
        require(identity, PARTICIPANTS, message)
        return message

    def list_mine(self, identity: Identity, page: int = 1, limit: int = 20) -> Tuple[List[Message], int]:
        require(identity, ANY_ACTOR)
        return self.messages.find_for_actor(identity.actor_id, page, limit)

    def search(self, identity: Identity, term: str, page: int = 1, limit: int = 20) -> Tuple[List[Message], int]:
        require(identity, ANY_ACTOR)
        if not term.strip():
            raise ValidationError("Search term is required")
        return self.messages.find_for_actor(identity.actor_id, page, limit, search=term.strip())

    def conversation(
        self, identity: Identity, user_a: int, user_b: int, page: int = 1, limit: int = 50
    ) -> Tuple[List[Message], int]:
        require(identity, CONVERSATION_MEMBER, {"user_a": user_a, "user_b": user_b})
        return self.messages.find_conversation(user_a, user_b, page, limit)

    def unread(self, identity: Identity) -> List[Message]:
        require(identity, ANY_ACTOR)
        return self.messages.find_unread(identity.actor_id)

    def unread_count(self, identity: Identity) -> int:
        require(identity, ANY_ACTOR)
        return self.messages.count_unread(identity.actor_id)

    def statistics(self, identity: Identity) -> Dict[str, int]:
        require(identity, ANY_ACTOR)
        return self.messages.statistics(identity.actor_id)

    def mark_read(self, identity: Identity, message_id: int) -> Message:
        with transaction(self.db):
            message = self._load(message_id)
            if message.recipient_id != identity.actor_id:
                raise ForbiddenError("Only the recipient can mark a message as read")
            if not message.is_read:
                message.is_read = True
                message.read_at = datetime.utcnow()
        self.db.refresh(message)
        return message

    def mark_conversation_read(self, identity: Identity, sender_id: int) -> int:
        require(identity, ANY_ACTOR)
        with transaction(self.db):
            marked = self.messages.mark_conversation_read(sender_id, identity.actor_id, datetime.utcnow())
        self.db.expire_all()
        return marked

    def for_appointment(self, identity: Identity, appointment_id: int) -> List[Message]:
        self._appointment(identity, appointment_id)
        return self.messages.find_by_appointment(appointment_id)

    def delete(self, identity: Identity, message_id: int) -> None:
        with transaction(self.db):
            message = self._load(message_id)
            require(identity, SENDER, message)
            self.messages.delete(message)
        logger.info(f"Message {message_id} deleted by {identity.role.value} {identity.actor_id}")
