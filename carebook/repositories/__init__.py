from .appointment_repository import AppointmentFilters, AppointmentRepository
from .message_repository import MessageRepository
from .user_repository import UserRepository

__all__ = ["AppointmentFilters", "AppointmentRepository", "MessageRepository", "UserRepository"]
