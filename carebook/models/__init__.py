from .user import User
from .appointment import Appointment, AppointmentStatus
from .availability import AvailabilityWindow
from .message import Message

__all__ = ["User", "Appointment", "AppointmentStatus", "AvailabilityWindow", "Message"]
