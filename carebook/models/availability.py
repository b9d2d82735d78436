from sqlalchemy import Column, Integer, ForeignKey, DateTime, Boolean, Time, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base


class AvailabilityWindow(Base):
    """Advisory weekly schedule; bookings are constrained by slots, not windows."""

    __tablename__ = "availability_windows"
    __table_args__ = (
        UniqueConstraint("clinician_id", "day_of_week", name="uq_availability_clinician_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinician_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # 0 = Monday ... 6 = Sunday, matching date.weekday()
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    clinician = relationship("User", back_populates="availability_windows")

    def __repr__(self):
        return (
            f"<AvailabilityWindow(id={self.id}, clinician_id={self.clinician_id}, "
            f"day={self.day_of_week}, {self.start_time}-{self.end_time})>"
        )
