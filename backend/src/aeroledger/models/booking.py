"""Booking and flight log models."""
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship

from aeroledger.models.base import Base


class BookingStatus(enum.Enum):
    """Booking progress as far as billing cares."""

    CONFIRMED = "confirmed"
    FLYING = "flying"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class Booking(Base):
    """A scheduled flight for a member."""

    __tablename__ = "bookings"

    user_id = Column(Uuid, ForeignKey("members.id"), nullable=False, index=True)
    aircraft_id = Column(Uuid, ForeignKey("aircraft.id"), nullable=False, index=True)
    flight_type_id = Column(Uuid, ForeignKey("flight_types.id"), nullable=True)
    instructor_id = Column(Uuid, ForeignKey("instructors.id"), nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    status = Column(SQLEnum(BookingStatus), nullable=False, default=BookingStatus.CONFIRMED, index=True)

    flight_log = relationship("FlightLog", back_populates="booking", uselist=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Booking(id={self.id}, user_id={self.user_id}, status={self.status})>"


class FlightLog(Base):
    """Meter readings and derived times recorded when a flight completes."""

    __tablename__ = "flight_logs"

    booking_id = Column(Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    checked_out_aircraft_id = Column(Uuid, ForeignKey("aircraft.id"), nullable=True)
    checked_out_instructor_id = Column(Uuid, ForeignKey("instructors.id"), nullable=True)
    flight_type_id = Column(Uuid, ForeignKey("flight_types.id"), nullable=True)
    hobbs_start = Column(Numeric(10, 2), nullable=True)
    hobbs_end = Column(Numeric(10, 2), nullable=True)
    tach_start = Column(Numeric(10, 2), nullable=True)
    tach_end = Column(Numeric(10, 2), nullable=True)
    solo_end_hobbs = Column(Numeric(10, 2), nullable=True)
    flight_time_hobbs = Column(Numeric(10, 2), nullable=True)
    flight_time_tach = Column(Numeric(10, 2), nullable=True)
    flight_time = Column(Numeric(10, 2), nullable=True)
    dual_time = Column(Numeric(10, 2), nullable=True)
    solo_time = Column(Numeric(10, 2), nullable=True)
    total_hours_start = Column(Numeric(10, 2), nullable=True)
    total_hours_end = Column(Numeric(10, 2), nullable=True)
    actual_end = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="flight_log")

    def __repr__(self) -> str:
        """String representation."""
        return f"<FlightLog(booking_id={self.booking_id}, hobbs={self.hobbs_start}-{self.hobbs_end})>"
