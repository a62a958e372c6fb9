"""Aircraft, flight type and instructor reference models."""
import enum

from sqlalchemy import Boolean, Column, Enum as SQLEnum, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from aeroledger.models.base import Base


class InstructionType(enum.Enum):
    """How a flight type is flown for billing purposes."""

    DUAL = "dual"
    SOLO = "solo"
    TRIAL = "trial"


class AircraftType(Base):
    """Aircraft make/model; landing fees are keyed on it."""

    __tablename__ = "aircraft_types"

    name = Column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<AircraftType(id={self.id}, name={self.name})>"


class Aircraft(Base):
    """
    A billable aircraft.

    ``total_time_method`` converts meter deltas into logged airframe hours,
    e.g. ``hobbs``, ``tacho``, ``airswitch`` or ``hobbs less 10%``.
    """

    __tablename__ = "aircraft"

    registration = Column(String(20), nullable=False, unique=True, index=True)
    aircraft_type_id = Column(Uuid, ForeignKey("aircraft_types.id"), nullable=True, index=True)
    total_time_method = Column(String(30), nullable=True)
    total_hours = Column(Numeric(10, 2), nullable=False, default=0)
    current_hobbs = Column(Numeric(10, 2), nullable=False, default=0)
    current_tach = Column(Numeric(10, 2), nullable=False, default=0)

    aircraft_type = relationship("AircraftType")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Aircraft(id={self.id}, registration={self.registration})>"


class FlightType(Base):
    """Flight classification (e.g. Dual Circuits, Solo Navigation, Trial Flight)."""

    __tablename__ = "flight_types"

    name = Column(String(100), nullable=False)
    instruction_type = Column(SQLEnum(InstructionType), nullable=False, default=InstructionType.DUAL)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<FlightType(id={self.id}, name={self.name}, instruction_type={self.instruction_type})>"


class Instructor(Base):
    """Flight instructor, optionally linked to a member login."""

    __tablename__ = "instructors"

    user_id = Column(Uuid, ForeignKey("members.id"), nullable=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        """String representation."""
        return f"<Instructor(id={self.id}, name={self.full_name})>"
