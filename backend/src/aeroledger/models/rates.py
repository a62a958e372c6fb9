"""Rate tables, chargeables and tax rates consulted by the rate resolver."""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Uuid

from aeroledger.models.base import Base


class AircraftChargeRate(Base):
    """Hourly aircraft rate for one aircraft and flight type."""

    __tablename__ = "aircraft_charge_rates"
    __table_args__ = (UniqueConstraint("aircraft_id", "flight_type_id", name="uq_aircraft_charge_rate"),)

    aircraft_id = Column(Uuid, ForeignKey("aircraft.id", ondelete="CASCADE"), nullable=False, index=True)
    flight_type_id = Column(Uuid, ForeignKey("flight_types.id", ondelete="CASCADE"), nullable=False, index=True)
    rate_per_hour = Column(Numeric(12, 4), nullable=False)
    charge_hobbs = Column(Boolean, nullable=False, default=True)
    charge_tacho = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<AircraftChargeRate(aircraft_id={self.aircraft_id}, flight_type_id={self.flight_type_id}, rate={self.rate_per_hour})>"


class InstructorFlightTypeRate(Base):
    """Hourly instructor rate for one instructor and flight type."""

    __tablename__ = "instructor_flight_type_rates"
    __table_args__ = (UniqueConstraint("instructor_id", "flight_type_id", name="uq_instructor_flight_type_rate"),)

    instructor_id = Column(Uuid, ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False, index=True)
    flight_type_id = Column(Uuid, ForeignKey("flight_types.id", ondelete="CASCADE"), nullable=False, index=True)
    rate = Column(Numeric(12, 4), nullable=False)


class Chargeable(Base):
    """
    A catalogue charge (landing fee, membership fee, merchandise...).

    ``rate`` is tax-exclusive except for membership fees, whose price lives on
    the membership type and is tax-inclusive.
    """

    __tablename__ = "chargeables"

    name = Column(String(200), nullable=False)
    chargeable_type = Column(String(50), nullable=False, index=True)  # landing_fee, membership_fee, other
    rate = Column(Numeric(12, 4), nullable=False, default=0)
    is_taxable = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Chargeable(id={self.id}, name={self.name}, taxable={self.is_taxable})>"


class LandingFeeRate(Base):
    """Landing fee for a chargeable (airfield) and aircraft type."""

    __tablename__ = "landing_fee_rates"
    __table_args__ = (UniqueConstraint("chargeable_id", "aircraft_type_id", name="uq_landing_fee_rate"),)

    chargeable_id = Column(Uuid, ForeignKey("chargeables.id", ondelete="CASCADE"), nullable=False, index=True)
    aircraft_type_id = Column(Uuid, ForeignKey("aircraft_types.id", ondelete="CASCADE"), nullable=False, index=True)
    rate = Column(Numeric(12, 4), nullable=False)


class TaxRate(Base):
    """Organization tax rate; the active default one applies to new invoices."""

    __tablename__ = "tax_rates"

    name = Column(String(100), nullable=False)
    rate = Column(Numeric(6, 4), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    effective_from = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<TaxRate(name={self.name}, rate={self.rate}, default={self.is_default})>"
