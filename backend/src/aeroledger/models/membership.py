"""Membership type and membership models."""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text, Uuid

from aeroledger.models.base import Base


class MembershipType(Base):
    """A purchasable membership; ``price`` includes tax."""

    __tablename__ = "membership_types"

    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False, unique=True, index=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    duration_months = Column(Integer, nullable=False, default=12)
    chargeable_id = Column(Uuid, ForeignKey("chargeables.id"), nullable=True)
    benefits = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<MembershipType(code={self.code}, price={self.price})>"


class Membership(Base):
    """
    A member's membership period.

    Status is derived (see ``MembershipService.status_of``); only one
    membership per member is expected to be active at a time.
    """

    __tablename__ = "memberships"

    user_id = Column(Uuid, ForeignKey("members.id"), nullable=False, index=True)
    membership_type_id = Column(Uuid, ForeignKey("membership_types.id"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    expiry_date = Column(DateTime, nullable=False)
    purchased_date = Column(DateTime, nullable=False)
    grace_period_days = Column(Integer, nullable=False, default=30)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=True)
    renewal_of = Column(Uuid, ForeignKey("memberships.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    auto_renew = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Membership(user_id={self.user_id}, expiry={self.expiry_date}, active={self.is_active})>"
