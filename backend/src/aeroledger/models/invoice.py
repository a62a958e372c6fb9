"""Invoice and invoice item models."""
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from aeroledger.models.base import Base


class InvoiceStatus(enum.Enum):
    """Invoice lifecycle status. Transition rules live in ``aeroledger.lifecycle``."""

    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Invoice(Base):
    """
    Member invoice.

    Totals are always recomputed from the items; ``balance_due`` is
    ``total_amount - total_paid - total_credited`` and may go negative on
    overpayment. Never hard-deleted: drafts are soft-deleted via ``deleted_at``.
    """

    __tablename__ = "invoices"

    user_id = Column(Uuid, ForeignKey("members.id"), nullable=False, index=True)
    booking_id = Column(Uuid, ForeignKey("bookings.id"), nullable=True, index=True)
    invoice_number = Column(String(50), nullable=False, unique=True, index=True)  # INV-000001
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    reference = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    issue_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True, index=True)
    paid_date = Column(DateTime, nullable=True)
    tax_rate = Column(Numeric(6, 4), nullable=False, default=0)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_total = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_paid = Column(Numeric(12, 2), nullable=False, default=0)
    total_credited = Column(Numeric(12, 2), nullable=False, default=0)
    balance_due = Column(Numeric(12, 2), nullable=False, default=0)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String, nullable=True)

    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status}, total={self.total_amount})>"


class InvoiceItem(Base):
    """
    One billable row on an invoice.

    ``amount``, ``tax_amount``, ``line_total`` and ``rate_inclusive`` are
    written only by the item ledger from quantity, unit price and tax rate.
    """

    __tablename__ = "invoice_items"

    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    chargeable_id = Column(Uuid, ForeignKey("chargeables.id"), nullable=True)
    description = Column(String(255), nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False)
    unit_price = Column(Numeric(12, 4), nullable=False)
    tax_rate = Column(Numeric(6, 4), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    line_total = Column(Numeric(12, 2), nullable=False, default=0)
    rate_inclusive = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    invoice = relationship("Invoice", back_populates="items")

    def __repr__(self) -> str:
        """String representation."""
        return f"<InvoiceItem(description={self.description}, quantity={self.quantity}, line_total={self.line_total})>"
