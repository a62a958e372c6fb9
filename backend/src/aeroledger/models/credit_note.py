"""Credit note models."""
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from aeroledger.models.base import Base


class CreditNoteStatus(enum.Enum):
    """Credit note status."""

    DRAFT = "draft"
    APPLIED = "applied"


class CreditNote(Base):
    """Correction document against an approved invoice."""

    __tablename__ = "credit_notes"

    credit_note_number = Column(String(50), nullable=False, unique=True, index=True)  # CN-000001
    original_invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("members.id"), nullable=False, index=True)
    status = Column(SQLEnum(CreditNoteStatus), nullable=False, default=CreditNoteStatus.DRAFT, index=True)
    reason = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_total = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    applied_at = Column(DateTime, nullable=True)
    applied_by = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    items = relationship("CreditNoteItem", back_populates="credit_note", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation."""
        return f"<CreditNote(number={self.credit_note_number}, status={self.status}, total={self.total_amount})>"


class CreditNoteItem(Base):
    """Line item of a credit note, priced like an invoice item."""

    __tablename__ = "credit_note_items"

    credit_note_id = Column(Uuid, ForeignKey("credit_notes.id", ondelete="CASCADE"), nullable=False, index=True)
    original_invoice_item_id = Column(Uuid, ForeignKey("invoice_items.id", ondelete="SET NULL"), nullable=True)
    description = Column(String(255), nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False)
    unit_price = Column(Numeric(12, 4), nullable=False)
    tax_rate = Column(Numeric(6, 4), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    line_total = Column(Numeric(12, 2), nullable=False, default=0)
    rate_inclusive = Column(Numeric(12, 2), nullable=False, default=0)

    credit_note = relationship("CreditNote", back_populates="items")
