"""Ledger transaction model mirroring invoice, payment and credit activity."""
import enum

from sqlalchemy import Column, Enum as SQLEnum, ForeignKey, Numeric, String, Uuid

from aeroledger.models.base import Base


class TransactionType(enum.Enum):
    """Debits raise the member balance, credits lower it."""

    DEBIT = "debit"
    CREDIT = "credit"


class TransactionStatus(enum.Enum):
    """Transaction state."""

    COMPLETED = "completed"
    REVERSED = "reversed"


class Transaction(Base):
    """
    Account ledger entry for a member.

    Invoice debits are kept in step with the invoice total; a cancelled
    invoice's debit is marked reversed and offset by a compensating credit.
    """

    __tablename__ = "transactions"

    user_id = Column(Uuid, ForeignKey("members.id"), nullable=False, index=True)
    type = Column(SQLEnum(TransactionType), nullable=False)
    status = Column(SQLEnum(TransactionStatus), nullable=False, default=TransactionStatus.COMPLETED, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=False)
    reference_number = Column(String(50), nullable=True)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=True, index=True)
    payment_id = Column(Uuid, ForeignKey("payments.id"), nullable=True, index=True)
    credit_note_id = Column(Uuid, ForeignKey("credit_notes.id"), nullable=True, index=True)
    reversal_of_id = Column(Uuid, ForeignKey("transactions.id"), nullable=True)

    @property
    def signed_amount(self):
        """Effect on the member balance."""
        return self.amount if self.type == TransactionType.DEBIT else -self.amount

    def __repr__(self) -> str:
        """String representation."""
        return f"<Transaction(id={self.id}, type={self.type}, amount={self.amount}, status={self.status})>"
