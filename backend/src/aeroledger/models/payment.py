"""Payment model for invoice payments, account credits and reversals."""
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Numeric, String, Text, Uuid

from aeroledger.models.base import Base


class PaymentMethod(enum.Enum):
    """How the money was received."""

    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    ONLINE_PAYMENT = "online_payment"
    OTHER = "other"


class Payment(Base):
    """
    Immutable payment record.

    ``invoice_id`` is null for standalone account credits. A reversal is a
    separate row with a negated amount and ``reversal_of_id`` pointing at the
    original; the original row is never changed.
    """

    __tablename__ = "payments"

    payment_number = Column(String(50), nullable=False, unique=True, index=True)  # PAY-000001
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=True, index=True)
    user_id = Column(Uuid, ForeignKey("members.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(SQLEnum(PaymentMethod), nullable=False)
    payment_reference = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    reversal_of_id = Column(Uuid, ForeignKey("payments.id"), nullable=True, unique=True)
    corrects_payment_id = Column(Uuid, ForeignKey("payments.id"), nullable=True)
    reason = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)
    paid_at = Column(DateTime, nullable=False)

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def __repr__(self) -> str:
        """String representation."""
        return f"<Payment(number={self.payment_number}, amount={self.amount}, invoice_id={self.invoice_id})>"
