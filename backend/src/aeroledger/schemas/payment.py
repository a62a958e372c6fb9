"""Payment, account credit and reversal schemas."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aeroledger.models.payment import PaymentMethod
from aeroledger.schemas.invoice import Invoice


class PaymentCreate(BaseModel):
    """Payment against an invoice."""

    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Amount received")
    payment_method: PaymentMethod
    payment_reference: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class CreditPaymentCreate(PaymentCreate):
    """Standalone payment credited to a member's account."""

    user_id: UUID


class PaymentReversalRequest(BaseModel):
    """Reverse a payment, optionally recording the correct amount in the same operation."""

    reason: str = Field(..., min_length=1, description="Why the payment is being reversed")
    correct_amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    notes: str | None = None


class Payment(BaseModel):
    """Payment record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_number: str
    invoice_id: UUID | None = None
    user_id: UUID
    amount: Decimal
    payment_method: PaymentMethod
    payment_reference: str | None = None
    notes: str | None = None
    reversal_of_id: UUID | None = None
    corrects_payment_id: UUID | None = None
    reason: str | None = None
    paid_at: datetime
    created_at: datetime


class PaymentResult(BaseModel):
    """Created payment with the recomputed balances."""

    payment: Payment
    invoice: Invoice | None = None
    account_balance: Decimal


class PaymentReversalResult(BaseModel):
    """Reversal, optional correction and the net effect."""

    reversal: Payment
    correction: Payment | None = None
    net_adjustment: Decimal
    invoice: Invoice | None = None
    account_balance: Decimal
