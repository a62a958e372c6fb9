"""Credit note schemas."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aeroledger.models.credit_note import CreditNoteStatus
from aeroledger.schemas.invoice import Invoice


class CreditNoteItemCreate(BaseModel):
    """Credit note line input; money fields are derived server-side."""

    description: str = Field(..., min_length=1, max_length=255)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    tax_rate: Decimal | None = Field(default=None, ge=0, le=1)
    original_invoice_item_id: UUID | None = Field(default=None, description="Invoice item being credited")


class CreditNoteCreate(BaseModel):
    """New credit note against an approved invoice."""

    user_id: UUID = Field(..., description="Must match the invoice's member")
    reason: str = Field(..., min_length=1)
    notes: str | None = None
    items: list[CreditNoteItemCreate] = Field(..., min_length=1)


class CreditNoteUpdate(BaseModel):
    """Draft credit notes may change their reason and notes only."""

    reason: str | None = Field(default=None, min_length=1)
    notes: str | None = None


class CreditNoteItem(BaseModel):
    """Persisted credit note line."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    original_invoice_item_id: UUID | None = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    amount: Decimal
    tax_amount: Decimal
    line_total: Decimal
    rate_inclusive: Decimal


class CreditNote(BaseModel):
    """Credit note with totals."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    credit_note_number: str
    original_invoice_id: UUID
    user_id: UUID
    status: CreditNoteStatus
    reason: str
    notes: str | None = None
    subtotal: Decimal
    tax_total: Decimal
    total_amount: Decimal
    applied_at: datetime | None = None
    created_at: datetime


class CreditNoteDetail(CreditNote):
    """Credit note with its items."""

    items: list[CreditNoteItem] = Field(default_factory=list)


class CreditNoteApplyResult(BaseModel):
    """Applied credit note with the balances it moved."""

    credit_note: CreditNote
    invoice: Invoice
    account_balance: Decimal
