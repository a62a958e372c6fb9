"""Invoice and invoice item schemas."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aeroledger.models.invoice import InvoiceStatus


class InvoiceItemCreate(BaseModel):
    """
    Line item input.

    Monetary fields (amount, tax_amount, line_total, rate_inclusive) are not
    accepted; the ledger derives them from quantity, unit price and tax rate.
    """

    description: str = Field(..., min_length=1, max_length=255, description="Item description")
    quantity: Decimal = Field(..., gt=0, description="Quantity (hours for flight items)")
    unit_price: Decimal = Field(..., ge=0, description="Tax-exclusive unit price")
    tax_rate: Decimal | None = Field(default=None, ge=0, le=1, description="Explicit tax rate (0.15 = 15%)")
    chargeable_id: UUID | None = Field(default=None, description="Catalogue chargeable this item bills")
    notes: str | None = Field(default=None, description="Free-form notes")


class InvoiceItemUpdate(BaseModel):
    """Partial line item update."""

    description: str | None = Field(default=None, min_length=1, max_length=255)
    quantity: Decimal | None = Field(default=None, gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    tax_rate: Decimal | None = Field(default=None, ge=0, le=1)
    chargeable_id: UUID | None = None
    notes: str | None = None


class InvoiceItemResponse(BaseModel):
    """Persisted line item."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_id: UUID
    chargeable_id: UUID | None = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    amount: Decimal
    tax_amount: Decimal
    line_total: Decimal
    rate_inclusive: Decimal
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class InvoiceCreate(BaseModel):
    """Manual invoice creation."""

    user_id: UUID = Field(..., description="Member being invoiced")
    booking_id: UUID | None = Field(default=None, description="Related booking")
    reference: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    issue_date: datetime | None = None
    due_date: datetime | None = None
    tax_rate: Decimal | None = Field(default=None, ge=0, le=1, description="Defaults to the organization rate")
    items: list[InvoiceItemCreate] = Field(default_factory=list)


class InvoiceUpdate(BaseModel):
    """
    Invoice header update.

    Which fields are accepted depends on the invoice status and caller role;
    totals are never writable.
    """

    reference: str | None = Field(default=None, max_length=255)
    issue_date: datetime | None = None
    due_date: datetime | None = None
    user_id: UUID | None = None
    notes: str | None = None
    status: InvoiceStatus | None = None
    tax_rate: Decimal | None = Field(default=None, ge=0, le=1)
    booking_id: UUID | None = None


class Invoice(BaseModel):
    """Invoice with totals."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    booking_id: UUID | None = None
    invoice_number: str
    status: InvoiceStatus
    reference: str | None = None
    notes: str | None = None
    issue_date: datetime | None = None
    due_date: datetime | None = None
    paid_date: datetime | None = None
    tax_rate: Decimal
    subtotal: Decimal
    tax_total: Decimal
    total_amount: Decimal
    total_paid: Decimal
    total_credited: Decimal
    balance_due: Decimal
    created_at: datetime
    updated_at: datetime


class InvoiceDetail(Invoice):
    """Invoice with its items."""

    items: list[InvoiceItemResponse] = Field(default_factory=list)


class InvoiceList(BaseModel):
    """Paginated invoice list."""

    items: list[Invoice]
    total: int
    page: int
    page_size: int


class InvoiceItemMutation(BaseModel):
    """Result of an item create/update/delete: the item plus recomputed invoice."""

    item: InvoiceItemResponse | None = None
    deleted_item_id: UUID | None = None
    invoice: Invoice


class InvoiceDeleteResult(BaseModel):
    """Outcome of a draft soft delete."""

    invoice_id: UUID
    invoice_number: str
    items_deleted: int
    deleted_at: datetime
