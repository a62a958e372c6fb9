"""Account statement schemas."""
import enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class StatementEntryType(str, enum.Enum):
    """Kinds of statement entries."""

    INVOICE = "invoice"
    PAYMENT = "payment"
    CREDIT_NOTE = "credit_note"
    OPENING_BALANCE = "opening_balance"


class StatementEntry(BaseModel):
    """One statement row; ``balance`` is the running balance after it."""

    date: datetime
    entry_type: StatementEntryType
    entry_id: UUID | None = None
    reference: str
    description: str
    amount: Decimal = Field(..., description="Positive raises the balance, negative lowers it")
    balance: Decimal


class AccountStatement(BaseModel):
    """Chronological statement reconciled to the member's stored balance."""

    user_id: UUID
    member_name: str
    generated_at: datetime
    opening_balance: Decimal
    closing_balance: Decimal
    entries: list[StatementEntry]
