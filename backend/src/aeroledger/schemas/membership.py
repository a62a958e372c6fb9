"""Membership schemas."""
import enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aeroledger.schemas.invoice import Invoice


class MembershipStatus(str, enum.Enum):
    """Derived membership status."""

    UNPAID = "unpaid"
    ACTIVE = "active"
    GRACE = "grace"
    EXPIRED = "expired"


class MembershipCreate(BaseModel):
    """Start a membership for a member."""

    user_id: UUID
    membership_type_id: UUID
    start_date: datetime | None = Field(default=None, description="Defaults to now")
    expiry_date: datetime | None = Field(default=None, description="Overrides the membership year policy")
    grace_period_days: int | None = Field(default=None, ge=0)
    auto_renew: bool = False
    notes: str | None = None
    create_invoice: bool = Field(default=True, description="Invoice the membership fee after saving")


class MembershipRenew(BaseModel):
    """Renew an existing membership, optionally switching type."""

    membership_type_id: UUID | None = Field(default=None, description="Defaults to the current type")
    start_date: datetime | None = Field(default=None, description="Defaults to the later of now and the current expiry")
    expiry_date: datetime | None = None
    auto_renew: bool | None = None
    notes: str | None = None
    create_invoice: bool = True


class Membership(BaseModel):
    """Membership with its derived status."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    membership_type_id: UUID
    start_date: datetime
    expiry_date: datetime
    purchased_date: datetime
    grace_period_days: int
    invoice_id: UUID | None = None
    renewal_of: UUID | None = None
    is_active: bool
    auto_renew: bool
    notes: str | None = None
    status: MembershipStatus
    days_until_expiry: int | None = None
    grace_days_remaining: int | None = None
    can_renew: bool
    price: Decimal | None = Field(default=None, description="Tax-inclusive membership type price")


class MembershipResult(BaseModel):
    """Saved membership plus the outcome of its fee invoice."""

    membership: Membership
    invoice: Invoice | None = None
    warning: str | None = Field(default=None, description="Set when the fee invoice could not be created")
