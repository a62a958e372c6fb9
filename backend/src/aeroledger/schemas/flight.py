"""Flight charge preview and completion schemas."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aeroledger.schemas.invoice import InvoiceDetail


class MeterReadingsInput(BaseModel):
    """Meter readings captured at check-in."""

    hobbs_start: Decimal = Field(..., ge=0)
    hobbs_end: Decimal = Field(..., ge=0)
    tach_start: Decimal = Field(..., ge=0)
    tach_end: Decimal = Field(..., ge=0)
    solo_end_hobbs: Decimal | None = Field(default=None, ge=0, description="Hobbs at the end of a post-dual solo segment")


class FlightChargeRequest(BaseModel):
    """Input for both preview and completion."""

    meter_readings: MeterReadingsInput
    flight_type_id: UUID
    aircraft_id: UUID | None = Field(default=None, description="Aircraft flown; defaults to the booked aircraft")
    instructor_id: UUID | None = None
    solo_flight_type_id: UUID | None = Field(default=None, description="Flight type whose rate prices the solo segment")


class ChargeLineInput(BaseModel):
    """Item carried over from the preview; money fields are recomputed."""

    description: str = Field(..., min_length=1, max_length=255)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    tax_rate: Decimal | None = Field(default=None, ge=0, le=1)
    chargeable_id: UUID | None = None


class FlightCompleteRequest(FlightChargeRequest):
    """Completion input; ``invoice_items`` is the full desired item set."""

    invoice_items: list[ChargeLineInput] | None = None


class FlightLogPreview(BaseModel):
    """Computed flight log values."""

    model_config = ConfigDict(from_attributes=True)

    hobbs_start: Decimal
    hobbs_end: Decimal
    tach_start: Decimal
    tach_end: Decimal
    solo_end_hobbs: Decimal | None = None
    flight_time_hobbs: Decimal
    flight_time_tach: Decimal
    flight_time: Decimal
    credited_time: Decimal
    dual_time: Decimal
    solo_time: Decimal
    total_hours_start: Decimal
    total_hours_end: Decimal
    billing_meter: str


class ProvisionalItem(BaseModel):
    """Unpersisted line item."""

    kind: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    amount: Decimal
    tax_amount: Decimal
    line_total: Decimal
    rate_inclusive: Decimal


class ChargeTotals(BaseModel):
    """Totals over a set of items."""

    subtotal: Decimal
    tax_total: Decimal
    total_amount: Decimal


class FlightChargePreview(BaseModel):
    """Preview output; nothing is written."""

    booking_id: UUID
    flight_log: FlightLogPreview
    invoice_items: list[ProvisionalItem]
    totals: ChargeTotals


class FlightCompletion(BaseModel):
    """Completion output."""

    booking_id: UUID
    flight_log_id: UUID
    invoice: InvoiceDetail
    totals: ChargeTotals
    warning: str | None = None
    completed_at: datetime
