"""Flight charge endpoints for bookings."""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.api.deps import get_current_user, get_db
from aeroledger.api.v1.invoices import invoice_detail
from aeroledger.database import run_in_transaction
from aeroledger.schemas.flight import (
    ChargeTotals,
    FlightChargePreview,
    FlightChargeRequest,
    FlightCompleteRequest,
    FlightCompletion,
    FlightLogPreview,
    ProvisionalItem,
)
from aeroledger.services.flight_service import FlightService, PreparedCharge

router = APIRouter(prefix="/bookings", tags=["Flight Charges"])


def _preview(prepared: PreparedCharge) -> FlightChargePreview:
    times = prepared.charge.times
    readings = prepared.readings
    totals = prepared.charge.totals
    return FlightChargePreview(
        booking_id=prepared.booking.id,
        flight_log=FlightLogPreview(
            hobbs_start=readings.hobbs_start,
            hobbs_end=readings.hobbs_end,
            tach_start=readings.tach_start,
            tach_end=readings.tach_end,
            solo_end_hobbs=readings.solo_end_hobbs,
            flight_time_hobbs=times.hobbs_time,
            flight_time_tach=times.tach_time,
            flight_time=times.flight_time,
            credited_time=times.credited_time,
            dual_time=times.dual_time,
            solo_time=times.solo_time,
            total_hours_start=times.total_hours_start,
            total_hours_end=times.total_hours_end,
            billing_meter=prepared.rates.aircraft.meter.value,
        ),
        invoice_items=[
            ProvisionalItem(
                kind=item.kind.value,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_rate=item.tax_rate,
                **item.amounts.as_dict(),
            )
            for item in prepared.charge.items
        ],
        totals=ChargeTotals(
            subtotal=totals.subtotal,
            tax_total=totals.tax_total,
            total_amount=totals.total_amount,
        ),
    )


@router.post("/{booking_id}/charges/preview", response_model=FlightChargePreview)
async def preview_flight_charges(
    booking_id: UUID,
    request: FlightChargeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> FlightChargePreview:
    """
    Calculate flight times and provisional invoice items from meter readings.

    Nothing is written. Returns 404 with code ``rate_not_configured`` when the
    aircraft has no rate for the flight type, and 400 for out-of-order meter
    readings or a dual flight without an instructor.
    """
    prepared = await FlightService(db).preview(booking_id, request, current_user)
    return _preview(prepared)


@router.post("/{booking_id}/charges/complete", response_model=FlightCompletion)
async def complete_flight(
    booking_id: UUID,
    request: FlightCompleteRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> FlightCompletion:
    """
    Complete a flight and invoice it.

    Writes the flight log, synchronises the booking invoice's items (keyed by
    description, so retries never duplicate), approves a draft invoice and
    advances the aircraft meters. On an already approved invoice only the
    items change and ``warning`` explains that.
    """
    service = FlightService(db)
    completed = await run_in_transaction(
        db, lambda: service.complete(booking_id, request, current_user), "complete_flight"
    )

    detail = await invoice_detail(db, completed.invoice)
    return FlightCompletion(
        booking_id=completed.booking.id,
        flight_log_id=completed.flight_log.id,
        invoice=detail,
        totals=ChargeTotals(
            subtotal=detail.subtotal,
            tax_total=detail.tax_total,
            total_amount=detail.total_amount,
        ),
        warning=completed.warning,
        completed_at=completed.flight_log.actual_end or datetime.utcnow(),
    )
