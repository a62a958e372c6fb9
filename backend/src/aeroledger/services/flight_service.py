"""Flight charge preview and completion."""
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.auth.rbac import ensure_owner_or_privileged
from aeroledger.exceptions import NotFoundError, RateNotConfiguredError
from aeroledger.metrics import flights_completed_total
from aeroledger.models.aircraft import Aircraft, FlightType, Instructor
from aeroledger.models.booking import Booking, BookingStatus, FlightLog
from aeroledger.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from aeroledger.schemas.flight import FlightChargeRequest, FlightCompleteRequest
from aeroledger.schemas.invoice import InvoiceCreate
from aeroledger.services.flight_charge_calculator import (
    FlightCharge,
    FlightContext,
    MeterReadings,
    calculate_flight_charge,
)
from aeroledger.services.invoice_item_service import InvoiceItemService, ItemLine, ensure_items_mutable
from aeroledger.services.invoice_service import InvoiceService
from aeroledger.services.rate_service import FlightRates, RateNotConfigured, RateService, TaxRateResolution
from aeroledger.utils.money import to_decimal

logger = structlog.get_logger(__name__)


@dataclass
class PreparedCharge:
    """Everything loaded and calculated for one flight, before any write."""

    booking: Booking
    aircraft: Aircraft
    flight_type: FlightType
    instructor: Instructor | None
    readings: MeterReadings
    rates: FlightRates
    tax: TaxRateResolution
    charge: FlightCharge
    invoice: Invoice | None
    flight_log: FlightLog | None


@dataclass
class CompletedFlight:
    """Persisted result of completing a flight."""

    booking: Booking
    flight_log: FlightLog
    invoice: Invoice
    items: list[InvoiceItem]
    warning: str | None = None


class FlightService:
    """Turns a booking's meter readings into invoice items."""

    def __init__(self, db: AsyncSession):
        """Initialize flight service with database session."""
        self.db = db
        self.rates = RateService(db)
        self.invoices = InvoiceService(db)
        self.items = InvoiceItemService(db)

    async def _get(self, model, entity_id: UUID, name: str, lock: bool = False):
        query = select(model).where(model.id == entity_id)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        entity = result.scalar_one_or_none()
        if entity is None:
            raise NotFoundError(name, entity_id)
        return entity

    async def _flight_log(self, booking_id: UUID) -> FlightLog | None:
        result = await self.db.execute(select(FlightLog).where(FlightLog.booking_id == booking_id))
        return result.scalar_one_or_none()

    async def prepare(
        self,
        booking_id: UUID,
        request: FlightChargeRequest,
        current_user: dict,
        lock: bool = False,
    ) -> PreparedCharge:
        """
        Load the billing context and calculate the charge without writing.

        Raises:
            NotFoundError: Missing booking, aircraft, flight type or instructor
            RateNotConfiguredError: No aircraft rate for the aircraft and flight type
            AuthorizationError: Caller is neither privileged nor the booking's member
            ValidationError: Out-of-order meter readings or missing instructor
        """
        booking = await self._get(Booking, booking_id, "Booking", lock=lock)
        ensure_owner_or_privileged(current_user, booking.user_id)

        aircraft = await self._get(Aircraft, request.aircraft_id or booking.aircraft_id, "Aircraft", lock=lock)
        flight_type = await self._get(FlightType, request.flight_type_id, "Flight type")
        instructor_id = request.instructor_id or booking.instructor_id
        instructor = await self._get(Instructor, instructor_id, "Instructor") if instructor_id else None
        if request.solo_flight_type_id:
            await self._get(FlightType, request.solo_flight_type_id, "Flight type")

        rates = await self.rates.flight_rates(
            aircraft.id,
            flight_type.id,
            instructor_id=instructor.id if instructor else None,
            solo_flight_type_id=request.solo_flight_type_id,
        )
        if isinstance(rates, RateNotConfigured):
            raise RateNotConfiguredError(rates.reason)

        flight_log = await self._flight_log(booking.id)
        if flight_log is not None and flight_log.total_hours_start is not None:
            total_hours_start = to_decimal(flight_log.total_hours_start)
        else:
            total_hours_start = to_decimal(aircraft.total_hours)

        invoice = await self.invoices.get_invoice_for_booking(booking.id, lock=lock)
        tax = await self.rates.effective_tax_rate(invoice_rate=invoice.tax_rate if invoice else None)

        m = request.meter_readings
        readings = MeterReadings.of(m.hobbs_start, m.hobbs_end, m.tach_start, m.tach_end, m.solo_end_hobbs)
        context = FlightContext(
            instruction_type=flight_type.instruction_type,
            flight_type_name=flight_type.name,
            aircraft_registration=aircraft.registration,
            total_hours_start=total_hours_start,
            total_time_method=aircraft.total_time_method,
            instructor_name=instructor.full_name if instructor else None,
        )
        charge = calculate_flight_charge(readings, context, rates, tax.rate)

        return PreparedCharge(
            booking=booking,
            aircraft=aircraft,
            flight_type=flight_type,
            instructor=instructor,
            readings=readings,
            rates=rates,
            tax=tax,
            charge=charge,
            invoice=invoice,
            flight_log=flight_log,
        )

    async def preview(self, booking_id: UUID, request: FlightChargeRequest, current_user: dict) -> PreparedCharge:
        """Calculate a flight's charges; performs no writes."""
        prepared = await self.prepare(booking_id, request, current_user)
        logger.info(
            "flight_charge_previewed",
            booking_id=str(booking_id),
            item_count=len(prepared.charge.items),
            total_amount=str(prepared.charge.totals.total_amount),
        )
        return prepared

    async def complete(
        self, booking_id: UUID, request: FlightCompleteRequest, current_user: dict
    ) -> CompletedFlight:
        """
        Finalize a flight: flight log, invoice items, invoice approval, aircraft meters.

        Safe to retry: items are keyed on description and updated in place.
        A draft invoice is approved; a pending/overdue invoice keeps its header
        and only its items change, which is reported as a warning.

        Raises:
            ImmutabilityError: If the booking's invoice is paid, refunded or cancelled
        """
        prepared = await self.prepare(booking_id, request, current_user, lock=True)
        booking = prepared.booking
        times = prepared.charge.times

        invoice = prepared.invoice
        if invoice is not None:
            ensure_items_mutable(invoice)

        flight_log = prepared.flight_log
        if flight_log is None:
            flight_log = FlightLog(booking_id=booking.id)
            self.db.add(flight_log)
        readings = prepared.readings
        flight_log.checked_out_aircraft_id = prepared.aircraft.id
        flight_log.checked_out_instructor_id = prepared.instructor.id if prepared.instructor else None
        flight_log.flight_type_id = prepared.flight_type.id
        flight_log.hobbs_start = readings.hobbs_start
        flight_log.hobbs_end = readings.hobbs_end
        flight_log.tach_start = readings.tach_start
        flight_log.tach_end = readings.tach_end
        flight_log.solo_end_hobbs = readings.solo_end_hobbs
        flight_log.flight_time_hobbs = times.hobbs_time
        flight_log.flight_time_tach = times.tach_time
        flight_log.flight_time = times.flight_time
        flight_log.dual_time = times.dual_time or None
        flight_log.solo_time = times.solo_time or None
        flight_log.total_hours_start = times.total_hours_start
        flight_log.total_hours_end = times.total_hours_end
        flight_log.actual_end = datetime.utcnow()

        if request.invoice_items is not None:
            lines = [
                ItemLine(
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    tax_rate=line.tax_rate,
                    chargeable_id=line.chargeable_id,
                )
                for line in request.invoice_items
            ]
        else:
            lines = [
                ItemLine(description=item.description, quantity=item.quantity, unit_price=item.unit_price)
                for item in prepared.charge.items
            ]

        warning = None
        if invoice is None:
            invoice = await self.invoices.create_invoice(
                InvoiceCreate(
                    user_id=booking.user_id,
                    booking_id=booking.id,
                    tax_rate=prepared.tax.rate,
                    reference=f"{prepared.flight_type.name} - {prepared.aircraft.registration}",
                ),
                source="flight",
            )
        await self.items.upsert_items(invoice, lines)

        if invoice.status == InvoiceStatus.DRAFT:
            await self.invoices.approve(invoice, current_user)
        else:
            warning = (
                f"Invoice {invoice.invoice_number} is {invoice.status.value}. "
                "Only invoice items were updated - invoice details remain unchanged."
            )

        booking.status = BookingStatus.COMPLETE
        await self._advance_aircraft(prepared)
        await self.db.flush()

        flights_completed_total.labels(instruction_type=prepared.flight_type.instruction_type.value).inc()
        logger.info(
            "flight_completed",
            booking_id=str(booking.id),
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            total_amount=str(invoice.total_amount),
            warning=warning,
        )
        return CompletedFlight(
            booking=booking,
            flight_log=flight_log,
            invoice=invoice,
            items=await self.items.list_items(invoice.id),
            warning=warning,
        )

    async def _advance_aircraft(self, prepared: PreparedCharge) -> None:
        """Move the aircraft's meters forward unless a later completed flight already did."""
        aircraft = prepared.aircraft
        readings = prepared.readings
        result = await self.db.execute(
            select(FlightLog.id)
            .join(Booking, Booking.id == FlightLog.booking_id)
            .where(
                FlightLog.checked_out_aircraft_id == aircraft.id,
                FlightLog.booking_id != prepared.booking.id,
                Booking.status == BookingStatus.COMPLETE,
                FlightLog.hobbs_end > readings.hobbs_end,
            )
            .limit(1)
        )
        if result.scalar_one_or_none() is not None:
            logger.warning(
                "aircraft_meters_not_advanced",
                aircraft_id=str(aircraft.id),
                booking_id=str(prepared.booking.id),
                reason="later_completed_flight",
            )
            return

        aircraft.current_hobbs = readings.hobbs_end
        aircraft.current_tach = readings.tach_end
        aircraft.total_hours = prepared.charge.times.total_hours_end
