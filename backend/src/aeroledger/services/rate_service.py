"""Rate resolver: aircraft, instructor, landing-fee and tax rates for a billing context."""
import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Union
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.config import settings
from aeroledger.models.rates import (
    AircraftChargeRate,
    Chargeable,
    InstructorFlightTypeRate,
    LandingFeeRate,
    TaxRate,
)
from aeroledger.utils.money import ZERO, to_decimal

logger = structlog.get_logger(__name__)


class BillingMeter(enum.Enum):
    """Meter an aircraft rate is charged against."""

    HOBBS = "hobbs"
    TACHO = "tacho"


@dataclass(frozen=True)
class AircraftRate:
    """Configured hourly aircraft rate."""

    rate_per_hour: Decimal
    meter: BillingMeter


@dataclass(frozen=True)
class RateNotConfigured:
    """No rate row exists for the requested context."""

    reason: str


@dataclass(frozen=True)
class FlightRates:
    """Every rate a flight charge needs."""

    aircraft: AircraftRate
    instructor_rate: Decimal
    solo_rate: Decimal
    solo_rate_configured: bool


class TaxRateSource(enum.Enum):
    """Which tier produced an effective tax rate."""

    CHARGEABLE_EXEMPT = "chargeable_exempt"
    EXPLICIT = "explicit"
    INVOICE = "invoice"
    ORGANIZATION_DEFAULT = "organization_default"


@dataclass(frozen=True)
class TaxRateResolution:
    """Effective tax rate tagged with the tier it came from."""

    rate: Decimal
    source: TaxRateSource


def resolve_effective_tax_rate(
    explicit_rate: Decimal | None = None,
    chargeable_taxable: bool | None = None,
    invoice_rate: Decimal | None = None,
    organization_rate: Decimal | None = None,
) -> TaxRateResolution:
    """
    Resolve the single tax rate an item is written with.

    Order: tax-exempt chargeable (rate 0), explicit caller rate, the invoice's
    snapshotted rate, then the organization default.

    Args:
        explicit_rate: Rate supplied by the caller, if any
        chargeable_taxable: ``is_taxable`` of the linked chargeable, None when unlinked
        invoice_rate: Invoice snapshot rate, None when there is no invoice
        organization_rate: Current organization default

    Returns:
        TaxRateResolution naming the tier used
    """
    if chargeable_taxable is False:
        return TaxRateResolution(ZERO, TaxRateSource.CHARGEABLE_EXEMPT)
    if explicit_rate is not None:
        return TaxRateResolution(to_decimal(explicit_rate), TaxRateSource.EXPLICIT)
    if invoice_rate is not None:
        return TaxRateResolution(to_decimal(invoice_rate), TaxRateSource.INVOICE)
    rate = organization_rate if organization_rate is not None else settings.default_tax_rate
    return TaxRateResolution(to_decimal(rate), TaxRateSource.ORGANIZATION_DEFAULT)


class RateService:
    """Read-only lookups against the rate tables."""

    def __init__(self, db: AsyncSession):
        """Initialize rate service with database session."""
        self.db = db

    async def aircraft_rate(
        self, aircraft_id: UUID, flight_type_id: UUID
    ) -> Union[AircraftRate, RateNotConfigured]:
        """
        Look up the hourly aircraft rate and billing meter.

        Returns:
            AircraftRate, or RateNotConfigured when no row exists
        """
        result = await self.db.execute(
            select(AircraftChargeRate).where(
                AircraftChargeRate.aircraft_id == aircraft_id,
                AircraftChargeRate.flight_type_id == flight_type_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            logger.info("aircraft_rate_not_configured", aircraft_id=str(aircraft_id), flight_type_id=str(flight_type_id))
            return RateNotConfigured(
                f"No charge rate configured for aircraft {aircraft_id} and flight type {flight_type_id}"
            )
        meter = BillingMeter.HOBBS if row.charge_hobbs else BillingMeter.TACHO
        return AircraftRate(rate_per_hour=to_decimal(row.rate_per_hour), meter=meter)

    async def instructor_rate(self, instructor_id: UUID | None, flight_type_id: UUID) -> Decimal:
        """Hourly instructor rate; 0 when none is configured."""
        if instructor_id is None:
            return ZERO
        result = await self.db.execute(
            select(InstructorFlightTypeRate.rate).where(
                InstructorFlightTypeRate.instructor_id == instructor_id,
                InstructorFlightTypeRate.flight_type_id == flight_type_id,
            )
        )
        rate = result.scalar_one_or_none()
        return to_decimal(rate) if rate is not None else ZERO

    async def landing_fee_rate(
        self, chargeable_id: UUID, aircraft_type_id: UUID
    ) -> Union[Decimal, RateNotConfigured]:
        """Landing fee for an airfield chargeable and aircraft type."""
        result = await self.db.execute(
            select(LandingFeeRate.rate).where(
                LandingFeeRate.chargeable_id == chargeable_id,
                LandingFeeRate.aircraft_type_id == aircraft_type_id,
            )
        )
        rate = result.scalar_one_or_none()
        if rate is None:
            return RateNotConfigured(
                f"No landing fee configured for chargeable {chargeable_id} and aircraft type {aircraft_type_id}"
            )
        return to_decimal(rate)

    async def flight_rates(
        self,
        aircraft_id: UUID,
        flight_type_id: UUID,
        instructor_id: UUID | None = None,
        solo_flight_type_id: UUID | None = None,
    ) -> Union[FlightRates, RateNotConfigured]:
        """
        Resolve every rate needed to charge a flight.

        The solo rate comes from the solo flight type's aircraft rate when one
        is configured and otherwise falls back to the main aircraft rate.

        Returns:
            FlightRates, or RateNotConfigured when the aircraft rate is missing
        """
        aircraft = await self.aircraft_rate(aircraft_id, flight_type_id)
        if isinstance(aircraft, RateNotConfigured):
            return aircraft

        instructor = await self.instructor_rate(instructor_id, flight_type_id)

        solo_rate = aircraft.rate_per_hour
        solo_configured = False
        if solo_flight_type_id is not None:
            solo = await self.aircraft_rate(aircraft_id, solo_flight_type_id)
            if isinstance(solo, AircraftRate):
                solo_rate = solo.rate_per_hour
                solo_configured = True

        return FlightRates(
            aircraft=aircraft,
            instructor_rate=instructor,
            solo_rate=solo_rate,
            solo_rate_configured=solo_configured,
        )

    async def organization_tax_rate(self, on: datetime | None = None) -> Decimal:
        """
        Current organization default tax rate.

        Picks the active default row with the latest ``effective_from`` not after
        ``on``; falls back to ``settings.default_tax_rate``.
        """
        on = on or datetime.utcnow()
        result = await self.db.execute(
            select(TaxRate.rate)
            .where(
                TaxRate.is_default.is_(True),
                TaxRate.is_active.is_(True),
                or_(TaxRate.effective_from.is_(None), TaxRate.effective_from <= on),
            )
            .order_by(TaxRate.effective_from.desc().nulls_last(), TaxRate.created_at.desc())
            .limit(1)
        )
        rate = result.scalar_one_or_none()
        return to_decimal(rate) if rate is not None else settings.default_tax_rate

    async def effective_tax_rate(
        self,
        explicit_rate: Decimal | None = None,
        chargeable_id: UUID | None = None,
        invoice_rate: Decimal | None = None,
    ) -> TaxRateResolution:
        """Load the chargeable and organization default as needed, then resolve."""
        taxable = None
        if chargeable_id is not None:
            result = await self.db.execute(select(Chargeable.is_taxable).where(Chargeable.id == chargeable_id))
            taxable = result.scalar_one_or_none()

        organization_rate = None
        if taxable is not False and explicit_rate is None and invoice_rate is None:
            organization_rate = await self.organization_tax_rate()

        return resolve_effective_tax_rate(
            explicit_rate=explicit_rate,
            chargeable_taxable=taxable,
            invoice_rate=invoice_rate,
            organization_rate=organization_rate,
        )
