"""Flight charge calculator.

Pure functions turning meter readings, flight classification and resolved
rates into flight times and provisional (unpersisted) invoice items. The same
calculation backs both the preview and the completion of a flight.
"""
import enum
from dataclasses import dataclass, field
from decimal import Decimal

from aeroledger.exceptions import ValidationError
from aeroledger.models.aircraft import InstructionType
from aeroledger.services.rate_service import BillingMeter, FlightRates
from aeroledger.utils.money import ZERO, LineAmounts, Totals, round1, round2, to_decimal

# total_time_method -> (meter, factor)
TOTAL_TIME_METHODS: dict[str, tuple[BillingMeter, Decimal]] = {
    "hobbs": (BillingMeter.HOBBS, Decimal("1")),
    "tacho": (BillingMeter.TACHO, Decimal("1")),
    "airswitch": (BillingMeter.HOBBS, Decimal("1")),
    "hobbs less 5%": (BillingMeter.HOBBS, Decimal("0.95")),
    "hobbs less 10%": (BillingMeter.HOBBS, Decimal("0.90")),
    "tacho less 5%": (BillingMeter.TACHO, Decimal("0.95")),
    "tacho less 10%": (BillingMeter.TACHO, Decimal("0.90")),
}


class ChargeKind(enum.Enum):
    """Which component of a flight an item bills."""

    AIRCRAFT = "aircraft"
    INSTRUCTOR = "instructor"
    SOLO = "solo"


@dataclass(frozen=True)
class MeterReadings:
    """Raw meter readings for one flight."""

    hobbs_start: Decimal
    hobbs_end: Decimal
    tach_start: Decimal
    tach_end: Decimal
    solo_end_hobbs: Decimal | None = None

    @classmethod
    def of(cls, hobbs_start, hobbs_end, tach_start, tach_end, solo_end_hobbs=None) -> "MeterReadings":
        return cls(
            to_decimal(hobbs_start),
            to_decimal(hobbs_end),
            to_decimal(tach_start),
            to_decimal(tach_end),
            to_decimal(solo_end_hobbs) if solo_end_hobbs is not None else None,
        )


@dataclass(frozen=True)
class FlightContext:
    """Descriptive context the items are labelled with."""

    instruction_type: InstructionType
    flight_type_name: str
    aircraft_registration: str
    total_hours_start: Decimal
    total_time_method: str | None = None
    instructor_name: str | None = None


@dataclass(frozen=True)
class FlightTimes:
    """Derived flight times."""

    hobbs_time: Decimal
    tach_time: Decimal
    billable_time: Decimal
    credited_time: Decimal
    total_hours_start: Decimal
    total_hours_end: Decimal
    dual_time: Decimal
    solo_time: Decimal

    @property
    def flight_time(self) -> Decimal:
        return self.dual_time + self.solo_time


@dataclass(frozen=True)
class ProvisionalItem:
    """An invoice item that has not been written yet."""

    kind: ChargeKind
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal

    @property
    def amounts(self) -> LineAmounts:
        return LineAmounts.of(self.quantity, self.unit_price, self.tax_rate)

    @property
    def amount(self) -> Decimal:
        return self.amounts.amount

    @property
    def tax_amount(self) -> Decimal:
        return self.amounts.tax_amount


@dataclass(frozen=True)
class FlightCharge:
    """Result of a charge calculation."""

    times: FlightTimes
    items: tuple[ProvisionalItem, ...] = field(default_factory=tuple)

    @property
    def totals(self) -> Totals:
        return Totals.from_lines(self.items)


def validate_readings(readings: MeterReadings) -> None:
    """Reject out-of-order meter readings."""
    if readings.hobbs_end <= readings.hobbs_start:
        raise ValidationError("End Hobbs must be greater than Start Hobbs", field="hobbs_end")
    if readings.tach_end <= readings.tach_start:
        raise ValidationError("End Tach must be greater than Start Tach", field="tach_end")
    if readings.solo_end_hobbs is not None and readings.solo_end_hobbs <= readings.hobbs_end:
        raise ValidationError("Solo End Hobbs must be greater than Dual End Hobbs", field="solo_end_hobbs")


def credited_time(method: str | None, hobbs_time: Decimal, tach_time: Decimal) -> Decimal:
    """Airframe hours credited for a flight; unknown methods use hobbs time."""
    meter, factor = TOTAL_TIME_METHODS.get((method or "").strip().lower(), (BillingMeter.HOBBS, Decimal("1")))
    base = hobbs_time if meter == BillingMeter.HOBBS else tach_time
    return round2(base * factor)


def calculate_times(
    readings: MeterReadings,
    instruction_type: InstructionType,
    meter: BillingMeter,
    total_time_method: str | None,
    total_hours_start: Decimal,
) -> FlightTimes:
    """
    Derive hobbs/tach time, credited airframe hours and the dual/solo split.

    Raises:
        ValidationError: If meter readings are out of order
    """
    validate_readings(readings)

    hobbs_time = round1(readings.hobbs_end - readings.hobbs_start)
    tach_time = round1(readings.tach_end - readings.tach_start)
    billable = hobbs_time if meter == BillingMeter.HOBBS else tach_time
    credited = credited_time(total_time_method, hobbs_time, tach_time)
    start = to_decimal(total_hours_start)

    dual_time = ZERO
    solo_time = ZERO
    if instruction_type == InstructionType.SOLO:
        solo_time = billable
    else:
        dual_time = billable
        if instruction_type == InstructionType.DUAL and readings.solo_end_hobbs is not None:
            solo_time = round1(readings.solo_end_hobbs - readings.hobbs_end)

    return FlightTimes(
        hobbs_time=hobbs_time,
        tach_time=tach_time,
        billable_time=billable,
        credited_time=credited,
        total_hours_start=start,
        total_hours_end=start + credited,
        dual_time=dual_time,
        solo_time=solo_time,
    )


def build_items(
    times: FlightTimes,
    context: FlightContext,
    rates: FlightRates,
    tax_rate: Decimal,
) -> tuple[ProvisionalItem, ...]:
    """Provisional items for a flight; zero-duration components are left out."""
    ft = context.flight_type_name
    reg = context.aircraft_registration
    instructor = context.instructor_name
    items: list[ProvisionalItem] = []

    def add(kind: ChargeKind, description: str, quantity: Decimal, rate: Decimal) -> None:
        if quantity > 0:
            items.append(ProvisionalItem(kind, description, quantity, to_decimal(rate), to_decimal(tax_rate)))

    if context.instruction_type == InstructionType.SOLO:
        add(ChargeKind.SOLO, f"Solo {ft} - {reg}", times.solo_time, rates.solo_rate)
    elif context.instruction_type == InstructionType.DUAL:
        add(ChargeKind.AIRCRAFT, f"Dual {ft} - {reg}", times.dual_time, rates.aircraft.rate_per_hour)
        add(ChargeKind.INSTRUCTOR, f"Dual {ft} - {instructor}", times.dual_time, rates.instructor_rate)
        add(ChargeKind.SOLO, f"Solo {ft} - {reg}", times.solo_time, rates.solo_rate)
    else:
        add(ChargeKind.AIRCRAFT, f"{ft} - {reg}", times.dual_time, rates.aircraft.rate_per_hour)
        add(ChargeKind.INSTRUCTOR, f"{ft} - {instructor}", times.dual_time, rates.instructor_rate)

    return tuple(items)


def calculate_flight_charge(
    readings: MeterReadings,
    context: FlightContext,
    rates: FlightRates,
    tax_rate: Decimal,
) -> FlightCharge:
    """
    Calculate times and provisional items for one flight.

    Args:
        readings: Meter readings
        context: Flight classification and labels
        rates: Resolved rates
        tax_rate: Tax rate applied to every flight item

    Returns:
        FlightCharge with times, items and totals

    Raises:
        ValidationError: On out-of-order readings, or a dual/trial flight without an instructor
    """
    if context.instruction_type != InstructionType.SOLO and not context.instructor_name:
        raise ValidationError("Instructor required for dual/trial flights", field="instructor_id")

    times = calculate_times(
        readings,
        context.instruction_type,
        rates.aircraft.meter,
        context.total_time_method,
        context.total_hours_start,
    )
    return FlightCharge(times=times, items=build_items(times, context, rates, tax_rate))
