"""Integration tests for flight charge preview and flight completion."""
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.exceptions import AuthorizationError, ImmutabilityError, NotFoundError, RateNotConfiguredError
from aeroledger.models.booking import BookingStatus, FlightLog
from aeroledger.models.invoice import Invoice, InvoiceStatus
from aeroledger.models.payment import PaymentMethod
from aeroledger.schemas.flight import ChargeLineInput, FlightChargeRequest, FlightCompleteRequest, MeterReadingsInput
from aeroledger.schemas.payment import PaymentCreate
from utils.factories import create_booking, create_flight_type

ADMIN = {"sub": "admin-1", "role": "admin"}


def _readings(hobbs_start="1000.0", hobbs_end="1001.0", tach_start="800.0", tach_end="800.8", solo_end_hobbs="1001.8"):
    return MeterReadingsInput(
        hobbs_start=Decimal(hobbs_start),
        hobbs_end=Decimal(hobbs_end),
        tach_start=Decimal(tach_start),
        tach_end=Decimal(tach_end),
        solo_end_hobbs=Decimal(solo_end_hobbs) if solo_end_hobbs else None,
    )


def _request(setup, **readings) -> FlightCompleteRequest:
    return FlightCompleteRequest(
        meter_readings=_readings(**readings),
        flight_type_id=setup["dual"].id,
        solo_flight_type_id=setup["solo"].id,
    )


@pytest.mark.asyncio
async def test_preview_writes_nothing(db_session: AsyncSession, flight_setup) -> None:
    """Preview returns times and items without creating an invoice or flight log."""
    from aeroledger.services.flight_service import FlightService

    setup = flight_setup
    prepared = await FlightService(db_session).preview(setup["booking"].id, _request(setup), ADMIN)

    assert prepared.charge.times.dual_time == Decimal("1.0")
    assert prepared.charge.times.solo_time == Decimal("0.8")
    assert prepared.charge.totals.total_amount == Decimal("464.60")
    assert prepared.invoice is None

    invoices = await db_session.execute(select(func.count()).select_from(Invoice))
    logs = await db_session.execute(select(func.count()).select_from(FlightLog))
    assert invoices.scalar() == 0
    assert logs.scalar() == 0
    assert setup["aircraft"].current_hobbs == Decimal("1000.00")


@pytest.mark.asyncio
async def test_complete_flight_invoices_and_advances_aircraft(db_session: AsyncSession, flight_setup) -> None:
    """Completion writes the log, approves the invoice and moves the aircraft meters."""
    from aeroledger.services.flight_service import FlightService

    setup = flight_setup
    aircraft = setup["aircraft"]
    completed = await FlightService(db_session).complete(setup["booking"].id, _request(setup), ADMIN)
    await db_session.commit()

    invoice = completed.invoice
    assert completed.warning is None
    assert invoice.status == InvoiceStatus.PENDING
    assert invoice.booking_id == setup["booking"].id
    assert invoice.reference == f"Circuits - {aircraft.registration}"
    assert invoice.total_amount == Decimal("464.60")

    descriptions = sorted(item.description for item in completed.items)
    assert descriptions == sorted(
        [
            f"Dual Circuits - {aircraft.registration}",
            "Dual Circuits - Amelia Earhart",
            f"Solo Circuits - {aircraft.registration}",
        ]
    )

    assert completed.booking.status == BookingStatus.COMPLETE
    assert completed.flight_log.dual_time == Decimal("1.0")
    assert completed.flight_log.solo_time == Decimal("0.8")
    assert completed.flight_log.total_hours_end == Decimal("1001.00")
    assert aircraft.current_hobbs == Decimal("1001.0")
    assert aircraft.current_tach == Decimal("800.8")
    assert aircraft.total_hours == Decimal("1001.00")
    assert setup["member"].account_balance == Decimal("464.60")


@pytest.mark.asyncio
async def test_complete_flight_twice_does_not_duplicate_items(db_session: AsyncSession, flight_setup) -> None:
    """Retrying completion updates items in place and reports the invoice is already approved."""
    from aeroledger.services.flight_service import FlightService

    setup = flight_setup
    service = FlightService(db_session)
    first = await service.complete(setup["booking"].id, _request(setup), ADMIN)
    await db_session.commit()
    second = await service.complete(setup["booking"].id, _request(setup), ADMIN)
    await db_session.commit()

    assert second.invoice.id == first.invoice.id
    assert len(second.items) == 3
    assert second.invoice.total_amount == Decimal("464.60")
    assert second.warning == (
        f"Invoice {first.invoice.invoice_number} is pending. "
        "Only invoice items were updated - invoice details remain unchanged."
    )
    assert setup["member"].account_balance == Decimal("464.60")

    logs = await db_session.execute(select(func.count()).select_from(FlightLog))
    assert logs.scalar() == 1


@pytest.mark.asyncio
async def test_corrected_readings_update_existing_items(db_session: AsyncSession, flight_setup) -> None:
    """Completing again with different readings reprices the same items."""
    from aeroledger.services.flight_service import FlightService

    setup = flight_setup
    service = FlightService(db_session)
    await service.complete(setup["booking"].id, _request(setup, solo_end_hobbs=None), ADMIN)
    second = await service.complete(setup["booking"].id, _request(setup, hobbs_end="1001.5", solo_end_hobbs=None), ADMIN)
    await db_session.commit()

    assert len(second.items) == 2
    # 1.5h x (200 + 60) + 15%
    assert second.invoice.total_amount == Decimal("448.50")
    assert setup["member"].account_balance == Decimal("448.50")


@pytest.mark.asyncio
async def test_complete_on_paid_invoice_is_refused(db_session: AsyncSession, flight_setup) -> None:
    """Once the flight invoice is paid, completion cannot touch it."""
    from aeroledger.services.flight_service import FlightService
    from aeroledger.services.payment_service import PaymentService

    setup = flight_setup
    service = FlightService(db_session)
    completed = await service.complete(setup["booking"].id, _request(setup), ADMIN)
    await PaymentService(db_session).record_payment(
        completed.invoice.id, PaymentCreate(amount=Decimal("464.60"), payment_method=PaymentMethod.CASH), ADMIN
    )
    await db_session.commit()

    with pytest.raises(ImmutabilityError):
        await service.complete(setup["booking"].id, _request(setup), ADMIN)


@pytest.mark.asyncio
async def test_explicit_items_replace_calculated_ones(db_session: AsyncSession, flight_setup) -> None:
    """Items sent with the completion are the full desired set."""
    from aeroledger.services.flight_service import FlightService

    setup = flight_setup
    request = _request(setup)
    request.invoice_items = [
        ChargeLineInput(description="Aircraft hire", quantity=Decimal("1.0"), unit_price=Decimal("200")),
        ChargeLineInput(description="Landing fee - Ardmore", quantity=Decimal("1"), unit_price=Decimal("25")),
    ]

    completed = await FlightService(db_session).complete(setup["booking"].id, request, ADMIN)

    assert sorted(item.description for item in completed.items) == ["Aircraft hire", "Landing fee - Ardmore"]
    assert completed.invoice.total_amount == Decimal("258.75")


@pytest.mark.asyncio
async def test_missing_rate_is_distinguished_from_missing_entity(db_session: AsyncSession, flight_setup) -> None:
    from aeroledger.services.flight_service import FlightService

    setup = flight_setup
    unpriced = await create_flight_type(db_session, name="Aerobatics")
    service = FlightService(db_session)

    with pytest.raises(RateNotConfiguredError) as exc_info:
        await service.preview(
            setup["booking"].id,
            FlightChargeRequest(meter_readings=_readings(solo_end_hobbs=None), flight_type_id=unpriced.id),
            ADMIN,
        )
    assert exc_info.value.code == "rate_not_configured"

    with pytest.raises(NotFoundError) as exc_info:
        await service.preview(
            setup["booking"].id,
            FlightChargeRequest(meter_readings=_readings(), flight_type_id=setup["dual"].id, aircraft_id=uuid4()),
            ADMIN,
        )
    assert exc_info.value.code == "not_found"


@pytest.mark.asyncio
async def test_other_members_cannot_preview(db_session: AsyncSession, flight_setup) -> None:
    from aeroledger.services.flight_service import FlightService

    with pytest.raises(AuthorizationError):
        await FlightService(db_session).preview(
            flight_setup["booking"].id, _request(flight_setup), {"sub": str(uuid4()), "role": "student"}
        )


@pytest.mark.asyncio
async def test_owner_can_preview_own_booking(db_session: AsyncSession, flight_setup) -> None:
    from aeroledger.services.flight_service import FlightService

    member = flight_setup["member"]
    prepared = await FlightService(db_session).preview(
        flight_setup["booking"].id, _request(flight_setup), {"sub": str(member.id), "role": "student"}
    )

    assert len(prepared.charge.items) == 3


@pytest.mark.asyncio
async def test_earlier_flight_does_not_rewind_aircraft(db_session: AsyncSession, flight_setup) -> None:
    """Completing an older flight after a later one leaves the aircraft meters alone."""
    from aeroledger.services.flight_service import FlightService

    setup = flight_setup
    later = await create_booking(db_session, setup["member"], setup["aircraft"], setup["dual"], setup["instructor"])
    service = FlightService(db_session)

    await service.complete(
        later.id,
        _request(setup, hobbs_start="1001.0", hobbs_end="1002.0", tach_start="800.8", tach_end="801.6", solo_end_hobbs=None),
        ADMIN,
    )
    await service.complete(setup["booking"].id, _request(setup, solo_end_hobbs=None), ADMIN)
    await db_session.commit()

    assert setup["aircraft"].current_hobbs == Decimal("1002.0")
    assert setup["aircraft"].current_tach == Decimal("801.6")
