"""Integration tests for the invoice item ledger."""
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.exceptions import ImmutabilityError
from aeroledger.models.invoice import InvoiceStatus
from aeroledger.models.payment import PaymentMethod
from aeroledger.schemas.invoice import InvoiceCreate, InvoiceItemCreate, InvoiceItemUpdate
from aeroledger.schemas.payment import PaymentCreate
from utils.factories import create_chargeable, create_member, create_tax_rate


def _items() -> list[InvoiceItemCreate]:
    return [
        InvoiceItemCreate(description="Landing fee - Ardmore", quantity=Decimal("1"), unit_price=Decimal("25.00")),
        InvoiceItemCreate(description="Fuel surcharge", quantity=Decimal("1.3"), unit_price=Decimal("123.45")),
    ]


@pytest.mark.asyncio
async def test_invoice_totals_are_sums_of_items(db_session: AsyncSession) -> None:
    """Subtotal and tax total are the sums of the item amounts."""
    from aeroledger.services.invoice_service import InvoiceService

    member = await create_member(db_session)
    invoice = await InvoiceService(db_session).create_invoice(InvoiceCreate(user_id=member.id, items=_items()))
    await db_session.commit()

    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.invoice_number == "INV-000001"
    assert invoice.tax_rate == Decimal("0.15")
    # 25.00 + 3.75 and 160.49 + 24.07
    assert invoice.subtotal == Decimal("185.49")
    assert invoice.tax_total == Decimal("27.82")
    assert invoice.total_amount == Decimal("213.31")
    assert invoice.balance_due == Decimal("213.31")


@pytest.mark.asyncio
async def test_item_changes_recompute_invoice(db_session: AsyncSession) -> None:
    """Updating or deleting an item recomputes the parent invoice."""
    from aeroledger.services.invoice_item_service import InvoiceItemService
    from aeroledger.services.invoice_service import InvoiceService

    member = await create_member(db_session)
    invoice = await InvoiceService(db_session).create_invoice(InvoiceCreate(user_id=member.id, items=_items()))
    item_service = InvoiceItemService(db_session)
    items = {item.description: item for item in await item_service.list_items(invoice.id)}
    landing, fuel = items["Landing fee - Ardmore"], items["Fuel surcharge"]

    item, invoice = await item_service.update_item(landing.id, InvoiceItemUpdate(quantity=Decimal("2")))
    assert item.amount == Decimal("50.00")
    assert item.line_total == Decimal("57.50")
    assert invoice.subtotal == Decimal("210.49")
    assert invoice.tax_total == Decimal("31.57")

    invoice = await item_service.delete_item(fuel.id)
    await db_session.commit()

    assert invoice.subtotal == Decimal("50.00")
    assert invoice.tax_total == Decimal("7.50")
    assert invoice.total_amount == Decimal("57.50")
    assert len(await item_service.list_items(invoice.id)) == 1


@pytest.mark.asyncio
async def test_tax_exempt_chargeable_overrides_explicit_rate(db_session: AsyncSession) -> None:
    """Items billing a tax-exempt chargeable are written at 0% whatever the caller sends."""
    from aeroledger.services.invoice_item_service import InvoiceItemService
    from aeroledger.services.invoice_service import InvoiceService

    member = await create_member(db_session)
    exempt = await create_chargeable(db_session, is_taxable=False, name="Exam fee")
    invoice = await InvoiceService(db_session).create_invoice(InvoiceCreate(user_id=member.id))

    item, invoice = await InvoiceItemService(db_session).create_item(
        invoice.id,
        InvoiceItemCreate(
            description="CPL exam",
            quantity=Decimal("1"),
            unit_price=Decimal("80.00"),
            tax_rate=Decimal("0.15"),
            chargeable_id=exempt.id,
        ),
    )

    assert item.tax_rate == Decimal("0")
    assert item.tax_amount == Decimal("0.00")
    assert invoice.total_amount == Decimal("80.00")


@pytest.mark.asyncio
async def test_organization_tax_rate_snapshotted_on_create(db_session: AsyncSession) -> None:
    """A new invoice takes the active default tax rate; later changes do not touch it."""
    from aeroledger.services.invoice_service import InvoiceService

    member = await create_member(db_session)
    rate = await create_tax_rate(db_session, "0.10")
    invoice = await InvoiceService(db_session).create_invoice(InvoiceCreate(user_id=member.id, items=_items()))

    rate.rate = Decimal("0.20")
    await db_session.flush()

    assert invoice.tax_rate == Decimal("0.10")
    assert invoice.tax_total == Decimal("18.55")


@pytest.mark.asyncio
async def test_items_on_posted_invoice_move_member_balance(db_session: AsyncSession) -> None:
    """Changing items of a pending invoice keeps its debit and the member balance in step."""
    from aeroledger.services.invoice_item_service import InvoiceItemService
    from aeroledger.services.invoice_service import InvoiceService

    member = await create_member(db_session)
    invoice_service = InvoiceService(db_session)
    invoice = await invoice_service.create_invoice(InvoiceCreate(user_id=member.id, items=_items()[:1]))
    await invoice_service.approve(invoice)
    assert member.account_balance == Decimal("28.75")

    await InvoiceItemService(db_session).create_item(
        invoice.id,
        InvoiceItemCreate(description="Headset hire", quantity=Decimal("1"), unit_price=Decimal("10.00")),
    )
    await db_session.commit()

    assert invoice.total_amount == Decimal("40.25")
    assert member.account_balance == Decimal("40.25")


@pytest.mark.asyncio
async def test_upsert_items_is_idempotent(db_session: AsyncSession) -> None:
    """Upserting the same lines twice leaves one item per description."""
    from aeroledger.services.invoice_item_service import InvoiceItemService, ItemLine
    from aeroledger.services.invoice_service import InvoiceService

    member = await create_member(db_session)
    invoice = await InvoiceService(db_session).create_invoice(InvoiceCreate(user_id=member.id))
    item_service = InvoiceItemService(db_session)
    lines = [
        ItemLine(description="Dual Circuits - ZK-ABC", quantity=Decimal("1.2"), unit_price=Decimal("200")),
        ItemLine(description="Dual Circuits - Amelia Earhart", quantity=Decimal("1.2"), unit_price=Decimal("60")),
    ]

    first = await item_service.upsert_items(invoice, lines)
    second = await item_service.upsert_items(invoice, lines)
    await db_session.commit()

    assert (first.created, first.updated, first.deleted) == (2, 0, 0)
    assert (second.created, second.updated, second.deleted) == (0, 2, 0)
    items = await item_service.list_items(invoice.id)
    assert len(items) == 2
    assert invoice.subtotal == Decimal("312.00")


@pytest.mark.asyncio
async def test_upsert_removes_items_no_longer_wanted(db_session: AsyncSession) -> None:
    """Descriptions missing from the desired set are deleted."""
    from aeroledger.services.invoice_item_service import InvoiceItemService, ItemLine
    from aeroledger.services.invoice_service import InvoiceService

    member = await create_member(db_session)
    invoice = await InvoiceService(db_session).create_invoice(InvoiceCreate(user_id=member.id))
    item_service = InvoiceItemService(db_session)

    await item_service.upsert_items(
        invoice,
        [
            ItemLine(description="Aircraft", quantity=Decimal("1"), unit_price=Decimal("200")),
            ItemLine(description="Instructor", quantity=Decimal("1"), unit_price=Decimal("60")),
        ],
    )
    result = await item_service.upsert_items(
        invoice, [ItemLine(description="Aircraft", quantity=Decimal("1.5"), unit_price=Decimal("200"))]
    )

    assert result.deleted == 1
    items = await item_service.list_items(invoice.id)
    assert [item.description for item in items] == ["Aircraft"]
    assert invoice.subtotal == Decimal("300.00")


@pytest.mark.asyncio
async def test_items_of_cancelled_invoice_are_frozen(db_session: AsyncSession) -> None:
    """Item writes are refused on cancelled invoices."""
    from aeroledger.services.invoice_item_service import InvoiceItemService
    from aeroledger.services.invoice_service import InvoiceService

    member = await create_member(db_session)
    invoice_service = InvoiceService(db_session)
    invoice = await invoice_service.create_invoice(InvoiceCreate(user_id=member.id, items=_items()))
    await invoice_service.approve(invoice)
    await invoice_service.transition(invoice, InvoiceStatus.CANCELLED)

    with pytest.raises(ImmutabilityError):
        await InvoiceItemService(db_session).create_item(
            invoice.id,
            InvoiceItemCreate(description="Late fee", quantity=Decimal("1"), unit_price=Decimal("5")),
        )


@pytest.mark.asyncio
async def test_item_edit_settles_partly_paid_invoice(db_session: AsyncSession) -> None:
    """Lowering the total to what was already paid marks the invoice paid."""
    from aeroledger.services.invoice_item_service import InvoiceItemService
    from aeroledger.services.invoice_service import InvoiceService
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    invoice_service = InvoiceService(db_session)
    invoice = await invoice_service.create_invoice(
        InvoiceCreate(
            user_id=member.id,
            items=[InvoiceItemCreate(description="Aircraft hire", quantity=Decimal("1"), unit_price=Decimal("200"))],
        )
    )
    await invoice_service.approve(invoice)
    await PaymentService(db_session).record_payment(
        invoice.id,
        PaymentCreate(amount=Decimal("115.00"), payment_method=PaymentMethod.CASH),
        {"sub": "admin-1", "role": "admin"},
    )
    assert invoice.status == InvoiceStatus.PENDING

    item_service = InvoiceItemService(db_session)
    (item,) = await item_service.list_items(invoice.id)
    await item_service.update_item(item.id, InvoiceItemUpdate(quantity=Decimal("0.5")))
    await db_session.commit()

    assert invoice.total_amount == Decimal("115.00")
    assert invoice.balance_due == Decimal("0.00")
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.paid_date is not None
    assert member.account_balance == Decimal("0.00")

    with pytest.raises(ImmutabilityError):
        await item_service.update_item(item.id, InvoiceItemUpdate(quantity=Decimal("1")))
