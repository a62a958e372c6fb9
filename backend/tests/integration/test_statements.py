"""Integration tests for account statements."""
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.exceptions import NotFoundError
from aeroledger.models.payment import PaymentMethod
from aeroledger.schemas.credit_note import CreditNoteCreate, CreditNoteItemCreate
from aeroledger.schemas.invoice import InvoiceCreate, InvoiceItemCreate
from aeroledger.schemas.payment import CreditPaymentCreate, PaymentCreate
from aeroledger.schemas.statement import StatementEntryType
from utils.factories import create_member

ADMIN = {"sub": "admin-1", "role": "admin"}


async def _invoice(db: AsyncSession, member, unit_price: str, approve: bool = True):
    from aeroledger.services.invoice_service import InvoiceService

    service = InvoiceService(db)
    invoice = await service.create_invoice(
        InvoiceCreate(
            user_id=member.id,
            reference="Circuits - ZK-ABC",
            items=[InvoiceItemCreate(description="Aircraft hire", quantity=Decimal("1"), unit_price=Decimal(unit_price))],
        )
    )
    if approve:
        await service.approve(invoice, ADMIN)
    return invoice


@pytest.mark.asyncio
async def test_statement_reconciles_to_account_balance(db_session: AsyncSession) -> None:
    """The last running balance equals the stored balance."""
    from aeroledger.services.credit_note_service import CreditNoteService
    from aeroledger.services.payment_service import PaymentService
    from aeroledger.services.statement_service import StatementService

    member = await create_member(db_session)
    invoice = await _invoice(db_session, member, "200")
    await _invoice(db_session, member, "100")
    await PaymentService(db_session).record_payment(
        invoice.id, PaymentCreate(amount=Decimal("150.00"), payment_method=PaymentMethod.CASH), ADMIN
    )
    credit_note_service = CreditNoteService(db_session)
    credit_note, _ = await credit_note_service.create_credit_note(
        invoice.id,
        CreditNoteCreate(
            user_id=member.id,
            reason="Weather return",
            items=[CreditNoteItemCreate(description="Credit", quantity=Decimal("1"), unit_price=Decimal("20"))],
        ),
        ADMIN,
    )
    await credit_note_service.apply_credit_note(credit_note.id, ADMIN)
    await db_session.commit()

    statement = await StatementService(db_session).build_statement(member.id)

    # 230 + 115 - 150 - 23
    assert member.account_balance == Decimal("172.00")
    assert statement.closing_balance == Decimal("172.00")
    assert statement.entries[-1].balance == statement.closing_balance
    assert statement.opening_balance == Decimal("0.00")
    assert [entry.entry_type for entry in statement.entries] == [
        StatementEntryType.INVOICE,
        StatementEntryType.INVOICE,
        StatementEntryType.PAYMENT,
        StatementEntryType.CREDIT_NOTE,
    ]
    assert statement.entries[0].description == f"Invoice {invoice.invoice_number} - Circuits - ZK-ABC"


@pytest.mark.asyncio
async def test_drafts_and_unapplied_credit_notes_are_left_out(db_session: AsyncSession) -> None:
    from aeroledger.services.credit_note_service import CreditNoteService
    from aeroledger.services.statement_service import StatementService

    member = await create_member(db_session)
    posted = await _invoice(db_session, member, "100")
    await _invoice(db_session, member, "999", approve=False)
    await CreditNoteService(db_session).create_credit_note(
        posted.id,
        CreditNoteCreate(
            user_id=member.id,
            reason="Pending review",
            items=[CreditNoteItemCreate(description="Credit", quantity=Decimal("1"), unit_price=Decimal("10"))],
        ),
        ADMIN,
    )
    await db_session.commit()

    statement = await StatementService(db_session).build_statement(member.id)

    assert len(statement.entries) == 1
    assert statement.entries[0].reference == posted.invoice_number
    assert statement.closing_balance == Decimal("115.00")


@pytest.mark.asyncio
async def test_opening_balance_for_history_outside_the_ledger(db_session: AsyncSession) -> None:
    """A stored balance the entries do not explain becomes an opening balance row."""
    from aeroledger.services.payment_service import PaymentService
    from aeroledger.services.statement_service import StatementService

    member = await create_member(db_session, account_balance=Decimal("40.00"))
    await PaymentService(db_session).record_credit_payment(
        CreditPaymentCreate(user_id=member.id, amount=Decimal("25.00"), payment_method=PaymentMethod.CASH), ADMIN
    )
    await db_session.commit()

    statement = await StatementService(db_session).build_statement(member.id)

    assert statement.opening_balance == Decimal("40.00")
    assert statement.entries[0].entry_type == StatementEntryType.OPENING_BALANCE
    assert statement.entries[1].amount == Decimal("-25.00")
    assert statement.entries[1].balance == Decimal("15.00")
    assert statement.closing_balance == Decimal("15.00")


@pytest.mark.asyncio
async def test_empty_statement(db_session: AsyncSession) -> None:
    from aeroledger.services.statement_service import StatementService

    member = await create_member(db_session)
    statement = await StatementService(db_session).build_statement(member.id)

    assert statement.entries == []
    assert statement.closing_balance == Decimal("0.00")
    assert statement.member_name == member.full_name


@pytest.mark.asyncio
async def test_statement_for_unknown_member(db_session: AsyncSession) -> None:
    from uuid import uuid4

    from aeroledger.services.statement_service import StatementService

    with pytest.raises(NotFoundError):
        await StatementService(db_session).build_statement(uuid4())
