"""Integration tests for payments, account credits and reversals."""
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.config import settings
from aeroledger.exceptions import NotFoundError, ValidationError
from aeroledger.models.invoice import InvoiceStatus
from aeroledger.models.payment import Payment, PaymentMethod
from aeroledger.schemas.invoice import InvoiceCreate, InvoiceItemCreate
from aeroledger.schemas.payment import CreditPaymentCreate, PaymentCreate, PaymentReversalRequest
from utils.factories import create_member

ADMIN = {"sub": "admin-1", "role": "admin"}


async def _pending_invoice(db: AsyncSession, member, unit_price: str = "200"):
    """A pending invoice for 1.0h at ``unit_price`` plus 15% tax."""
    from aeroledger.services.invoice_service import InvoiceService

    service = InvoiceService(db)
    invoice = await service.create_invoice(
        InvoiceCreate(
            user_id=member.id,
            items=[InvoiceItemCreate(description="Aircraft hire", quantity=Decimal("1"), unit_price=Decimal(unit_price))],
        )
    )
    await service.approve(invoice, ADMIN)
    await db.commit()
    return invoice


def _cash(amount: str) -> PaymentCreate:
    return PaymentCreate(amount=Decimal(amount), payment_method=PaymentMethod.CASH)


@pytest.mark.asyncio
async def test_partial_then_full_payment(db_session: AsyncSession) -> None:
    """The invoice becomes paid once payments cover its total."""
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    invoice = await _pending_invoice(db_session, member)
    service = PaymentService(db_session)

    first = await service.record_payment(invoice.id, _cash("100.00"), ADMIN)
    assert first.payment.payment_number == "PAY-000001"
    assert invoice.status == InvoiceStatus.PENDING
    assert invoice.balance_due == Decimal("130.00")
    assert member.account_balance == Decimal("130.00")

    second = await service.record_payment(invoice.id, _cash("130.00"), ADMIN)
    await db_session.commit()

    assert second.invoice.status == InvoiceStatus.PAID
    assert invoice.total_paid == Decimal("230.00")
    assert invoice.balance_due == Decimal("0.00")
    assert invoice.paid_date is not None
    assert second.member.account_balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_overpayment_rejected(db_session: AsyncSession) -> None:
    """With the strict limit, a payment above the balance due is refused."""
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    invoice = await _pending_invoice(db_session, member)

    with pytest.raises(ValidationError) as exc_info:
        await PaymentService(db_session).record_payment(invoice.id, _cash("230.01"), ADMIN)

    assert exc_info.value.field == "amount"


@pytest.mark.asyncio
async def test_overpayment_allowed_when_limit_disabled(db_session: AsyncSession, monkeypatch) -> None:
    """Without the strict limit the excess becomes account credit."""
    from aeroledger.services.payment_service import PaymentService

    monkeypatch.setattr(settings, "strict_payment_limit", False)
    member = await create_member(db_session)
    invoice = await _pending_invoice(db_session, member)

    outcome = await PaymentService(db_session).record_payment(invoice.id, _cash("250.00"), ADMIN)

    assert outcome.invoice.status == InvoiceStatus.PAID
    assert outcome.invoice.balance_due == Decimal("-20.00")
    assert outcome.member.account_balance == Decimal("-20.00")


@pytest.mark.asyncio
async def test_draft_invoice_cannot_be_paid(db_session: AsyncSession) -> None:
    from aeroledger.services.invoice_service import InvoiceService
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    invoice = await InvoiceService(db_session).create_invoice(
        InvoiceCreate(
            user_id=member.id,
            items=[InvoiceItemCreate(description="Aircraft hire", quantity=Decimal("1"), unit_price=Decimal("200"))],
        )
    )

    with pytest.raises(ValidationError, match="cannot accept payments"):
        await PaymentService(db_session).record_payment(invoice.id, _cash("10.00"), ADMIN)


@pytest.mark.asyncio
async def test_credit_payment_without_invoice(db_session: AsyncSession) -> None:
    """Account credits are not bounded by any invoice and can take the balance negative."""
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    outcome = await PaymentService(db_session).record_credit_payment(
        CreditPaymentCreate(user_id=member.id, amount=Decimal("500.00"), payment_method=PaymentMethod.BANK_TRANSFER),
        ADMIN,
    )
    await db_session.commit()

    assert outcome.invoice is None
    assert outcome.payment.invoice_id is None
    assert outcome.member.account_balance == Decimal("-500.00")


@pytest.mark.asyncio
async def test_credit_payment_for_unknown_member(db_session: AsyncSession) -> None:
    from uuid import uuid4

    from aeroledger.services.payment_service import PaymentService

    with pytest.raises(NotFoundError):
        await PaymentService(db_session).record_credit_payment(
            CreditPaymentCreate(user_id=uuid4(), amount=Decimal("5.00"), payment_method=PaymentMethod.CASH), ADMIN
        )


@pytest.mark.asyncio
async def test_reversal_reopens_paid_invoice(db_session: AsyncSession) -> None:
    """Reversing the settling payment drops the invoice back to pending."""
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    invoice = await _pending_invoice(db_session, member)
    service = PaymentService(db_session)
    paid = await service.record_payment(invoice.id, _cash("230.00"), ADMIN)
    assert invoice.status == InvoiceStatus.PAID

    outcome = await service.reverse_payment(paid.payment.id, PaymentReversalRequest(reason="Bounced"), ADMIN)
    await db_session.commit()

    assert outcome.reversal.amount == Decimal("-230.00")
    assert outcome.reversal.reversal_of_id == paid.payment.id
    assert outcome.correction is None
    assert outcome.net_adjustment == Decimal("-230.00")
    assert invoice.status == InvoiceStatus.PENDING
    assert invoice.paid_date is None
    assert invoice.total_paid == Decimal("0.00")
    assert outcome.member.account_balance == Decimal("230.00")

    # The original payment row is untouched
    await db_session.refresh(paid.payment)
    assert paid.payment.amount == Decimal("230.00")


@pytest.mark.asyncio
async def test_reversal_with_correction(db_session: AsyncSession) -> None:
    """A mistyped payment is reversed and re-recorded at the right amount."""
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    invoice = await _pending_invoice(db_session, member)
    service = PaymentService(db_session)
    wrong = await service.record_payment(invoice.id, _cash("23.00"), ADMIN)

    outcome = await service.reverse_payment(
        wrong.payment.id,
        PaymentReversalRequest(reason="Keyed 23.00 instead of 230.00", correct_amount=Decimal("230.00")),
        ADMIN,
    )
    await db_session.commit()

    assert outcome.correction is not None
    assert outcome.correction.amount == Decimal("230.00")
    assert outcome.correction.corrects_payment_id == wrong.payment.id
    assert outcome.net_adjustment == Decimal("207.00")
    assert invoice.status == InvoiceStatus.PAID
    assert member.account_balance == Decimal("0.00")

    result = await db_session.execute(select(Payment).where(Payment.invoice_id == invoice.id))
    assert len(result.scalars().all()) == 3


@pytest.mark.asyncio
async def test_payment_cannot_be_reversed_twice(db_session: AsyncSession) -> None:
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    invoice = await _pending_invoice(db_session, member)
    service = PaymentService(db_session)
    paid = await service.record_payment(invoice.id, _cash("50.00"), ADMIN)
    outcome = await service.reverse_payment(paid.payment.id, PaymentReversalRequest(reason="Duplicate"), ADMIN)

    with pytest.raises(ValidationError, match="already been reversed"):
        await service.reverse_payment(paid.payment.id, PaymentReversalRequest(reason="Again"), ADMIN)

    with pytest.raises(ValidationError, match="cannot be reversed"):
        await service.reverse_payment(outcome.reversal.id, PaymentReversalRequest(reason="Undo"), ADMIN)


@pytest.mark.asyncio
async def test_reversing_credit_payment(db_session: AsyncSession) -> None:
    """Account credits reverse against the member balance only."""
    from aeroledger.services.payment_service import PaymentService

    member = await create_member(db_session)
    service = PaymentService(db_session)
    credit = await service.record_credit_payment(
        CreditPaymentCreate(user_id=member.id, amount=Decimal("80.00"), payment_method=PaymentMethod.CASH), ADMIN
    )

    outcome = await service.reverse_payment(
        credit.payment.id, PaymentReversalRequest(reason="Wrong member", correct_amount=Decimal("60.00")), ADMIN
    )

    assert outcome.invoice is None
    assert outcome.net_adjustment == Decimal("-20.00")
    assert outcome.member.account_balance == Decimal("-60.00")
