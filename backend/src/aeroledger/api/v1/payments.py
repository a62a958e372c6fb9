"""Payment API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.api.deps import get_current_user, get_db
from aeroledger.auth.rbac import Role, require_roles
from aeroledger.database import run_in_transaction
from aeroledger.schemas.invoice import Invoice
from aeroledger.schemas.payment import (
    CreditPaymentCreate,
    Payment,
    PaymentCreate,
    PaymentResult,
    PaymentReversalRequest,
    PaymentReversalResult,
)
from aeroledger.services.payment_service import PaymentOutcome, PaymentService

router = APIRouter(tags=["Payments"])


def _payment_result(outcome: PaymentOutcome) -> PaymentResult:
    return PaymentResult(
        payment=Payment.model_validate(outcome.payment),
        invoice=Invoice.model_validate(outcome.invoice) if outcome.invoice else None,
        account_balance=outcome.member.account_balance,
    )


@router.post("/invoices/{invoice_id}/payments", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
@require_roles(Role.INSTRUCTOR, Role.ADMIN, Role.OWNER)
async def record_payment(
    invoice_id: UUID,
    payment_data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> PaymentResult:
    """
    Record a payment against a pending or overdue invoice.

    The invoice becomes **paid** once payments and applied credit notes cover
    its total. Overpayment is rejected while ``strict_payment_limit`` is on.
    """
    service = PaymentService(db)
    outcome = await run_in_transaction(
        db, lambda: service.record_payment(invoice_id, payment_data, current_user), "record_payment"
    )
    return _payment_result(outcome)


@router.post("/payments/credit", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
@require_roles(Role.ADMIN, Role.OWNER)
async def record_credit_payment(
    payment_data: CreditPaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> PaymentResult:
    """Credit money received to a member's account without an invoice."""
    service = PaymentService(db)
    outcome = await run_in_transaction(
        db, lambda: service.record_credit_payment(payment_data, current_user), "record_credit_payment"
    )
    return _payment_result(outcome)


@router.post("/payments/{payment_id}/reverse", response_model=PaymentReversalResult)
@require_roles(Role.ADMIN, Role.OWNER)
async def reverse_payment(
    payment_id: UUID,
    reversal_data: PaymentReversalRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> PaymentReversalResult:
    """
    Reverse a payment.

    A negative reversal entry is recorded and the original payment is kept
    as-is. Pass ``correct_amount`` to record the right amount in the same
    operation; a paid invoice that is no longer covered falls back to pending
    or overdue.
    """
    service = PaymentService(db)
    outcome = await run_in_transaction(
        db, lambda: service.reverse_payment(payment_id, reversal_data, current_user), "reverse_payment"
    )
    return PaymentReversalResult(
        reversal=Payment.model_validate(outcome.reversal),
        correction=Payment.model_validate(outcome.correction) if outcome.correction else None,
        net_adjustment=outcome.net_adjustment,
        invoice=Invoice.model_validate(outcome.invoice) if outcome.invoice else None,
        account_balance=outcome.member.account_balance,
    )
