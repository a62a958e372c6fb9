"""Payments, standalone account credits and payment reversals."""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger import lifecycle
from aeroledger.config import settings
from aeroledger.exceptions import NotFoundError, ValidationError
from aeroledger.metrics import payment_reversals_total, payments_recorded_total
from aeroledger.models.invoice import Invoice
from aeroledger.models.member import Member
from aeroledger.models.payment import Payment, PaymentMethod
from aeroledger.models.transaction import TransactionType
from aeroledger.schemas.payment import CreditPaymentCreate, PaymentCreate, PaymentReversalRequest
from aeroledger.services.invoice_service import InvoiceService
from aeroledger.services.transaction_service import TransactionService
from aeroledger.utils.audit import log_audit
from aeroledger.utils.money import ZERO, round2, to_decimal

logger = structlog.get_logger(__name__)


@dataclass
class PaymentOutcome:
    """A payment with the invoice and member it touched."""

    payment: Payment
    invoice: Invoice | None
    member: Member


@dataclass
class ReversalOutcome:
    """A reversal with its optional correction."""

    reversal: Payment
    correction: Payment | None
    net_adjustment: Decimal
    invoice: Invoice | None
    member: Member


class PaymentService:
    """Service layer for payment operations."""

    def __init__(self, db: AsyncSession):
        """Initialize payment service with database session."""
        self.db = db
        self.invoices = InvoiceService(db)
        self.transactions = TransactionService(db)

    async def generate_payment_number(self) -> str:
        """Sequential payment number, e.g. PAY-000042."""
        result = await self.db.execute(select(func.count()).select_from(Payment))
        count = result.scalar() or 0
        return f"{settings.payment_prefix}-{count + 1:06d}"

    async def get_payment(self, payment_id: UUID, lock: bool = False) -> Payment:
        """Get payment by ID or raise NotFoundError."""
        query = select(Payment).where(Payment.id == payment_id)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def list_payments(self, user_id: UUID | None = None, invoice_id: UUID | None = None) -> list[Payment]:
        """Payments for a member and/or invoice, oldest first."""
        query = select(Payment)
        if user_id:
            query = query.where(Payment.user_id == user_id)
        if invoice_id:
            query = query.where(Payment.invoice_id == invoice_id)
        result = await self.db.execute(query.order_by(Payment.paid_at, Payment.payment_number))
        return list(result.scalars().all())

    async def _insert_payment(
        self,
        user_id: UUID,
        amount: Decimal,
        payment_method: PaymentMethod,
        invoice: Invoice | None = None,
        payment_reference: str | None = None,
        notes: str | None = None,
        created_by: str | None = None,
        reversal_of_id: UUID | None = None,
        corrects_payment_id: UUID | None = None,
        reason: str | None = None,
    ) -> Payment:
        payment = Payment(
            payment_number=await self.generate_payment_number(),
            invoice_id=invoice.id if invoice else None,
            user_id=user_id,
            amount=round2(amount),
            payment_method=payment_method,
            payment_reference=payment_reference,
            notes=notes,
            reversal_of_id=reversal_of_id,
            corrects_payment_id=corrects_payment_id,
            reason=reason,
            created_by=created_by,
            paid_at=datetime.utcnow(),
        )
        self.db.add(payment)
        await self.db.flush()
        return payment

    async def _pay_invoice(
        self,
        invoice: Invoice,
        amount: Decimal,
        payment_method: PaymentMethod,
        payment_reference: str | None,
        notes: str | None,
        created_by: str | None,
        corrects_payment_id: UUID | None = None,
    ) -> Payment:
        """Insert an invoice payment, credit the account and settle the invoice."""
        amount = round2(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero", field="amount")
        if invoice.status not in lifecycle.PAYABLE_STATUSES:
            raise ValidationError(
                f"Invoice {invoice.invoice_number} is {invoice.status.value} and cannot accept payments",
                field="invoice_id",
            )
        if settings.strict_payment_limit and amount > to_decimal(invoice.balance_due):
            raise ValidationError(
                f"Payment of {amount} exceeds the balance due of {invoice.balance_due} on invoice {invoice.invoice_number}",
                field="amount",
            )

        payment = await self._insert_payment(
            invoice.user_id,
            amount,
            payment_method,
            invoice=invoice,
            payment_reference=payment_reference,
            notes=notes,
            created_by=created_by,
            corrects_payment_id=corrects_payment_id,
        )
        await self.transactions.post(
            invoice.user_id,
            TransactionType.CREDIT,
            amount,
            f"Payment {payment.payment_number} for invoice {invoice.invoice_number}",
            reference_number=payment.payment_number,
            invoice_id=invoice.id,
            payment_id=payment.id,
        )
        invoice.total_paid = round2(to_decimal(invoice.total_paid) + amount)
        await self.invoices.refresh_settlement(invoice)
        return payment

    async def record_payment(self, invoice_id: UUID, data: PaymentCreate, current_user: dict) -> PaymentOutcome:
        """
        Record a payment against an invoice.

        Marks the invoice paid once payments and credits cover its total.

        Args:
            invoice_id: Invoice UUID
            data: Amount, method and optional reference/notes
            current_user: Caller

        Returns:
            PaymentOutcome with the payment, invoice and member

        Raises:
            NotFoundError: If the invoice does not exist
            ValidationError: If the invoice cannot accept the payment
        """
        invoice = await self.invoices.get_invoice(invoice_id, lock=True)
        payment = await self._pay_invoice(
            invoice,
            to_decimal(data.amount),
            data.payment_method,
            data.payment_reference,
            data.notes,
            current_user.get("sub"),
        )
        member = await self.transactions.lock_member(invoice.user_id)

        payments_recorded_total.labels(method=data.payment_method.value, kind="invoice").inc()
        logger.info(
            "payment_recorded",
            payment_id=str(payment.id),
            payment_number=payment.payment_number,
            invoice_id=str(invoice.id),
            amount=str(payment.amount),
            invoice_status=invoice.status.value,
        )
        return PaymentOutcome(payment=payment, invoice=invoice, member=member)

    async def record_credit_payment(self, data: CreditPaymentCreate, current_user: dict) -> PaymentOutcome:
        """
        Credit a payment to a member's account without an invoice.

        Not bounded by any invoice balance; the member balance may go negative.
        """
        member = await self.transactions.lock_member(data.user_id)
        payment = await self._insert_payment(
            member.id,
            to_decimal(data.amount),
            data.payment_method,
            payment_reference=data.payment_reference,
            notes=data.notes,
            created_by=current_user.get("sub"),
        )
        await self.transactions.post(
            member.id,
            TransactionType.CREDIT,
            payment.amount,
            f"Credit payment {payment.payment_number} via {data.payment_method.value}",
            reference_number=payment.payment_number,
            payment_id=payment.id,
        )

        payments_recorded_total.labels(method=data.payment_method.value, kind="credit").inc()
        logger.info(
            "credit_payment_recorded",
            payment_id=str(payment.id),
            payment_number=payment.payment_number,
            user_id=str(member.id),
            amount=str(payment.amount),
        )
        return PaymentOutcome(payment=payment, invoice=None, member=member)

    async def reverse_payment(
        self, payment_id: UUID, data: PaymentReversalRequest, current_user: dict
    ) -> ReversalOutcome:
        """
        Reverse a payment with a compensating negative entry.

        The original row is left untouched. With ``correct_amount`` a new
        payment for the right amount is recorded in the same transaction.

        Returns:
            ReversalOutcome including the net adjustment (correction - original)

        Raises:
            NotFoundError: If the payment does not exist
            ValidationError: If the payment is a reversal or was already reversed
        """
        original = await self.get_payment(payment_id, lock=True)
        if original.is_reversal:
            raise ValidationError("Reversal entries cannot be reversed", field="payment_id")

        existing = await self.db.execute(select(Payment.id).where(Payment.reversal_of_id == original.id))
        if existing.scalar_one_or_none() is not None:
            raise ValidationError("Payment has already been reversed", field="payment_id")

        invoice = None
        if original.invoice_id is not None:
            invoice = await self.invoices.get_invoice(original.invoice_id, lock=True)

        amount = to_decimal(original.amount)
        user = current_user.get("sub")
        reversal = await self._insert_payment(
            original.user_id,
            -amount,
            original.payment_method,
            invoice=invoice,
            payment_reference=original.payment_reference,
            notes=data.notes or f"Reversal of {original.payment_number}",
            created_by=user,
            reversal_of_id=original.id,
            reason=data.reason,
        )
        await self.transactions.post(
            original.user_id,
            TransactionType.DEBIT,
            amount,
            f"Reversal of payment {original.payment_number}",
            reference_number=reversal.payment_number,
            invoice_id=original.invoice_id,
            payment_id=reversal.id,
        )
        if invoice is not None:
            invoice.total_paid = round2(to_decimal(invoice.total_paid) - amount)
            await self.invoices.refresh_settlement(invoice)

        correction = None
        if data.correct_amount is not None:
            correct = to_decimal(data.correct_amount)
            if invoice is not None:
                correction = await self._pay_invoice(
                    invoice,
                    correct,
                    original.payment_method,
                    original.payment_reference,
                    f"Correction of {original.payment_number}",
                    user,
                    corrects_payment_id=original.id,
                )
            else:
                correction = await self._insert_payment(
                    original.user_id,
                    correct,
                    original.payment_method,
                    payment_reference=original.payment_reference,
                    notes=f"Correction of {original.payment_number}",
                    created_by=user,
                    corrects_payment_id=original.id,
                )
                await self.transactions.post(
                    original.user_id,
                    TransactionType.CREDIT,
                    correction.amount,
                    f"Credit payment {correction.payment_number} via {original.payment_method.value}",
                    reference_number=correction.payment_number,
                    payment_id=correction.id,
                )
            payments_recorded_total.labels(method=original.payment_method.value, kind="correction").inc()

        net_adjustment = round2((to_decimal(correction.amount) if correction else ZERO) - amount)
        await log_audit(
            self.db,
            entity_type="payment",
            entity_id=original.id,
            action="reverse",
            user_id=user,
            changes={
                "reason": data.reason,
                "reversal_id": str(reversal.id),
                "correction_id": str(correction.id) if correction else None,
                "net_adjustment": str(net_adjustment),
            },
        )
        member = await self.transactions.lock_member(original.user_id)

        payment_reversals_total.labels(corrected=str(correction is not None).lower()).inc()
        logger.info(
            "payment_reversed",
            payment_id=str(original.id),
            reversal_id=str(reversal.id),
            correction_id=str(correction.id) if correction else None,
            net_adjustment=str(net_adjustment),
            invoice_status=invoice.status.value if invoice else None,
        )
        return ReversalOutcome(
            reversal=reversal,
            correction=correction,
            net_adjustment=net_adjustment,
            invoice=invoice,
            member=member,
        )
