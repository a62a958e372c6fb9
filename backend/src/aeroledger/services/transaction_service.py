"""Account ledger transactions and the member's stored balance."""
from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.exceptions import NotFoundError
from aeroledger.models.invoice import Invoice
from aeroledger.models.member import Member
from aeroledger.models.transaction import Transaction, TransactionStatus, TransactionType
from aeroledger.utils.money import round2, to_decimal

logger = structlog.get_logger(__name__)


class TransactionService:
    """Posts ledger transactions and keeps ``Member.account_balance`` in step."""

    def __init__(self, db: AsyncSession):
        """Initialize transaction service with database session."""
        self.db = db

    async def lock_member(self, user_id: UUID) -> Member:
        """Load a member row FOR UPDATE."""
        result = await self.db.execute(select(Member).where(Member.id == user_id).with_for_update())
        member = result.scalar_one_or_none()
        if not member:
            raise NotFoundError("Member", user_id)
        return member

    async def adjust_balance(self, user_id: UUID, delta: Decimal) -> Member:
        """Move the member's stored balance by ``delta``."""
        member = await self.lock_member(user_id)
        member.account_balance = round2(to_decimal(member.account_balance) + to_decimal(delta))
        return member

    async def post(
        self,
        user_id: UUID,
        type: TransactionType,
        amount: Decimal,
        description: str,
        reference_number: str | None = None,
        invoice_id: UUID | None = None,
        payment_id: UUID | None = None,
        credit_note_id: UUID | None = None,
        reversal_of_id: UUID | None = None,
    ) -> Transaction:
        """
        Post a transaction and apply it to the member balance.

        Args:
            user_id: Member UUID
            type: Debit raises the balance, credit lowers it
            amount: Positive amount
            description: Ledger description

        Returns:
            Created transaction
        """
        transaction = Transaction(
            user_id=user_id,
            type=type,
            status=TransactionStatus.COMPLETED,
            amount=round2(amount),
            description=description,
            reference_number=reference_number,
            invoice_id=invoice_id,
            payment_id=payment_id,
            credit_note_id=credit_note_id,
            reversal_of_id=reversal_of_id,
        )
        self.db.add(transaction)
        await self.adjust_balance(user_id, transaction.signed_amount)
        await self.db.flush()

        logger.info(
            "transaction_posted",
            transaction_id=str(transaction.id),
            user_id=str(user_id),
            type=type.value,
            amount=str(transaction.amount),
        )
        return transaction

    async def invoice_debit(self, invoice_id: UUID) -> Transaction | None:
        """The live debit posted for an invoice, if any."""
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.invoice_id == invoice_id,
                Transaction.type == TransactionType.DEBIT,
                Transaction.status == TransactionStatus.COMPLETED,
                Transaction.reversal_of_id.is_(None),
            )
            .with_for_update()
        )
        return result.scalars().first()

    async def post_invoice_debit(self, invoice: Invoice) -> Transaction:
        """Post the invoice debit, or resynchronise it if already posted."""
        debit = await self.invoice_debit(invoice.id)
        if debit is not None:
            await self.sync_invoice_debit(invoice)
            return debit
        return await self.post(
            invoice.user_id,
            TransactionType.DEBIT,
            to_decimal(invoice.total_amount),
            f"Invoice {invoice.invoice_number}",
            reference_number=invoice.invoice_number,
            invoice_id=invoice.id,
        )

    async def sync_invoice_debit(self, invoice: Invoice) -> Transaction | None:
        """
        Bring the invoice debit in line with the invoice total and owner.

        The member balance moves by the difference only.
        """
        debit = await self.invoice_debit(invoice.id)
        if debit is None:
            return None

        total = round2(invoice.total_amount)
        if debit.user_id != invoice.user_id:
            await self.adjust_balance(debit.user_id, -to_decimal(debit.amount))
            await self.adjust_balance(invoice.user_id, total)
            debit.user_id = invoice.user_id
            debit.amount = total
        elif to_decimal(debit.amount) != total:
            delta = total - to_decimal(debit.amount)
            await self.adjust_balance(invoice.user_id, delta)
            debit.amount = total
        else:
            return debit

        await self.db.flush()
        logger.info(
            "invoice_debit_synced",
            invoice_id=str(invoice.id),
            transaction_id=str(debit.id),
            amount=str(total),
        )
        return debit

    async def reverse_invoice_debit(self, invoice: Invoice) -> Transaction | None:
        """Offset the invoice debit with a compensating credit and mark it reversed."""
        debit = await self.invoice_debit(invoice.id)
        if debit is None:
            return None
        debit.status = TransactionStatus.REVERSED
        return await self.post(
            debit.user_id,
            TransactionType.CREDIT,
            to_decimal(debit.amount),
            f"Reversal of invoice {invoice.invoice_number}",
            reference_number=invoice.invoice_number,
            invoice_id=invoice.id,
            reversal_of_id=debit.id,
        )
