"""Account statement builder.

A statement is the merge of one typed stream per entry kind. Each stream is
registered against its ``StatementEntryType``; the module refuses to import if
any kind other than the synthesized opening balance lacks a stream, so a new
entry kind cannot be silently left out of the balance reconstruction.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger import lifecycle
from aeroledger.exceptions import NotFoundError
from aeroledger.models.credit_note import CreditNote, CreditNoteStatus
from aeroledger.models.invoice import Invoice
from aeroledger.models.member import Member
from aeroledger.models.payment import Payment
from aeroledger.schemas.statement import AccountStatement, StatementEntry, StatementEntryType
from aeroledger.utils.money import ZERO, round2, to_decimal

logger = structlog.get_logger(__name__)

# Same-day ordering: charges before the money that settles them.
KIND_ORDER = {
    StatementEntryType.OPENING_BALANCE: 0,
    StatementEntryType.INVOICE: 1,
    StatementEntryType.CREDIT_NOTE: 2,
    StatementEntryType.PAYMENT: 3,
}


@dataclass(frozen=True)
class RawEntry:
    """Statement entry before running balances are attached."""

    date: datetime
    entry_type: StatementEntryType
    entry_id: UUID | None
    reference: str
    description: str
    amount: Decimal

    @property
    def sort_key(self):
        return (self.date, KIND_ORDER[self.entry_type], self.reference)


StreamBuilder = Callable[["StatementService", UUID], Awaitable[list[RawEntry]]]
STREAMS: dict[StatementEntryType, StreamBuilder] = {}


def stream(entry_type: StatementEntryType):
    """Register a stream builder for one entry kind."""
    def decorator(func: StreamBuilder) -> StreamBuilder:
        STREAMS[entry_type] = func
        return func
    return decorator


def reconcile_backward(entries: list[RawEntry], current_balance: Decimal) -> tuple[Decimal, list[Decimal]]:
    """
    Walk from the newest entry to the oldest starting at ``current_balance``.

    Returns:
        (opening_balance, balances) with ``balances[i]`` the running balance
        after ``entries[i]``
    """
    running = to_decimal(current_balance)
    balances: list[Decimal] = []
    for entry in reversed(entries):
        balances.append(round2(running))
        running -= entry.amount
    balances.reverse()
    return round2(running), balances


class StatementService:
    """Builds a member's account statement."""

    def __init__(self, db: AsyncSession):
        """Initialize statement service with database session."""
        self.db = db

    @stream(StatementEntryType.INVOICE)
    async def _invoice_entries(self, user_id: UUID) -> list[RawEntry]:
        result = await self.db.execute(
            select(Invoice).where(
                Invoice.user_id == user_id,
                Invoice.deleted_at.is_(None),
                Invoice.status.in_(lifecycle.POSTED_STATUSES),
            )
        )
        entries = []
        for invoice in result.scalars().all():
            description = f"Invoice {invoice.invoice_number}"
            if invoice.reference:
                description = f"{description} - {invoice.reference}"
            entries.append(
                RawEntry(
                    date=invoice.issue_date or invoice.created_at,
                    entry_type=StatementEntryType.INVOICE,
                    entry_id=invoice.id,
                    reference=invoice.invoice_number,
                    description=description,
                    amount=to_decimal(invoice.total_amount),
                )
            )
        return entries

    @stream(StatementEntryType.PAYMENT)
    async def _payment_entries(self, user_id: UUID) -> list[RawEntry]:
        result = await self.db.execute(
            select(Payment, Invoice.invoice_number)
            .outerjoin(Invoice, Invoice.id == Payment.invoice_id)
            .where(Payment.user_id == user_id)
        )
        entries = []
        for payment, invoice_number in result.all():
            if payment.notes:
                description = payment.notes
            elif invoice_number:
                description = f"Payment for invoice {invoice_number}"
            else:
                description = f"Credit payment via {payment.payment_method.value}"
            entries.append(
                RawEntry(
                    date=payment.paid_at,
                    entry_type=StatementEntryType.PAYMENT,
                    entry_id=payment.id,
                    reference=payment.payment_number,
                    description=description,
                    amount=-to_decimal(payment.amount),
                )
            )
        return entries

    @stream(StatementEntryType.CREDIT_NOTE)
    async def _credit_note_entries(self, user_id: UUID) -> list[RawEntry]:
        result = await self.db.execute(
            select(CreditNote).where(
                CreditNote.user_id == user_id,
                CreditNote.status == CreditNoteStatus.APPLIED,
                CreditNote.deleted_at.is_(None),
            )
        )
        return [
            RawEntry(
                date=credit_note.applied_at or credit_note.created_at,
                entry_type=StatementEntryType.CREDIT_NOTE,
                entry_id=credit_note.id,
                reference=credit_note.credit_note_number,
                description=credit_note.reason,
                amount=-to_decimal(credit_note.total_amount),
            )
            for credit_note in result.scalars().all()
        ]

    async def build_statement(self, user_id: UUID) -> AccountStatement:
        """
        Build the statement for a member.

        Entries from every stream are merged in date order; running balances
        are reconstructed backward from the stored ``account_balance`` and the
        remainder becomes the opening balance (omitted when zero).

        Raises:
            NotFoundError: If the member does not exist
        """
        result = await self.db.execute(select(Member).where(Member.id == user_id))
        member = result.scalar_one_or_none()
        if not member:
            raise NotFoundError("Member", user_id)

        raw: list[RawEntry] = []
        for builder in STREAMS.values():
            raw.extend(await builder(self, user_id))
        raw.sort(key=lambda entry: entry.sort_key)

        closing = round2(member.account_balance)
        opening, balances = reconcile_backward(raw, closing)

        entries: list[StatementEntry] = []
        if raw and opening != ZERO:
            entries.append(
                StatementEntry(
                    date=raw[0].date - timedelta(days=1),
                    entry_type=StatementEntryType.OPENING_BALANCE,
                    reference="",
                    description="Opening Balance",
                    amount=opening,
                    balance=opening,
                )
            )
        for entry, balance in zip(raw, balances):
            entries.append(
                StatementEntry(
                    date=entry.date,
                    entry_type=entry.entry_type,
                    entry_id=entry.entry_id,
                    reference=entry.reference,
                    description=entry.description,
                    amount=round2(entry.amount),
                    balance=balance,
                )
            )

        logger.info(
            "account_statement_built",
            user_id=str(user_id),
            entry_count=len(raw),
            opening_balance=str(opening),
            closing_balance=str(closing),
        )
        return AccountStatement(
            user_id=member.id,
            member_name=member.full_name,
            generated_at=datetime.utcnow(),
            opening_balance=opening,
            closing_balance=closing,
            entries=entries,
        )


_missing = set(StatementEntryType) - {StatementEntryType.OPENING_BALANCE} - set(STREAMS)
if _missing:
    raise RuntimeError(f"Statement entry kinds without a stream: {sorted(kind.value for kind in _missing)}")
