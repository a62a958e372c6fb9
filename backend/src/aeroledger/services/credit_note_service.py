"""Credit notes: corrections against approved invoices."""
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.config import settings
from aeroledger.exceptions import ImmutabilityError, NotFoundError, ValidationError
from aeroledger.metrics import credit_notes_applied_total
from aeroledger.models.credit_note import CreditNote, CreditNoteItem, CreditNoteStatus
from aeroledger.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from aeroledger.models.member import Member
from aeroledger.models.transaction import TransactionType
from aeroledger.schemas.credit_note import CreditNoteCreate, CreditNoteUpdate
from aeroledger.services.invoice_service import InvoiceService
from aeroledger.services.rate_service import RateService
from aeroledger.services.transaction_service import TransactionService
from aeroledger.utils.audit import log_audit
from aeroledger.utils.money import LineAmounts, Totals, round2, to_decimal

logger = structlog.get_logger(__name__)


@dataclass
class AppliedCreditNote:
    """Outcome of applying a credit note."""

    credit_note: CreditNote
    invoice: Invoice
    member: Member


class CreditNoteService:
    """Service layer for credit note operations."""

    def __init__(self, db: AsyncSession):
        """Initialize credit note service with database session."""
        self.db = db
        self.invoices = InvoiceService(db)
        self.rates = RateService(db)
        self.transactions = TransactionService(db)

    async def generate_credit_note_number(self) -> str:
        """Sequential credit note number, e.g. CN-000007."""
        result = await self.db.execute(select(func.count()).select_from(CreditNote))
        count = result.scalar() or 0
        return f"{settings.credit_note_prefix}-{count + 1:06d}"

    async def get_credit_note(self, credit_note_id: UUID, lock: bool = False) -> CreditNote:
        """Get a non-deleted credit note or raise NotFoundError."""
        query = select(CreditNote).where(CreditNote.id == credit_note_id, CreditNote.deleted_at.is_(None))
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        credit_note = result.scalar_one_or_none()
        if not credit_note:
            raise NotFoundError("Credit note", credit_note_id)
        return credit_note

    async def list_items(self, credit_note_id: UUID) -> list[CreditNoteItem]:
        result = await self.db.execute(
            select(CreditNoteItem)
            .where(CreditNoteItem.credit_note_id == credit_note_id)
            .order_by(CreditNoteItem.created_at, CreditNoteItem.description)
        )
        return list(result.scalars().all())

    async def list_for_invoice(self, invoice_id: UUID) -> list[CreditNote]:
        """Credit notes raised against an invoice, oldest first."""
        result = await self.db.execute(
            select(CreditNote)
            .where(CreditNote.original_invoice_id == invoice_id, CreditNote.deleted_at.is_(None))
            .order_by(CreditNote.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    def _creditable(invoice: Invoice):
        return to_decimal(invoice.total_amount) - to_decimal(invoice.total_credited)

    async def create_credit_note(
        self, invoice_id: UUID, data: CreditNoteCreate, current_user: dict
    ) -> tuple[CreditNote, list[CreditNoteItem]]:
        """
        Create a draft credit note against an approved invoice.

        Items are priced with the same rules as invoice items; an item that
        references an invoice item inherits its chargeable's tax exemption.

        Raises:
            NotFoundError: If the invoice or a referenced invoice item is missing
            ValidationError: Draft/cancelled invoice, member mismatch or over-credit
        """
        invoice = await self.invoices.get_invoice(invoice_id, lock=True)
        if invoice.status == InvoiceStatus.DRAFT:
            raise ValidationError(
                "Cannot create credit note for draft invoice. Edit the invoice directly instead.",
                field="invoice_id",
            )
        if invoice.status == InvoiceStatus.CANCELLED:
            raise ValidationError(
                f"Cannot create credit note for cancelled invoice {invoice.invoice_number}",
                field="invoice_id",
            )
        if data.user_id != invoice.user_id:
            raise ValidationError("Credit note member must match the invoice member", field="user_id")

        credit_note = CreditNote(
            credit_note_number=await self.generate_credit_note_number(),
            original_invoice_id=invoice.id,
            user_id=invoice.user_id,
            status=CreditNoteStatus.DRAFT,
            reason=data.reason,
            notes=data.notes,
            created_by=current_user.get("sub"),
        )
        self.db.add(credit_note)
        await self.db.flush()

        items = []
        for line in data.items:
            chargeable_id = None
            if line.original_invoice_item_id is not None:
                result = await self.db.execute(
                    select(InvoiceItem).where(
                        InvoiceItem.id == line.original_invoice_item_id,
                        InvoiceItem.invoice_id == invoice.id,
                    )
                )
                original_item = result.scalar_one_or_none()
                if original_item is None:
                    raise NotFoundError("Invoice item", line.original_invoice_item_id)
                chargeable_id = original_item.chargeable_id

            resolution = await self.rates.effective_tax_rate(
                explicit_rate=line.tax_rate,
                chargeable_id=chargeable_id,
                invoice_rate=invoice.tax_rate,
            )
            amounts = LineAmounts.of(line.quantity, line.unit_price, resolution.rate)
            item = CreditNoteItem(
                credit_note_id=credit_note.id,
                original_invoice_item_id=line.original_invoice_item_id,
                description=line.description,
                quantity=amounts.quantity,
                unit_price=amounts.unit_price,
                tax_rate=amounts.tax_rate,
                **amounts.as_dict(),
            )
            self.db.add(item)
            items.append(item)

        totals = Totals.from_lines(items)
        if totals.total_amount > self._creditable(invoice):
            raise ValidationError(
                f"Credit note total {totals.total_amount} exceeds the uncredited amount "
                f"{round2(self._creditable(invoice))} of invoice {invoice.invoice_number}",
                field="items",
            )
        credit_note.subtotal = totals.subtotal
        credit_note.tax_total = totals.tax_total
        credit_note.total_amount = totals.total_amount
        await self.db.flush()

        logger.info(
            "credit_note_created",
            credit_note_id=str(credit_note.id),
            credit_note_number=credit_note.credit_note_number,
            invoice_id=str(invoice.id),
            total_amount=str(credit_note.total_amount),
        )
        return credit_note, items

    def _ensure_draft(self, credit_note: CreditNote) -> None:
        if credit_note.status != CreditNoteStatus.DRAFT:
            raise ImmutabilityError(
                f"Credit note {credit_note.credit_note_number} has already been applied",
                credit_note_number=credit_note.credit_note_number,
            )

    async def update_credit_note(self, credit_note_id: UUID, data: CreditNoteUpdate) -> CreditNote:
        """Change reason/notes of a draft credit note."""
        credit_note = await self.get_credit_note(credit_note_id, lock=True)
        self._ensure_draft(credit_note)

        changes = data.model_dump(exclude_unset=True)
        if changes.get("reason") is not None:
            credit_note.reason = changes["reason"]
        if "notes" in changes:
            credit_note.notes = changes["notes"]
        await self.db.flush()
        return credit_note

    async def delete_credit_note(self, credit_note_id: UUID, current_user: dict) -> CreditNote:
        """Soft-delete a draft credit note."""
        credit_note = await self.get_credit_note(credit_note_id, lock=True)
        self._ensure_draft(credit_note)
        credit_note.deleted_at = datetime.utcnow()
        await self.db.flush()
        logger.info(
            "credit_note_deleted",
            credit_note_id=str(credit_note.id),
            user_id=current_user.get("sub"),
        )
        return credit_note

    async def apply_credit_note(self, credit_note_id: UUID, current_user: dict) -> AppliedCreditNote:
        """
        Apply a draft credit note.

        In one transaction: mark it applied, add its total to the invoice's
        ``total_credited`` (lowering ``balance_due``), and post a credit to the
        member's account.

        Raises:
            ImmutabilityError: If the credit note was already applied
            ValidationError: If the invoice was cancelled or no longer has enough uncredited amount
        """
        credit_note = await self.get_credit_note(credit_note_id, lock=True)
        self._ensure_draft(credit_note)

        invoice = await self.invoices.get_invoice(credit_note.original_invoice_id, lock=True)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise ValidationError(
                f"Cannot apply credit note {credit_note.credit_note_number} to cancelled invoice {invoice.invoice_number}",
                field="credit_note_id",
            )
        total = to_decimal(credit_note.total_amount)
        if total > self._creditable(invoice):
            raise ValidationError(
                f"Credit note {credit_note.credit_note_number} exceeds the uncredited amount of invoice {invoice.invoice_number}",
                field="credit_note_id",
            )

        user = current_user.get("sub")
        credit_note.status = CreditNoteStatus.APPLIED
        credit_note.applied_at = datetime.utcnow()
        credit_note.applied_by = user

        invoice.total_credited = round2(to_decimal(invoice.total_credited) + total)
        await self.transactions.post(
            credit_note.user_id,
            TransactionType.CREDIT,
            total,
            f"Credit note {credit_note.credit_note_number} for invoice {invoice.invoice_number}",
            reference_number=credit_note.credit_note_number,
            invoice_id=invoice.id,
            credit_note_id=credit_note.id,
        )
        await self.invoices.refresh_settlement(invoice)
        await log_audit(
            self.db,
            entity_type="credit_note",
            entity_id=credit_note.id,
            action="apply",
            user_id=user,
            changes={"total_credited": {"old": str(invoice.total_credited - total), "new": str(invoice.total_credited)}},
        )
        member = await self.transactions.lock_member(credit_note.user_id)

        credit_notes_applied_total.inc()
        logger.info(
            "credit_note_applied",
            credit_note_id=str(credit_note.id),
            credit_note_number=credit_note.credit_note_number,
            invoice_id=str(invoice.id),
            amount=str(total),
            invoice_status=invoice.status.value,
        )
        return AppliedCreditNote(credit_note=credit_note, invoice=invoice, member=member)
