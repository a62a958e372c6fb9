"""Invoice lifecycle: creation, status transitions and status-gated edits."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger import lifecycle
from aeroledger.auth.rbac import ensure_owner_or_privileged, is_privileged
from aeroledger.config import settings
from aeroledger.exceptions import AuthorizationError, ImmutabilityError, NotFoundError, ValidationError
from aeroledger.metrics import invoice_status_transitions_total, invoices_created_total
from aeroledger.models.invoice import Invoice, InvoiceStatus
from aeroledger.models.member import Member
from aeroledger.schemas.invoice import InvoiceCreate, InvoiceUpdate
from aeroledger.services.invoice_item_service import PAID_REMEDIATION, InvoiceItemService
from aeroledger.services.rate_service import RateService
from aeroledger.services.transaction_service import TransactionService
from aeroledger.utils.audit import diff_changes, log_audit
from aeroledger.utils.money import ZERO, round2, to_decimal

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DeletedInvoice:
    """Outcome of a draft soft delete."""

    invoice: Invoice
    items_deleted: int


class InvoiceService:
    """Service layer for invoice lifecycle operations."""

    def __init__(self, db: AsyncSession):
        """Initialize invoice service with database session."""
        self.db = db
        self.items = InvoiceItemService(db)
        self.rates = RateService(db)
        self.transactions = TransactionService(db)

    async def generate_invoice_number(self) -> str:
        """
        Generate sequential invoice number.

        Format: {prefix}-{sequential_number} (e.g., INV-000001). Soft-deleted
        drafts keep their number, so numbers are never reused.
        """
        result = await self.db.execute(select(func.count()).select_from(Invoice))
        count = result.scalar() or 0
        return f"{settings.invoice_prefix}-{count + 1:06d}"

    async def get_invoice(self, invoice_id: UUID, lock: bool = False) -> Invoice:
        """
        Get a non-deleted invoice.

        Args:
            invoice_id: Invoice UUID
            lock: Take a row lock for the rest of the transaction

        Raises:
            NotFoundError: If the invoice does not exist or was deleted
        """
        query = select(Invoice).where(Invoice.id == invoice_id, Invoice.deleted_at.is_(None))
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def get_invoice_for_booking(self, booking_id: UUID, lock: bool = False) -> Invoice | None:
        """The live invoice attached to a booking, if any."""
        query = (
            select(Invoice)
            .where(Invoice.booking_id == booking_id, Invoice.deleted_at.is_(None))
            .order_by(Invoice.created_at)
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalars().first()

    async def list_invoices(
        self,
        user_id: UUID | None = None,
        status: InvoiceStatus | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> tuple[list[Invoice], int]:
        """
        List invoices with pagination.

        Returns:
            Tuple of (invoices, total_count), newest first
        """
        query = select(Invoice).where(Invoice.deleted_at.is_(None))
        if user_id:
            query = query.where(Invoice.user_id == user_id)
        if status:
            query = query.where(Invoice.status == status)

        count_result = await self.db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        query = query.order_by(Invoice.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def _ensure_member(self, user_id: UUID) -> Member:
        result = await self.db.execute(select(Member).where(Member.id == user_id))
        member = result.scalar_one_or_none()
        if not member:
            raise NotFoundError("Member", user_id)
        return member

    async def create_invoice(self, data: InvoiceCreate, source: str = "manual") -> Invoice:
        """
        Create a draft invoice.

        The tax rate is snapshotted from the organization default unless given;
        the due date defaults to ``default_invoice_due_days`` after issue.

        Args:
            data: Invoice header and optional items
            source: Metrics label (manual, flight, membership)

        Returns:
            Created draft invoice with totals recomputed

        Raises:
            NotFoundError: If the member does not exist
        """
        await self._ensure_member(data.user_id)

        tax_rate = data.tax_rate if data.tax_rate is not None else await self.rates.organization_tax_rate()
        issue_date = data.issue_date or datetime.utcnow()
        due_date = data.due_date or issue_date + timedelta(days=settings.default_invoice_due_days)

        invoice = Invoice(
            user_id=data.user_id,
            booking_id=data.booking_id,
            invoice_number=await self.generate_invoice_number(),
            status=InvoiceStatus.DRAFT,
            reference=data.reference,
            notes=data.notes,
            issue_date=issue_date,
            due_date=due_date,
            tax_rate=to_decimal(tax_rate),
            subtotal=ZERO,
            tax_total=ZERO,
            total_amount=ZERO,
            total_paid=ZERO,
            total_credited=ZERO,
            balance_due=ZERO,
        )
        self.db.add(invoice)
        await self.db.flush()

        for item in data.items:
            await self.items.create_item(invoice.id, item)

        invoices_created_total.labels(source=source).inc()
        logger.info(
            "invoice_created",
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            user_id=str(invoice.user_id),
            tax_rate=str(invoice.tax_rate),
            source=source,
        )
        return invoice

    async def transition(
        self,
        invoice: Invoice,
        target: InvoiceStatus,
        current_user: dict | None = None,
        system: bool = False,
    ) -> Invoice:
        """
        Move an invoice to ``target`` and apply the ledger side effects.

        - leaving draft (or reopening a cancelled invoice) posts the debit
        - cancelling reverses the debit
        - paid stamps ``paid_date``; leaving paid clears it

        Args:
            invoice: Locked invoice
            target: Requested status
            current_user: Caller, for logging
            system: Allow ledger-only transitions (reversal downgrade, refund)

        Raises:
            ImmutabilityError: If the invoice is paid or refunded
            ValidationError: If the transition is not allowed
        """
        current = invoice.status
        if current == target:
            return invoice

        if not lifecycle.can_transition(current, target, system=system):
            if lifecycle.is_immutable(current):
                raise ImmutabilityError(
                    f"Invoice {invoice.invoice_number} is {current.value} and cannot be modified",
                    remediation=PAID_REMEDIATION,
                    invoice_number=invoice.invoice_number,
                )
            raise ValidationError(
                f"Invoice {invoice.invoice_number} cannot move from {current.value} to {target.value}",
                field="status",
            )

        if target == InvoiceStatus.PAID and not system and not lifecycle.is_settled(invoice):
            raise ValidationError(
                f"Invoice {invoice.invoice_number} has an outstanding balance of {invoice.balance_due}; record a payment instead",
                field="status",
            )
        if target == InvoiceStatus.CANCELLED and to_decimal(invoice.total_paid) > 0:
            raise ValidationError(
                f"Invoice {invoice.invoice_number} has payments; reverse them before cancelling",
                field="status",
            )
        if target == InvoiceStatus.CANCELLED and to_decimal(invoice.total_credited) > 0:
            raise ValidationError(
                f"Invoice {invoice.invoice_number} has applied credit notes and cannot be cancelled",
                field="status",
            )

        now = datetime.utcnow()
        if current == InvoiceStatus.DRAFT:
            invoice.issue_date = invoice.issue_date or now
            invoice.due_date = invoice.due_date or invoice.issue_date + timedelta(days=settings.default_invoice_due_days)

        lifecycle.set_status(invoice, target, now)

        if not lifecycle.is_posted(current) and lifecycle.is_posted(target):
            await self.transactions.post_invoice_debit(invoice)
        elif lifecycle.is_posted(current) and target == InvoiceStatus.CANCELLED:
            await self.transactions.reverse_invoice_debit(invoice)

        await self.db.flush()
        invoice_status_transitions_total.labels(from_status=current.value, to_status=target.value).inc()
        logger.info(
            "invoice_status_changed",
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            from_status=current.value,
            to_status=target.value,
            system=system,
            user_id=(current_user or {}).get("sub"),
        )
        return invoice

    async def approve(self, invoice: Invoice, current_user: dict | None = None) -> Invoice:
        """Move a draft to pending, posting it to the member's account."""
        return await self.transition(invoice, InvoiceStatus.PENDING, current_user=current_user)

    async def refresh_settlement(self, invoice: Invoice) -> Invoice:
        """
        Re-derive ``balance_due`` and the payment-driven status.

        Called after payments, reversals and credit note applications:
        pending/overdue invoices become paid once settled, paid invoices fall
        back to pending/overdue when no longer settled, and paid invoices fully
        covered by credit notes become refunded.
        """
        total = to_decimal(invoice.total_amount)
        invoice.balance_due = round2(total - to_decimal(invoice.total_paid) - to_decimal(invoice.total_credited))

        target = lifecycle.settlement_status(invoice)
        if target != invoice.status:
            await self.transition(invoice, target, system=True)

        await self.db.flush()
        return invoice

    async def update_invoice(self, invoice_id: UUID, data: InvoiceUpdate, current_user: dict) -> Invoice:
        """
        Apply a header update within the status allowlist.

        Status changes are routed through :meth:`transition` after the other
        fields are written. Privileged edits outside the non-privileged
        allowlist on pending/overdue invoices are recorded in the audit log.

        Raises:
            ImmutabilityError: Paid/refunded invoice, or field frozen in this status
            AuthorizationError: Field needs a privileged caller, or not the owner
        """
        invoice = await self.get_invoice(invoice_id, lock=True)
        if lifecycle.is_immutable(invoice.status):
            raise ImmutabilityError(
                f"Invoice {invoice.invoice_number} is {invoice.status.value} and cannot be modified",
                remediation=PAID_REMEDIATION,
                invoice_number=invoice.invoice_number,
            )
        ensure_owner_or_privileged(current_user, invoice.user_id)

        privileged = is_privileged(current_user)
        changes = data.model_dump(exclude_unset=True)
        rejected = set(changes) - lifecycle.allowed_fields(invoice.status, privileged)
        if rejected:
            fields = ", ".join(sorted(rejected))
            if rejected <= lifecycle.allowed_fields(invoice.status, True):
                raise AuthorizationError(f"Changing {fields} on a {invoice.status.value} invoice requires a privileged role")
            raise ImmutabilityError(
                f"{fields} cannot be changed while invoice {invoice.invoice_number} is {invoice.status.value}",
                invoice_number=invoice.invoice_number,
            )

        target_status = changes.pop("status", None)
        if "user_id" in changes:
            if changes["user_id"] is None:
                raise ValidationError("user_id cannot be cleared", field="user_id")
            await self._ensure_member(changes["user_id"])
        if "tax_rate" in changes and changes["tax_rate"] is None:
            raise ValidationError("tax_rate cannot be cleared", field="tax_rate")

        before = {field: getattr(invoice, field) for field in changes}
        for field, value in changes.items():
            setattr(invoice, field, value)
        changed = diff_changes(before, changes)

        if "tax_rate" in changed:
            await self.items.reprice_items(invoice)
        elif "user_id" in changed and lifecycle.is_posted(invoice.status):
            await self.transactions.sync_invoice_debit(invoice)

        policy = lifecycle.FIELD_POLICIES[invoice.status]
        overridden = {field: diff for field, diff in changed.items() if field not in policy.non_privileged}
        if policy.override_logged and overridden:
            logger.warning(
                "invoice_override_edit",
                invoice_id=str(invoice.id),
                invoice_number=invoice.invoice_number,
                status=invoice.status.value,
                fields=sorted(overridden),
                user_id=current_user.get("sub"),
            )
            await log_audit(
                self.db,
                entity_type="invoice",
                entity_id=invoice.id,
                action="override_update",
                user_id=current_user.get("sub"),
                changes=overridden,
            )

        if target_status is not None:
            await self.transition(invoice, target_status, current_user=current_user)

        await self.db.flush()
        logger.info("invoice_updated", invoice_id=str(invoice.id), fields=sorted(changed))
        return invoice

    async def soft_delete_invoice(self, invoice_id: UUID, current_user: dict) -> DeletedInvoice:
        """
        Soft-delete a draft invoice and remove its items.

        Raises:
            ImmutabilityError: If the invoice is no longer a draft
        """
        invoice = await self.get_invoice(invoice_id, lock=True)
        if invoice.status != InvoiceStatus.DRAFT:
            raise ImmutabilityError(
                f"Invoice {invoice.invoice_number} is {invoice.status.value}; only draft invoices can be deleted",
                remediation="Cancel the invoice or issue a credit note instead.",
                invoice_number=invoice.invoice_number,
            )
        ensure_owner_or_privileged(current_user, invoice.user_id)

        items = await self.items.list_items(invoice.id)
        for item in items:
            await self.db.delete(item)

        invoice.deleted_at = datetime.utcnow()
        invoice.deleted_by = current_user.get("sub")
        invoice.subtotal = ZERO
        invoice.tax_total = ZERO
        invoice.total_amount = ZERO
        invoice.balance_due = ZERO
        await self.db.flush()

        logger.info(
            "invoice_soft_deleted",
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            items_deleted=len(items),
            user_id=current_user.get("sub"),
        )
        return DeletedInvoice(invoice=invoice, items_deleted=len(items))
