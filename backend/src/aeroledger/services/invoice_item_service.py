"""Invoice item ledger: persists items and keeps invoice totals exact."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger import lifecycle
from aeroledger.exceptions import ConsistencyError, ImmutabilityError, NotFoundError
from aeroledger.metrics import invoice_items_written_total, invoice_status_transitions_total
from aeroledger.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from aeroledger.schemas.invoice import InvoiceItemCreate, InvoiceItemUpdate
from aeroledger.services.rate_service import RateService
from aeroledger.services.transaction_service import TransactionService
from aeroledger.utils.money import LineAmounts, Totals, round2, to_decimal

logger = structlog.get_logger(__name__)

PAID_REMEDIATION = "Cannot modify a paid invoice. Issue a credit note instead."


def ensure_items_mutable(invoice: Invoice) -> None:
    """
    Refuse structural changes to paid, refunded or cancelled invoices.

    Raises:
        ImmutabilityError: If the invoice status is terminal
    """
    if lifecycle.is_immutable(invoice.status):
        raise ImmutabilityError(
            f"Invoice {invoice.invoice_number} is {invoice.status.value} and cannot be modified",
            remediation=PAID_REMEDIATION,
            invoice_number=invoice.invoice_number,
        )
    if invoice.status == InvoiceStatus.CANCELLED:
        raise ImmutabilityError(
            f"Invoice {invoice.invoice_number} is cancelled; reopen it before changing items",
            invoice_number=invoice.invoice_number,
        )


@dataclass(frozen=True)
class ItemLine:
    """Desired item state used by bulk upserts."""

    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal | None = None
    chargeable_id: UUID | None = None


@dataclass
class UpsertResult:
    """Counts from a bulk upsert."""

    created: int = 0
    updated: int = 0
    deleted: int = 0


class InvoiceItemService:
    """Writes invoice items and recomputes the parent invoice on every mutation."""

    def __init__(self, db: AsyncSession):
        """Initialize item ledger with database session."""
        self.db = db
        self.rates = RateService(db)
        self.transactions = TransactionService(db)

    async def _lock_invoice(self, invoice_id: UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice).where(Invoice.id == invoice_id, Invoice.deleted_at.is_(None)).with_for_update()
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def get_item(self, item_id: UUID) -> InvoiceItem:
        """Get an item by ID or raise NotFoundError."""
        result = await self.db.execute(select(InvoiceItem).where(InvoiceItem.id == item_id))
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Invoice item", item_id)
        return item

    async def list_items(self, invoice_id: UUID) -> list[InvoiceItem]:
        """Items of an invoice in creation order."""
        result = await self.db.execute(
            select(InvoiceItem)
            .where(InvoiceItem.invoice_id == invoice_id)
            .order_by(InvoiceItem.created_at, InvoiceItem.description)
        )
        return list(result.scalars().all())

    async def _price(
        self,
        item: InvoiceItem,
        invoice: Invoice,
        explicit_tax_rate: Decimal | None,
        resolve_tax: bool = True,
    ) -> None:
        """Write the derived money fields onto ``item``."""
        if resolve_tax:
            resolution = await self.rates.effective_tax_rate(
                explicit_rate=explicit_tax_rate,
                chargeable_id=item.chargeable_id,
                invoice_rate=invoice.tax_rate,
            )
            item.tax_rate = resolution.rate
            logger.debug(
                "item_tax_resolved",
                invoice_id=str(invoice.id),
                description=item.description,
                tax_rate=str(resolution.rate),
                source=resolution.source.value,
            )
        amounts = LineAmounts.of(item.quantity, item.unit_price, item.tax_rate)
        for name, value in amounts.as_dict().items():
            setattr(item, name, value)

    async def create_item(self, invoice_id: UUID, data: InvoiceItemCreate) -> tuple[InvoiceItem, Invoice]:
        """
        Add an item to an invoice.

        Args:
            invoice_id: Parent invoice UUID
            data: Item input; money fields are always derived

        Returns:
            Created item and the recomputed invoice

        Raises:
            NotFoundError: If the invoice does not exist
            ImmutabilityError: If the invoice no longer accepts item changes
        """
        invoice = await self._lock_invoice(invoice_id)
        ensure_items_mutable(invoice)

        item = InvoiceItem(
            invoice_id=invoice.id,
            chargeable_id=data.chargeable_id,
            description=data.description,
            quantity=to_decimal(data.quantity),
            unit_price=to_decimal(data.unit_price),
            notes=data.notes,
        )
        await self._price(item, invoice, data.tax_rate)
        self.db.add(item)
        await self.db.flush()

        await self.recalculate_totals(invoice)
        invoice_items_written_total.labels(operation="create").inc()
        logger.info("invoice_item_created", invoice_id=str(invoice.id), item_id=str(item.id), line_total=str(item.line_total))
        return item, invoice

    async def update_item(self, item_id: UUID, data: InvoiceItemUpdate) -> tuple[InvoiceItem, Invoice]:
        """
        Update an item and recompute its invoice.

        The tax rate is re-resolved when the caller sends ``tax_rate`` or
        changes ``chargeable_id``; otherwise the stored rate is kept.
        """
        item = await self.get_item(item_id)
        invoice = await self._lock_invoice(item.invoice_id)
        ensure_items_mutable(invoice)

        changes = data.model_dump(exclude_unset=True)
        for field in ("description", "quantity", "unit_price", "chargeable_id", "notes"):
            if field in changes and (changes[field] is not None or field in ("chargeable_id", "notes")):
                setattr(item, field, changes[field])

        resolve_tax = "tax_rate" in changes or "chargeable_id" in changes
        await self._price(item, invoice, changes.get("tax_rate"), resolve_tax=resolve_tax)
        await self.db.flush()

        await self.recalculate_totals(invoice)
        invoice_items_written_total.labels(operation="update").inc()
        logger.info("invoice_item_updated", invoice_id=str(invoice.id), item_id=str(item.id), fields=sorted(changes))
        return item, invoice

    async def delete_item(self, item_id: UUID) -> Invoice:
        """
        Remove an item; the parent invoice is resolved first so it can be resynchronised.

        Returns:
            The recomputed invoice
        """
        item = await self.get_item(item_id)
        invoice_id = item.invoice_id
        invoice = await self._lock_invoice(invoice_id)
        ensure_items_mutable(invoice)

        await self.db.delete(item)
        await self.db.flush()

        await self.recalculate_totals(invoice)
        invoice_items_written_total.labels(operation="delete").inc()
        logger.info("invoice_item_deleted", invoice_id=str(invoice_id), item_id=str(item_id))
        return invoice

    async def upsert_items(
        self,
        invoice: Invoice,
        lines: Iterable[ItemLine],
        remove_missing: bool = True,
    ) -> UpsertResult:
        """
        Make the invoice's items match ``lines``, keyed by description.

        Existing items with a matching description are updated in place, new
        descriptions are inserted and, with ``remove_missing``, items whose
        description is absent are deleted. Running it twice with the same
        lines leaves one item per description.

        The caller must hold the invoice row lock.
        """
        ensure_items_mutable(invoice)
        result = UpsertResult()

        existing: dict[str, InvoiceItem] = {}
        duplicates: list[InvoiceItem] = []
        for item in await self.list_items(invoice.id):
            if item.description in existing:
                duplicates.append(item)
            else:
                existing[item.description] = item

        wanted: set[str] = set()
        for line in lines:
            wanted.add(line.description)
            item = existing.get(line.description)
            if item is None:
                item = InvoiceItem(invoice_id=invoice.id, description=line.description)
                self.db.add(item)
                existing[line.description] = item
                result.created += 1
            else:
                result.updated += 1
            item.quantity = to_decimal(line.quantity)
            item.unit_price = to_decimal(line.unit_price)
            item.chargeable_id = line.chargeable_id
            await self._price(item, invoice, line.tax_rate)

        if remove_missing:
            stale = [item for desc, item in existing.items() if desc not in wanted] + duplicates
        else:
            stale = duplicates
        for item in stale:
            await self.db.delete(item)
            result.deleted += 1

        await self.db.flush()
        await self.recalculate_totals(invoice)
        invoice_items_written_total.labels(operation="upsert").inc(result.created + result.updated)
        logger.info(
            "invoice_items_upserted",
            invoice_id=str(invoice.id),
            created=result.created,
            updated=result.updated,
            deleted=result.deleted,
        )
        return result

    async def reprice_items(self, invoice: Invoice) -> Invoice:
        """Re-resolve every item's tax rate after the invoice rate changed."""
        ensure_items_mutable(invoice)
        for item in await self.list_items(invoice.id):
            await self._price(item, invoice, None)
        await self.db.flush()
        return await self.recalculate_totals(invoice)

    async def recalculate_totals(self, invoice: Invoice) -> Invoice:
        """
        Recompute invoice aggregates from its current items.

        Writes ``subtotal``, ``tax_total``, ``total_amount`` and
        ``balance_due``, resynchronises the posted debit transaction and
        re-derives the payment-driven status.

        Raises:
            ConsistencyError: If the aggregates cannot be written consistently
        """
        items = await self.list_items(invoice.id)
        totals = Totals.from_lines(items) if items else Totals()

        invoice.subtotal = totals.subtotal
        invoice.tax_total = totals.tax_total
        invoice.total_amount = totals.total_amount
        invoice.balance_due = round2(
            totals.total_amount - to_decimal(invoice.total_paid) - to_decimal(invoice.total_credited)
        )

        if invoice.total_amount != invoice.subtotal + invoice.tax_total:
            raise ConsistencyError(f"Invoice {invoice.invoice_number} totals do not add up")

        try:
            if lifecycle.is_posted(invoice.status):
                await self.transactions.sync_invoice_debit(invoice)
            await self.db.flush()
        except SQLAlchemyError as exc:
            logger.error("invoice_totals_write_failed", invoice_id=str(invoice.id), error=str(exc))
            raise ConsistencyError(f"Failed to update totals for invoice {invoice.invoice_number}") from exc

        # Edits can settle a posted invoice that payments already cover
        target = lifecycle.settlement_status(invoice)
        if target != invoice.status:
            previous = lifecycle.set_status(invoice, target)
            await self.db.flush()
            invoice_status_transitions_total.labels(from_status=previous.value, to_status=target.value).inc()
            logger.info(
                "invoice_status_changed",
                invoice_id=str(invoice.id),
                invoice_number=invoice.invoice_number,
                from_status=previous.value,
                to_status=target.value,
                system=True,
            )

        logger.info(
            "invoice_totals_recalculated",
            invoice_id=str(invoice.id),
            item_count=len(items),
            subtotal=str(invoice.subtotal),
            tax_total=str(invoice.tax_total),
            total_amount=str(invoice.total_amount),
        )
        return invoice
