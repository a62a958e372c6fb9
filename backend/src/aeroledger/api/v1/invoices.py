"""Invoice API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.api.deps import get_current_user, get_db
from aeroledger.auth.rbac import Role, ensure_owner_or_privileged, is_privileged, require_roles
from aeroledger.database import run_in_transaction
from aeroledger.models.invoice import Invoice as InvoiceModel
from aeroledger.models.invoice import InvoiceStatus
from aeroledger.schemas.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceDeleteResult,
    InvoiceDetail,
    InvoiceItemCreate,
    InvoiceItemMutation,
    InvoiceItemResponse,
    InvoiceList,
    InvoiceUpdate,
)
from aeroledger.services.invoice_item_service import InvoiceItemService
from aeroledger.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


async def invoice_detail(db: AsyncSession, invoice: InvoiceModel) -> InvoiceDetail:
    """Serialize an invoice together with its current items."""
    items = await InvoiceItemService(db).list_items(invoice.id)
    return InvoiceDetail(
        **Invoice.model_validate(invoice).model_dump(),
        items=[InvoiceItemResponse.model_validate(item) for item in items],
    )


@router.get("", response_model=InvoiceList)
async def list_invoices(
    user_id: UUID | None = Query(default=None, description="Filter by member"),
    status: InvoiceStatus | None = Query(default=None, description="Filter by status"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(default=100, ge=1, le=1000, description="Items per page (max 1000)"),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceList:
    """
    List invoices, newest first.

    Members and students only ever see their own invoices; the ``user_id``
    filter is forced to the caller.
    """
    if not is_privileged(current_user):
        user_id = UUID(str(current_user["sub"]))

    service = InvoiceService(db)
    invoices, total = await service.list_invoices(user_id=user_id, status=status, page=page, page_size=page_size)
    return InvoiceList(items=invoices, total=total, page=page, page_size=page_size)


@router.post("", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
@require_roles(Role.INSTRUCTOR, Role.ADMIN, Role.OWNER)
async def create_invoice(
    invoice_data: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceDetail:
    """
    Create a draft invoice, optionally with items.

    The tax rate defaults to the organization rate and is snapshotted on the
    invoice; item money fields are always derived server-side.
    """
    service = InvoiceService(db)
    invoice = await run_in_transaction(db, lambda: service.create_invoice(invoice_data), "create_invoice")
    return await invoice_detail(db, invoice)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
async def get_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceDetail:
    """Get an invoice with its items."""
    service = InvoiceService(db)
    invoice = await service.get_invoice(invoice_id)
    ensure_owner_or_privileged(current_user, invoice.user_id)
    return await invoice_detail(db, invoice)


@router.patch("/{invoice_id}", response_model=InvoiceDetail)
async def update_invoice(
    invoice_id: UUID,
    invoice_data: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceDetail:
    """
    Update invoice header fields and/or status.

    **Editable fields by status**:
    - **draft**: every header field; tax rate and booking need a privileged user
    - **pending/overdue**: status and notes; privileged users may also change
      reference, dates, member, tax rate and booking (recorded in the audit log)
    - **cancelled**: status and notes (reopen to pending)
    - **paid/refunded**: nothing; issue a credit note instead
    """
    service = InvoiceService(db)
    invoice = await run_in_transaction(
        db, lambda: service.update_invoice(invoice_id, invoice_data, current_user), "update_invoice"
    )
    return await invoice_detail(db, invoice)


@router.delete("/{invoice_id}", response_model=InvoiceDeleteResult)
async def delete_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceDeleteResult:
    """Soft-delete a draft invoice and its items."""
    service = InvoiceService(db)
    deleted = await run_in_transaction(
        db, lambda: service.soft_delete_invoice(invoice_id, current_user), "soft_delete_invoice"
    )
    return InvoiceDeleteResult(
        invoice_id=deleted.invoice.id,
        invoice_number=deleted.invoice.invoice_number,
        items_deleted=deleted.items_deleted,
        deleted_at=deleted.invoice.deleted_at,
    )


@router.post("/{invoice_id}/items", response_model=InvoiceItemMutation, status_code=status.HTTP_201_CREATED)
@require_roles(Role.INSTRUCTOR, Role.ADMIN, Role.OWNER)
async def create_invoice_item(
    invoice_id: UUID,
    item_data: InvoiceItemCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceItemMutation:
    """Add an item; the invoice totals are recomputed in the same transaction."""
    service = InvoiceItemService(db)
    item, invoice = await run_in_transaction(
        db, lambda: service.create_item(invoice_id, item_data), "create_item"
    )
    return InvoiceItemMutation(item=InvoiceItemResponse.model_validate(item), invoice=Invoice.model_validate(invoice))
