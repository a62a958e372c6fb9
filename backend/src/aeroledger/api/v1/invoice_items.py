"""Invoice item API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.api.deps import get_current_user, get_db
from aeroledger.auth.rbac import Role, require_roles
from aeroledger.database import run_in_transaction
from aeroledger.schemas.invoice import Invoice, InvoiceItemMutation, InvoiceItemResponse, InvoiceItemUpdate
from aeroledger.services.invoice_item_service import InvoiceItemService

router = APIRouter(prefix="/invoice-items", tags=["Invoice Items"])


@router.patch("/{item_id}", response_model=InvoiceItemMutation)
@require_roles(Role.INSTRUCTOR, Role.ADMIN, Role.OWNER)
async def update_invoice_item(
    item_id: UUID,
    item_data: InvoiceItemUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceItemMutation:
    """
    Update an item.

    Amount, tax amount, line total and tax-inclusive rate are re-derived;
    paid, refunded and cancelled invoices reject the change with 409.
    """
    service = InvoiceItemService(db)
    item, invoice = await run_in_transaction(
        db, lambda: service.update_item(item_id, item_data), "update_item"
    )
    return InvoiceItemMutation(item=InvoiceItemResponse.model_validate(item), invoice=Invoice.model_validate(invoice))


@router.delete("/{item_id}", response_model=InvoiceItemMutation)
@require_roles(Role.INSTRUCTOR, Role.ADMIN, Role.OWNER)
async def delete_invoice_item(
    item_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> InvoiceItemMutation:
    """Delete an item and return the recomputed invoice."""
    service = InvoiceItemService(db)
    invoice = await run_in_transaction(db, lambda: service.delete_item(item_id), "delete_item")
    return InvoiceItemMutation(deleted_item_id=item_id, invoice=Invoice.model_validate(invoice))
