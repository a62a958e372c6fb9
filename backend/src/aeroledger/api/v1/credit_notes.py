"""Credit note API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.api.deps import get_current_user, get_db
from aeroledger.auth.rbac import Role, ensure_owner_or_privileged, require_roles
from aeroledger.database import run_in_transaction
from aeroledger.models.credit_note import CreditNote as CreditNoteModel
from aeroledger.schemas.credit_note import (
    CreditNote,
    CreditNoteApplyResult,
    CreditNoteCreate,
    CreditNoteDetail,
    CreditNoteItem,
    CreditNoteUpdate,
)
from aeroledger.schemas.invoice import Invoice
from aeroledger.services.credit_note_service import CreditNoteService
from aeroledger.services.invoice_service import InvoiceService

router = APIRouter(tags=["Credit Notes"])


async def _detail(service: CreditNoteService, credit_note: CreditNoteModel) -> CreditNoteDetail:
    items = await service.list_items(credit_note.id)
    return CreditNoteDetail(
        **CreditNote.model_validate(credit_note).model_dump(),
        items=[CreditNoteItem.model_validate(item) for item in items],
    )


@router.post(
    "/invoices/{invoice_id}/credit-notes",
    response_model=CreditNoteDetail,
    status_code=status.HTTP_201_CREATED,
)
@require_roles(Role.ADMIN, Role.OWNER)
async def create_credit_note(
    invoice_id: UUID,
    credit_note_data: CreditNoteCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditNoteDetail:
    """
    Create a draft credit note against an approved invoice.

    Draft invoices should be edited directly instead. The credit note has no
    effect on balances until it is applied.
    """
    service = CreditNoteService(db)
    credit_note, items = await run_in_transaction(
        db, lambda: service.create_credit_note(invoice_id, credit_note_data, current_user), "create_credit_note"
    )
    return CreditNoteDetail(
        **CreditNote.model_validate(credit_note).model_dump(),
        items=[CreditNoteItem.model_validate(item) for item in items],
    )


@router.get("/invoices/{invoice_id}/credit-notes", response_model=list[CreditNoteDetail])
async def list_credit_notes(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> list[CreditNoteDetail]:
    """List the live credit notes issued against an invoice."""
    invoice = await InvoiceService(db).get_invoice(invoice_id)
    ensure_owner_or_privileged(current_user, invoice.user_id)

    service = CreditNoteService(db)
    return [await _detail(service, credit_note) for credit_note in await service.list_for_invoice(invoice_id)]


@router.patch("/credit-notes/{credit_note_id}", response_model=CreditNoteDetail)
@require_roles(Role.ADMIN, Role.OWNER)
async def update_credit_note(
    credit_note_id: UUID,
    credit_note_data: CreditNoteUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditNoteDetail:
    """Edit the reason or notes of a draft credit note."""
    service = CreditNoteService(db)
    credit_note = await run_in_transaction(
        db, lambda: service.update_credit_note(credit_note_id, credit_note_data), "update_credit_note"
    )
    return await _detail(service, credit_note)


@router.post("/credit-notes/{credit_note_id}/apply", response_model=CreditNoteApplyResult)
@require_roles(Role.ADMIN, Role.OWNER)
async def apply_credit_note(
    credit_note_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditNoteApplyResult:
    """
    Apply a credit note.

    Lowers the invoice balance, credits the member account and makes the
    credit note immutable. Applying twice returns 409.
    """
    service = CreditNoteService(db)
    applied = await run_in_transaction(
        db, lambda: service.apply_credit_note(credit_note_id, current_user), "apply_credit_note"
    )
    return CreditNoteApplyResult(
        credit_note=CreditNote.model_validate(applied.credit_note),
        invoice=Invoice.model_validate(applied.invoice),
        account_balance=applied.member.account_balance,
    )


@router.delete("/credit-notes/{credit_note_id}", response_model=CreditNote)
@require_roles(Role.ADMIN, Role.OWNER)
async def delete_credit_note(
    credit_note_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditNote:
    """Soft-delete a draft credit note."""
    service = CreditNoteService(db)
    credit_note = await run_in_transaction(
        db, lambda: service.delete_credit_note(credit_note_id, current_user), "delete_credit_note"
    )
    return CreditNote.model_validate(credit_note)
