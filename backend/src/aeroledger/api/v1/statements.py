"""Member account statement endpoint."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.api.deps import get_current_user, get_db
from aeroledger.auth.rbac import ensure_owner_or_privileged
from aeroledger.schemas.statement import AccountStatement
from aeroledger.services.statement_service import StatementService

router = APIRouter(prefix="/members", tags=["Statements"])


@router.get("/{user_id}/statement", response_model=AccountStatement)
async def get_statement(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> AccountStatement:
    """
    Chronological statement with running balances.

    Balances are reconstructed backward from the member's stored account
    balance, so the last entry always equals the current balance. Draft,
    cancelled and deleted invoices are not listed.
    """
    ensure_owner_or_privileged(current_user, user_id)
    return await StatementService(db).build_statement(user_id)
