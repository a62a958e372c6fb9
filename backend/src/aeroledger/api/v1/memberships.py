"""Membership API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.api.deps import get_current_user, get_db
from aeroledger.auth.rbac import Role, ensure_owner_or_privileged, require_roles
from aeroledger.database import run_in_transaction
from aeroledger.models.membership import Membership as MembershipModel
from aeroledger.schemas.invoice import Invoice
from aeroledger.schemas.membership import Membership, MembershipCreate, MembershipRenew, MembershipResult
from aeroledger.services.membership_service import (
    MembershipService,
    can_renew,
    days_until_expiry,
    grace_days_remaining,
)

router = APIRouter(prefix="/memberships", tags=["Memberships"])


async def _membership(service: MembershipService, membership: MembershipModel) -> Membership:
    membership_status = await service.status(membership)
    membership_type = await service.get_membership_type(membership.membership_type_id)
    return Membership(
        id=membership.id,
        user_id=membership.user_id,
        membership_type_id=membership.membership_type_id,
        start_date=membership.start_date,
        expiry_date=membership.expiry_date,
        purchased_date=membership.purchased_date,
        grace_period_days=membership.grace_period_days,
        invoice_id=membership.invoice_id,
        renewal_of=membership.renewal_of,
        is_active=membership.is_active,
        auto_renew=membership.auto_renew,
        notes=membership.notes,
        status=membership_status,
        days_until_expiry=days_until_expiry(membership, membership_status),
        grace_days_remaining=grace_days_remaining(membership, membership_status),
        can_renew=can_renew(membership_status),
        price=membership_type.price,
    )


async def _saved(
    service: MembershipService, membership: MembershipModel, create_invoice: bool, current_user: dict
) -> MembershipResult:
    # The membership is already committed when the fee invoice is attempted
    invoice = None
    warning = None
    if create_invoice:
        outcome = await service.invoice_after_commit(membership, current_user)
        invoice, warning = outcome.invoice, outcome.warning
    return MembershipResult(
        membership=await _membership(service, membership),
        invoice=Invoice.model_validate(invoice) if invoice else None,
        warning=warning,
    )


@router.post("", response_model=MembershipResult, status_code=status.HTTP_201_CREATED)
@require_roles(Role.ADMIN, Role.OWNER)
async def create_membership(
    membership_data: MembershipCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> MembershipResult:
    """
    Start a membership and invoice its fee.

    The expiry follows the configured membership year policy unless
    ``expiry_date`` is given. If the fee invoice cannot be created the
    membership is still saved and ``warning`` says how to retry.
    """
    service = MembershipService(db)
    membership = await run_in_transaction(db, lambda: service.create_membership(membership_data), "create_membership")
    return await _saved(service, membership, membership_data.create_invoice, current_user)


@router.post("/{membership_id}/renew", response_model=MembershipResult, status_code=status.HTTP_201_CREATED)
@require_roles(Role.ADMIN, Role.OWNER)
async def renew_membership(
    membership_id: UUID,
    renewal_data: MembershipRenew,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> MembershipResult:
    """Renew a membership; the previous membership is deactivated."""
    service = MembershipService(db)
    membership = await run_in_transaction(
        db, lambda: service.renew_membership(membership_id, renewal_data), "renew_membership"
    )
    return await _saved(service, membership, renewal_data.create_invoice, current_user)


@router.post("/{membership_id}/invoice", response_model=MembershipResult, status_code=status.HTTP_201_CREATED)
@require_roles(Role.ADMIN, Role.OWNER)
async def create_membership_invoice(
    membership_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> MembershipResult:
    """Create the fee invoice for a membership that has none (retry path)."""
    service = MembershipService(db)
    invoice = await run_in_transaction(
        db, lambda: service.create_membership_invoice(membership_id, current_user), "create_membership_invoice"
    )
    membership = await service.get_membership(membership_id)
    return MembershipResult(
        membership=await _membership(service, membership),
        invoice=Invoice.model_validate(invoice),
    )


@router.get("/{membership_id}", response_model=Membership)
async def get_membership(
    membership_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Membership:
    """Get a membership with its derived status."""
    service = MembershipService(db)
    membership = await service.get_membership(membership_id)
    ensure_owner_or_privileged(current_user, membership.user_id)
    return await _membership(service, membership)
