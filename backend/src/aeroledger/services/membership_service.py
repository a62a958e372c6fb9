"""Membership billing: expiry dates, renewals and membership fee invoices."""
import calendar
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.config import settings
from aeroledger.database import run_in_transaction
from aeroledger.exceptions import BillingError, NotFoundError, ValidationError
from aeroledger.metrics import membership_invoice_failures_total
from aeroledger.models.invoice import Invoice, InvoiceStatus
from aeroledger.models.member import Member
from aeroledger.models.membership import Membership, MembershipType
from aeroledger.schemas.invoice import InvoiceCreate, InvoiceItemCreate
from aeroledger.schemas.membership import MembershipCreate, MembershipRenew, MembershipStatus
from aeroledger.services.invoice_service import InvoiceService
from aeroledger.services.rate_service import RateService
from aeroledger.utils.money import exclusive_unit_price

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _on(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def membership_year_end(start: datetime) -> datetime:
    """
    Last moment of the membership year containing ``start``.

    The year begins on the configured start month/day on or before ``start``
    and ends on the first configured end month/day after that.
    """
    year_start = _on(start.year, settings.membership_year_start_month, settings.membership_year_start_day)
    if year_start > start.date():
        year_start = _on(start.year - 1, settings.membership_year_start_month, settings.membership_year_start_day)

    year_end = _on(year_start.year, settings.membership_year_end_month, settings.membership_year_end_day)
    if year_end < year_start:
        year_end = _on(year_start.year + 1, settings.membership_year_end_month, settings.membership_year_end_day)
    return datetime(year_end.year, year_end.month, year_end.day, 23, 59, 59)


def calculate_expiry(start: datetime, duration_months: int, override: datetime | None = None) -> datetime:
    """
    Expiry date for a membership starting at ``start``.

    An explicit ``override`` always wins. The ``fixed`` policy ends on the
    membership year end; ``rolling`` adds the type's duration to the start.
    """
    if override is not None:
        if override <= start:
            raise ValidationError("Expiry date must be after the start date", field="expiry_date")
        return override
    if settings.membership_year_policy == "fixed":
        expiry = membership_year_end(start)
        if expiry <= start:
            # Renewal starting on the last moment of a year covers the next one
            expiry = membership_year_end(start + timedelta(days=1))
        return expiry
    return add_months(start, duration_months)


def status_of(
    membership: Membership, invoice_status: InvoiceStatus | None, now: datetime | None = None
) -> MembershipStatus:
    """
    Derive a membership's status.

    ``unpaid`` when the linked invoice is not paid; without a linked invoice
    the dates alone decide.
    """
    now = now or datetime.utcnow()
    if invoice_status is not None and invoice_status != InvoiceStatus.PAID:
        return MembershipStatus.UNPAID
    if now <= membership.expiry_date:
        return MembershipStatus.ACTIVE
    if now <= membership.expiry_date + timedelta(days=membership.grace_period_days):
        return MembershipStatus.GRACE
    return MembershipStatus.EXPIRED


def _days_between(later: datetime, earlier: datetime) -> int:
    return math.ceil((later - earlier).total_seconds() / SECONDS_PER_DAY)


def days_until_expiry(membership: Membership, status: MembershipStatus, now: datetime | None = None) -> int | None:
    if status != MembershipStatus.ACTIVE:
        return None
    return _days_between(membership.expiry_date, now or datetime.utcnow())


def grace_days_remaining(membership: Membership, status: MembershipStatus, now: datetime | None = None) -> int | None:
    if status != MembershipStatus.GRACE:
        return None
    grace_end = membership.expiry_date + timedelta(days=membership.grace_period_days)
    return _days_between(grace_end, now or datetime.utcnow())


def can_renew(status: MembershipStatus) -> bool:
    return status in (MembershipStatus.ACTIVE, MembershipStatus.GRACE)


@dataclass
class MembershipInvoiceOutcome:
    """Result of the post-commit invoice hook; ``warning`` is set on failure."""

    invoice: Invoice | None = None
    warning: str | None = None


class MembershipService:
    """Service layer for membership purchase and renewal."""

    def __init__(self, db: AsyncSession):
        """Initialize membership service with database session."""
        self.db = db
        self.invoices = InvoiceService(db)
        self.rates = RateService(db)

    async def get_membership_type(self, membership_type_id: UUID) -> MembershipType:
        result = await self.db.execute(select(MembershipType).where(MembershipType.id == membership_type_id))
        membership_type = result.scalar_one_or_none()
        if not membership_type:
            raise NotFoundError("Membership type", membership_type_id)
        return membership_type

    async def get_membership(self, membership_id: UUID, lock: bool = False) -> Membership:
        """Get a membership by ID or raise NotFoundError."""
        query = select(Membership).where(Membership.id == membership_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        membership = result.scalar_one_or_none()
        if not membership:
            raise NotFoundError("Membership", membership_id)
        return membership

    async def invoice_status(self, membership: Membership) -> InvoiceStatus | None:
        """Status of the membership's live fee invoice, if it has one."""
        if membership.invoice_id is None:
            return None
        result = await self.db.execute(
            select(Invoice.status).where(Invoice.id == membership.invoice_id, Invoice.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def status(self, membership: Membership) -> MembershipStatus:
        return status_of(membership, await self.invoice_status(membership))

    async def _deactivate_current(self, user_id: UUID) -> None:
        await self.db.execute(
            update(Membership)
            .where(Membership.user_id == user_id, Membership.is_active.is_(True))
            .values(is_active=False)
        )

    async def _start(
        self,
        user_id: UUID,
        membership_type: MembershipType,
        start_date: datetime | None,
        expiry_override: datetime | None,
        grace_period_days: int | None,
        auto_renew: bool,
        notes: str | None,
        renewal_of: UUID | None = None,
    ) -> Membership:
        if not membership_type.is_active:
            raise ValidationError(f"Membership type {membership_type.code} is not active", field="membership_type_id")

        start = start_date or datetime.utcnow()
        expiry = calculate_expiry(start, membership_type.duration_months, expiry_override)

        await self._deactivate_current(user_id)
        membership = Membership(
            user_id=user_id,
            membership_type_id=membership_type.id,
            start_date=start,
            expiry_date=expiry,
            purchased_date=datetime.utcnow(),
            grace_period_days=(
                grace_period_days if grace_period_days is not None else settings.default_grace_period_days
            ),
            renewal_of=renewal_of,
            is_active=True,
            auto_renew=auto_renew,
            notes=notes,
        )
        self.db.add(membership)
        await self.db.flush()
        return membership

    async def create_membership(self, data: MembershipCreate) -> Membership:
        """
        Start a membership; any active membership of the member is deactivated.

        Raises:
            NotFoundError: Missing member or membership type
            ValidationError: Inactive membership type or expiry before start
        """
        result = await self.db.execute(select(Member.id).where(Member.id == data.user_id))
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Member", data.user_id)
        membership_type = await self.get_membership_type(data.membership_type_id)

        membership = await self._start(
            data.user_id,
            membership_type,
            start_date=data.start_date,
            expiry_override=data.expiry_date,
            grace_period_days=data.grace_period_days,
            auto_renew=data.auto_renew,
            notes=data.notes,
        )
        logger.info(
            "membership_created",
            membership_id=str(membership.id),
            user_id=str(membership.user_id),
            membership_type=membership_type.code,
            expiry_date=membership.expiry_date.isoformat(),
        )
        return membership

    async def renew_membership(self, membership_id: UUID, data: MembershipRenew) -> Membership:
        """
        Renew a membership as a new row linked through ``renewal_of``.

        Only the member's current membership can be renewed, and only while it
        is active or in its grace period; unpaid or expired memberships need a
        new purchase instead. The new period starts at the later of now and
        the current expiry, so renewing early does not lose the remaining days.

        Raises:
            ValidationError: Superseded, unpaid or expired membership
        """
        current = await self.get_membership(membership_id, lock=True)
        if not current.is_active:
            raise ValidationError(
                f"Membership {current.id} has been superseded and cannot be renewed", field="membership_id"
            )
        current_status = await self.status(current)
        if not can_renew(current_status):
            raise ValidationError(
                f"Membership {current.id} is {current_status.value} and cannot be renewed; purchase a new membership instead",
                field="membership_id",
            )
        membership_type = await self.get_membership_type(data.membership_type_id or current.membership_type_id)

        start = data.start_date or max(datetime.utcnow(), current.expiry_date)
        membership = await self._start(
            current.user_id,
            membership_type,
            start_date=start,
            expiry_override=data.expiry_date,
            grace_period_days=current.grace_period_days,
            auto_renew=current.auto_renew if data.auto_renew is None else data.auto_renew,
            notes=data.notes,
            renewal_of=current.id,
        )
        logger.info(
            "membership_renewed",
            membership_id=str(membership.id),
            renewal_of=str(current.id),
            user_id=str(membership.user_id),
            expiry_date=membership.expiry_date.isoformat(),
        )
        return membership

    async def create_membership_invoice(self, membership_id: UUID, current_user: dict | None = None) -> Invoice:
        """
        Invoice the membership fee and link the invoice to the membership.

        The type's price includes tax, so the unit price is the price with tax
        divided back out. The invoice is issued straight to pending and falls
        due at the earlier of the expiry date and ``membership_invoice_due_days``.

        Raises:
            ValidationError: If the membership already has a live invoice
        """
        membership = await self.get_membership(membership_id, lock=True)
        if await self.invoice_status(membership) is not None:
            raise ValidationError(
                f"Membership {membership.id} already has an invoice", field="membership_id"
            )
        membership_type = await self.get_membership_type(membership.membership_type_id)

        tax = await self.rates.effective_tax_rate(chargeable_id=membership_type.chargeable_id)
        now = datetime.utcnow()
        due_date = min(membership.expiry_date, now + timedelta(days=settings.membership_invoice_due_days))

        invoice = await self.invoices.create_invoice(
            InvoiceCreate(
                user_id=membership.user_id,
                reference=f"MEMBERSHIP-{membership_type.code.upper()}",
                notes=f"Membership fee for {membership_type.name}",
                issue_date=now,
                due_date=due_date,
                tax_rate=tax.rate,
                items=[
                    InvoiceItemCreate(
                        description=f"{membership_type.name} Membership Fee",
                        quantity=1,
                        unit_price=exclusive_unit_price(membership_type.price, tax.rate),
                        tax_rate=tax.rate,
                        chargeable_id=membership_type.chargeable_id,
                    )
                ],
            ),
            source="membership",
        )
        await self.invoices.approve(invoice, current_user)

        membership.invoice_id = invoice.id
        await self.db.flush()
        logger.info(
            "membership_invoice_created",
            membership_id=str(membership.id),
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            total_amount=str(invoice.total_amount),
        )
        return invoice

    async def invoice_after_commit(self, membership: Membership, current_user: dict | None = None) -> MembershipInvoiceOutcome:
        """
        Create the fee invoice for an already committed membership.

        A failure rolls back only the invoice work and is returned as a
        warning; the membership stays saved and the invoice can be created
        later through the retry endpoint.
        """
        membership_id = membership.id
        try:
            invoice = await run_in_transaction(
                self.db,
                lambda: self.create_membership_invoice(membership_id, current_user),
                "create_membership_invoice",
            )
            return MembershipInvoiceOutcome(invoice=invoice)
        except (BillingError, SQLAlchemyError) as exc:
            await self.db.rollback()
            await self.db.refresh(membership)
            membership_invoice_failures_total.inc()
            logger.error(
                "membership_invoice_failed",
                membership_id=str(membership.id),
                user_id=str(membership.user_id),
                error=str(exc),
            )
            return MembershipInvoiceOutcome(
                warning=(
                    f"Membership saved but the fee invoice could not be created: {exc}. "
                    f"Retry with POST /v1/memberships/{membership.id}/invoice"
                )
            )
