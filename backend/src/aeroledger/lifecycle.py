"""Invoice state machine.

The transition table and the per-status field allowlists are defined here once
and consulted by every read and write path that touches invoice status or
header fields. The payment-driven status rule shared by payments, credit
notes and item edits lives here too.
"""
from dataclasses import dataclass
from datetime import datetime

from aeroledger.models.invoice import Invoice, InvoiceStatus
from aeroledger.utils.money import to_decimal

# Header fields an invoice PATCH may ever touch; totals are never writable.
HEADER_FIELDS = frozenset(
    {"reference", "issue_date", "due_date", "user_id", "notes", "status", "tax_rate", "booking_id"}
)

# Transitions a caller may request.
USER_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.PENDING}),
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.PENDING, InvoiceStatus.CANCELLED}),
    InvoiceStatus.CANCELLED: frozenset({InvoiceStatus.PENDING}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.REFUNDED: frozenset(),
}

# Extra transitions only the ledger itself performs (payments, reversals, credit notes).
SYSTEM_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PAID: frozenset({InvoiceStatus.PENDING, InvoiceStatus.OVERDUE, InvoiceStatus.REFUNDED}),
}

# Statuses whose invoices carry a posted debit on the member's account.
POSTED_STATUSES = frozenset(
    {InvoiceStatus.PENDING, InvoiceStatus.OVERDUE, InvoiceStatus.PAID, InvoiceStatus.REFUNDED}
)

# Statuses that can accept payments.
PAYABLE_STATUSES = frozenset({InvoiceStatus.PENDING, InvoiceStatus.OVERDUE})

# Statuses whose items and header can no longer change.
IMMUTABLE_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.REFUNDED})


@dataclass(frozen=True)
class FieldPolicy:
    """Which header fields each caller class may change in one status."""

    privileged: frozenset[str]
    non_privileged: frozenset[str]
    override_logged: bool = False

    def allowed(self, privileged: bool) -> frozenset[str]:
        return self.privileged if privileged else self.non_privileged


FIELD_POLICIES: dict[InvoiceStatus, FieldPolicy] = {
    InvoiceStatus.DRAFT: FieldPolicy(
        privileged=HEADER_FIELDS,
        non_privileged=frozenset({"reference", "issue_date", "due_date", "user_id", "notes", "status"}),
    ),
    InvoiceStatus.PENDING: FieldPolicy(
        privileged=HEADER_FIELDS,
        non_privileged=frozenset({"status", "notes"}),
        override_logged=True,
    ),
    InvoiceStatus.OVERDUE: FieldPolicy(
        privileged=HEADER_FIELDS,
        non_privileged=frozenset({"status", "notes"}),
        override_logged=True,
    ),
    InvoiceStatus.CANCELLED: FieldPolicy(
        privileged=frozenset({"notes", "status"}),
        non_privileged=frozenset({"notes", "status"}),
    ),
    InvoiceStatus.PAID: FieldPolicy(privileged=frozenset(), non_privileged=frozenset()),
    InvoiceStatus.REFUNDED: FieldPolicy(privileged=frozenset(), non_privileged=frozenset()),
}

for _table in (USER_TRANSITIONS, FIELD_POLICIES):
    if set(_table) != set(InvoiceStatus):
        raise RuntimeError(f"Invoice status table is missing {set(InvoiceStatus) - set(_table)}")


def can_transition(current: InvoiceStatus, target: InvoiceStatus, system: bool = False) -> bool:
    """Whether ``current -> target`` is a legal move."""
    if target in USER_TRANSITIONS[current]:
        return True
    return system and target in SYSTEM_TRANSITIONS.get(current, frozenset())


def allowed_fields(status: InvoiceStatus, privileged: bool) -> frozenset[str]:
    """Header fields the caller may change while the invoice is in ``status``."""
    return FIELD_POLICIES[status].allowed(privileged)


def is_posted(status: InvoiceStatus) -> bool:
    return status in POSTED_STATUSES


def is_immutable(status: InvoiceStatus) -> bool:
    return status in IMMUTABLE_STATUSES


def is_settled(invoice: Invoice) -> bool:
    """Payments and applied credits cover the invoice total."""
    covered = to_decimal(invoice.total_paid) + to_decimal(invoice.total_credited)
    return covered > 0 and covered >= to_decimal(invoice.total_amount)


def settlement_status(invoice: Invoice, now: datetime | None = None) -> InvoiceStatus:
    """
    Status the invoice should hold given what currently covers it.

    Pending/overdue invoices become paid once settled. Paid invoices fall back
    to pending or overdue when no longer settled, and become refunded once
    credit notes alone cover the total. Other statuses are returned unchanged.
    """
    settled = is_settled(invoice)
    if invoice.status in PAYABLE_STATUSES:
        return InvoiceStatus.PAID if settled else invoice.status
    if invoice.status != InvoiceStatus.PAID:
        return invoice.status

    total = to_decimal(invoice.total_amount)
    if total > 0 and to_decimal(invoice.total_credited) >= total:
        return InvoiceStatus.REFUNDED
    if settled:
        return InvoiceStatus.PAID
    now = now or datetime.utcnow()
    if invoice.due_date is not None and invoice.due_date < now:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.PENDING


def set_status(invoice: Invoice, target: InvoiceStatus, now: datetime | None = None) -> InvoiceStatus:
    """
    Write ``target`` and keep ``paid_date`` in step; returns the previous status.

    Ledger side effects are the caller's concern.
    """
    previous = invoice.status
    invoice.status = target
    if target == InvoiceStatus.PAID:
        invoice.paid_date = invoice.paid_date or now or datetime.utcnow()
    elif previous == InvoiceStatus.PAID and target != InvoiceStatus.REFUNDED:
        invoice.paid_date = None
    return previous
