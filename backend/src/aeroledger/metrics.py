"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Invoice metrics
invoices_created_total = Counter(
    "invoices_created_total",
    "Total number of invoices created",
    labelnames=["source"],  # manual, flight, membership
)

invoice_status_transitions_total = Counter(
    "invoice_status_transitions_total",
    "Invoice status transitions",
    labelnames=["from_status", "to_status"],
)

invoice_items_written_total = Counter(
    "invoice_items_written_total",
    "Invoice item writes",
    labelnames=["operation"],  # create, update, delete, upsert
)

flights_completed_total = Counter(
    "flights_completed_total",
    "Flights finalized into invoices",
    labelnames=["instruction_type"],
)

# Payment metrics
payments_recorded_total = Counter(
    "payments_recorded_total",
    "Payments recorded",
    labelnames=["method", "kind"],  # kind: invoice, credit, correction
)

payment_reversals_total = Counter(
    "payment_reversals_total",
    "Payments reversed",
    labelnames=["corrected"],
)

credit_notes_applied_total = Counter(
    "credit_notes_applied_total",
    "Credit notes applied to invoices",
)

# Membership metrics
membership_invoice_failures_total = Counter(
    "membership_invoice_failures_total",
    "Membership renewals whose fee invoice could not be created",
)

# Database metrics
transaction_retries_total = Counter(
    "transaction_retries_total",
    "Units of work re-run after a transient failure",
    labelnames=["operation"],
)
