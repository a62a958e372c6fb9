"""Pydantic schemas for API request/response validation."""

from aeroledger.schemas.credit_note import (
    CreditNote,
    CreditNoteApplyResult,
    CreditNoteCreate,
    CreditNoteDetail,
    CreditNoteUpdate,
)
from aeroledger.schemas.error import ErrorDetail, ErrorResponse
from aeroledger.schemas.flight import (
    FlightChargePreview,
    FlightChargeRequest,
    FlightCompleteRequest,
    FlightCompletion,
)
from aeroledger.schemas.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceDetail,
    InvoiceItemCreate,
    InvoiceItemResponse,
    InvoiceItemUpdate,
    InvoiceList,
    InvoiceUpdate,
)
from aeroledger.schemas.membership import (
    Membership,
    MembershipCreate,
    MembershipRenew,
    MembershipResult,
    MembershipStatus,
)
from aeroledger.schemas.payment import (
    CreditPaymentCreate,
    Payment,
    PaymentCreate,
    PaymentResult,
    PaymentReversalRequest,
    PaymentReversalResult,
)
from aeroledger.schemas.statement import AccountStatement, StatementEntry, StatementEntryType

__all__ = [
    # Flight charge schemas
    "FlightChargeRequest",
    "FlightCompleteRequest",
    "FlightChargePreview",
    "FlightCompletion",
    # Invoice schemas
    "Invoice",
    "InvoiceCreate",
    "InvoiceUpdate",
    "InvoiceDetail",
    "InvoiceList",
    "InvoiceItemCreate",
    "InvoiceItemUpdate",
    "InvoiceItemResponse",
    # Payment schemas
    "Payment",
    "PaymentCreate",
    "CreditPaymentCreate",
    "PaymentResult",
    "PaymentReversalRequest",
    "PaymentReversalResult",
    # Credit note schemas
    "CreditNote",
    "CreditNoteCreate",
    "CreditNoteUpdate",
    "CreditNoteDetail",
    "CreditNoteApplyResult",
    # Statement schemas
    "AccountStatement",
    "StatementEntry",
    "StatementEntryType",
    # Membership schemas
    "Membership",
    "MembershipCreate",
    "MembershipRenew",
    "MembershipResult",
    "MembershipStatus",
    # Error schemas
    "ErrorDetail",
    "ErrorResponse",
]
