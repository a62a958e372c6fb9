"""SQLAlchemy models for the billing ledger."""
from aeroledger.models.aircraft import Aircraft, AircraftType, FlightType, InstructionType, Instructor
from aeroledger.models.audit_log import AuditLog
from aeroledger.models.base import Base
from aeroledger.models.booking import Booking, BookingStatus, FlightLog
from aeroledger.models.credit_note import CreditNote, CreditNoteItem, CreditNoteStatus
from aeroledger.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from aeroledger.models.member import Member
from aeroledger.models.membership import Membership, MembershipType
from aeroledger.models.payment import Payment, PaymentMethod
from aeroledger.models.rates import (
    AircraftChargeRate,
    Chargeable,
    InstructorFlightTypeRate,
    LandingFeeRate,
    TaxRate,
)
from aeroledger.models.transaction import Transaction, TransactionStatus, TransactionType

__all__ = [
    "Base",
    "Aircraft",
    "AircraftChargeRate",
    "AircraftType",
    "AuditLog",
    "Booking",
    "BookingStatus",
    "Chargeable",
    "CreditNote",
    "CreditNoteItem",
    "CreditNoteStatus",
    "FlightLog",
    "FlightType",
    "InstructionType",
    "Instructor",
    "InstructorFlightTypeRate",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "LandingFeeRate",
    "Member",
    "Membership",
    "MembershipType",
    "Payment",
    "PaymentMethod",
    "TaxRate",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
]
