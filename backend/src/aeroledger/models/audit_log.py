"""Audit log model for tracking privileged billing changes."""
from sqlalchemy import JSON, Column, String, Uuid

from aeroledger.models.base import Base


class AuditLog(Base):
    """
    Audit trail entry.

    Written for override edits on approved invoices, payment reversals and
    credit note applications.
    """

    __tablename__ = "audit_logs"

    entity_type = Column(String, nullable=False, index=True)  # invoice, payment, credit_note
    entity_id = Column(Uuid, nullable=False, index=True)
    action = Column(String, nullable=False)  # override_update, reverse, apply
    user_id = Column(String, nullable=True)
    changes = Column(JSON, nullable=False, default=dict)  # {field: {old: X, new: Y}}
    request_id = Column(String, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<AuditLog(entity_type={self.entity_type}, entity_id={self.entity_id}, action={self.action})>"
