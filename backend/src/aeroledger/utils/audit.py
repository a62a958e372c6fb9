"""Audit trail helpers for privileged billing changes."""
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from aeroledger.models.audit_log import AuditLog

logger = structlog.get_logger(__name__)


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "value"):
        return value.value
    return str(value)


def diff_changes(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Build ``{field: {old, new}}`` for fields whose value changed."""
    return {
        field: {"old": _jsonable(before.get(field)), "new": _jsonable(value)}
        for field, value in after.items()
        if before.get(field) != value
    }


async def log_audit(
    db: AsyncSession,
    entity_type: str,
    entity_id: UUID,
    action: str,
    user_id: Optional[str] = None,
    changes: Optional[dict] = None,
    request_id: Optional[str] = None,
) -> AuditLog:
    """
    Log an audit entry.

    Args:
        db: Database session
        entity_type: invoice, payment or credit_note
        entity_id: Entity UUID
        action: Action performed (override_update, reverse, apply)
        user_id: User who performed the action
        changes: Dictionary of changes {field: {old: X, new: Y}}
        request_id: Request correlation ID
    """
    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
        changes=changes or {},
        request_id=request_id or structlog.contextvars.get_contextvars().get("request_id") or str(uuid4()),
    )

    db.add(audit_log)
    await db.flush()

    logger.info(
        "audit_log_created",
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        user_id=user_id,
        change_count=len(changes) if changes else 0,
    )
    return audit_log
