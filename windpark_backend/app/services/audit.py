"""
Audit logging service for tracking settlement and invoicing events.

Provides centralized logging for compliance. Entries are added to the
caller's session and committed together with the business change.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from windpark_backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    ENERGY_SETTLEMENT_CREATED = "ENERGY_SETTLEMENT_CREATED"
    ENERGY_SETTLEMENT_UPDATED = "ENERGY_SETTLEMENT_UPDATED"
    ENERGY_SETTLEMENT_CALCULATED = "ENERGY_SETTLEMENT_CALCULATED"
    ENERGY_SETTLEMENT_RESET = "ENERGY_SETTLEMENT_RESET"
    ENERGY_SETTLEMENT_DELETED = "ENERGY_SETTLEMENT_DELETED"

    CREDIT_NOTES_CREATED = "CREDIT_NOTES_CREATED"

    SETTLEMENT_PERIOD_CREATED = "SETTLEMENT_PERIOD_CREATED"
    SETTLEMENT_PERIODS_BULK_CREATED = "SETTLEMENT_PERIODS_BULK_CREATED"
    SETTLEMENT_PERIOD_UPDATED = "SETTLEMENT_PERIOD_UPDATED"
    SETTLEMENT_PERIOD_STATUS_CHANGED = "SETTLEMENT_PERIOD_STATUS_CHANGED"
    SETTLEMENT_PERIOD_DELETED = "SETTLEMENT_PERIOD_DELETED"


async def log_event(
    db: AsyncSession,
    tenant_id: int,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log a business event to the audit log.

    Args:
        db: Database session
        tenant_id: Tenant the event belongs to
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        entity_type: Kind of record acted upon, e.g. "energy_settlement"
        entity_id: ID of the record acted upon
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance (flushed, not committed)
    """
    audit_log = AuditLog(
        tenant_id=tenant_id,
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    tenant_id: int,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve a tenant's audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).where(AuditLog.tenant_id == tenant_id).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
