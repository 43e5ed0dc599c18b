"""
Audit Log Database Model.

Tracks settlement, invoicing and period workflow events per tenant.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from windpark_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking business events.

    Events logged:
    - ENERGY_SETTLEMENT_CREATED / UPDATED / DELETED
    - ENERGY_SETTLEMENT_CALCULATED / RESET
    - CREDIT_NOTES_CREATED
    - SETTLEMENT_PERIOD_CREATED / STATUS_CHANGED / DELETED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, index=True, nullable=False)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    entity_type = Column(String(100), nullable=True)
    entity_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
