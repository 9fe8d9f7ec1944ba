"""
Audit trail of sync state transitions.

Each row captures the before/after values of one transition plus who
triggered it.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from sqlalchemy.sql import func

from erp_sync.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)

    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(50), nullable=False)
    action = Column(String(20), nullable=False, default="UPDATE")

    old_values = Column(JSON)
    new_values = Column(JSON)
    changed_fields = Column(JSON)

    # Who / where
    user_id = Column(String(50), index=True)
    ip_address = Column(String(64))
    user_agent = Column(String(512))

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    def __repr__(self):
        return f"<AuditLog(entity={self.entity_type}:{self.entity_id}, fields={self.changed_fields})>"
