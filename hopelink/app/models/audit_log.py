"""
Audit Log Database Model.

Tracks status changes and account events.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from hopelink.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - STATUS_CHANGED (entity_type, entity_id, previous_status, new_status)
    - DONATION_CREATED / REQUEST_CREATED / DELIVERY_CREATED
    - DONATION_UPDATED / DONATION_DELETED and request equivalents
    - LOGIN_SUCCESS / LOGIN_FAILED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which entity was affected
    entity_type = Column(String(20), nullable=True, index=True)
    entity_id = Column(Integer, nullable=True, index=True)
    previous_status = Column(String(32), nullable=True)
    new_status = Column(String(32), nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # IP address for login tracking
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
