"""
Audit logging service for tracking status changes and account events.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from hopelink.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    USER_REGISTERED = "USER_REGISTERED"
    USER_BLOCKED = "USER_BLOCKED"
    USER_UNBLOCKED = "USER_UNBLOCKED"

    # Workflow
    STATUS_CHANGED = "STATUS_CHANGED"
    EXPIRY_SWEEP = "EXPIRY_SWEEP"

    # Donations
    DONATION_CREATED = "DONATION_CREATED"
    DONATION_UPDATED = "DONATION_UPDATED"
    DONATION_DELETED = "DONATION_DELETED"
    DONATION_CLAIMED = "DONATION_CLAIMED"

    # Requests
    REQUEST_CREATED = "REQUEST_CREATED"
    REQUEST_UPDATED = "REQUEST_UPDATED"
    REQUEST_DELETED = "REQUEST_DELETED"

    # Deliveries
    DELIVERY_CREATED = "DELIVERY_CREATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    previous_status: Optional[str] = None,
    new_status: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Write an audit log entry and commit it.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for system jobs)
        actor_username: Username of actor
        entity_type: donation, request or delivery
        entity_id: ID of the affected entity
        previous_status: Status before a workflow change
        new_status: Status after a workflow change
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        previous_status=previous_status,
        new_status=new_status,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_auth_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[int],
    username: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log an authentication event (login success/failure)."""
    return await log_event(
        db=db,
        action=action,
        actor_id=user_id,
        actor_username=username,
        ip_address=ip_address,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
