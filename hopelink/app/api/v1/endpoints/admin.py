"""
Admin API Endpoints.

User management, audit trail, expiry sweep and workflow reports.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from hopelink.app.db.session import get_db
from hopelink.app.models.user import User
from hopelink.app.models.enums import UserRole
from hopelink.app.schemas.admin import (
    UserListResponse, UserListItem, BlockUserRequest,
    AdminActionResponse, AuditTrailResponse, AuditLogResponse
)
from hopelink.app.schemas.report import StatusSummaryResponse, ExpirySweepResponse
from hopelink.app.core.guards import require_admin
from hopelink.app.core.redis_client import get_redis
from hopelink.app.domain.workflow.stages import EntityType
from hopelink.app.domain.workflow.workflow_service import WorkflowService
from hopelink.app.services.audit import log_event, AuditAction, get_audit_trail
from hopelink.app.services.cache import CacheService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all users in the system (admin-only).
    """
    filters = [User.role == role] if role else []

    total_result = await db.execute(select(func.count(User.id)).where(*filters))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    query = select(User).where(*filters).order_by(User.created_at.desc(), User.id.desc())
    result = await db.execute(query.offset(offset).limit(page_size))
    users = result.scalars().all()

    return UserListResponse(
        users=[UserListItem.model_validate(user) for user in users],
        total=total,
        page=page,
        page_size=page_size
    )


async def _set_active(db: AsyncSession, admin: dict, user_id: int, active: bool, reason: Optional[str]):
    result = await db.execute(select(User).where(User.id == user_id))
    target_user = result.scalar_one_or_none()

    if not target_user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    if target_user.role == UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot change another admin user"
        )

    if target_user.is_active == active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already active" if active else "User is already blocked"
        )

    target_user.is_active = active
    await db.commit()

    action = AuditAction.USER_UNBLOCKED if active else AuditAction.USER_BLOCKED
    audit_log = await log_event(
        db=db,
        action=action,
        actor_id=admin["user_id"],
        actor_username=admin["sub"],
        metadata={"target_user_id": target_user.id, "reason": reason}
    )

    return AdminActionResponse(
        success=True,
        message=f"User {target_user.username} has been {'unblocked' if active else 'blocked'}",
        user_id=target_user.id,
        action=action,
        audit_log_id=audit_log.id
    )


@router.post("/users/{user_id}/block", response_model=AdminActionResponse)
async def block_user(
    user_id: int,
    request: BlockUserRequest,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Block a user. Their tokens stop working on the next request."""
    return await _set_active(db, admin, user_id, False, request.reason)


@router.post("/users/{user_id}/unblock", response_model=AdminActionResponse)
async def unblock_user(
    user_id: int,
    request: BlockUserRequest,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await _set_active(db, admin, user_id, True, request.reason)


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    entity_type: Optional[EntityType] = Query(None),
    entity_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of logs"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Audit trail, most recent first (admin-only).

    Filter by entity to see the full status history of one donation,
    request or delivery.
    """
    logs = await get_audit_trail(
        db=db,
        entity_type=entity_type.value if entity_type else None,
        entity_id=entity_id,
        action=action,
        limit=limit
    )

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )


@router.post("/expiry-sweep", response_model=ExpirySweepResponse)
async def run_expiry_sweep(
    retention_days: Optional[int] = Query(None, ge=0, description="Days an expired donation is kept before archiving"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Expire donations past their expiration date and archive long-expired ones.
    """
    result = await WorkflowService.expire_donations(
        db, redis, current_user=admin, retention_days=retention_days
    )
    return ExpirySweepResponse(
        message="Expiry sweep completed",
        expired=result.expired_ids,
        archived=result.archived_ids,
    )


@router.get("/reports/status-summary", response_model=StatusSummaryResponse)
async def status_summary(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Counts per stage and terminal outcome for every entity type."""
    return await WorkflowService.status_summary(db)


@router.post("/clear-cache")
async def clear_system_cache(
    admin: dict = Depends(require_admin)
):
    """Clear the report cache."""
    await CacheService.clear()
    return {"message": "Cache cleared successfully"}
