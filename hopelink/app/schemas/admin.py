"""
Admin Pydantic schemas.

User management and audit trail responses.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from hopelink.app.models.enums import UserRole


class UserListItem(BaseModel):
    """Single user entry in admin listings."""
    id: int
    username: str
    email: str
    full_name: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    """Paginated user list."""
    users: List[UserListItem]
    total: int
    page: int
    page_size: int


class BlockUserRequest(BaseModel):
    """Request body for blocking a user."""
    reason: Optional[str] = Field(None, description="Reason for blocking (for audit log)")


class AdminActionResponse(BaseModel):
    """Response for admin actions."""
    success: bool
    message: str
    user_id: int
    action: str
    audit_log_id: int


class AuditLogResponse(BaseModel):
    """Audit log entry."""
    id: int
    actor_id: Optional[int]
    actor_username: Optional[str]
    action: str
    entity_type: Optional[str]
    entity_id: Optional[int]
    previous_status: Optional[str]
    new_status: Optional[str]
    meta_data: Optional[dict]
    ip_address: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Audit trail, most recent first."""
    logs: List[AuditLogResponse]
    total: int
