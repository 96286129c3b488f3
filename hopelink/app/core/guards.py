"""
Security guards for role-based and ownership-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List, Optional
from fastapi import Depends, HTTPException, status
from hopelink.app.models.enums import UserRole
from hopelink.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/donations")
        async def create_donation(current_user: dict = Depends(require_role([UserRole.DONOR]))):
            ...

    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency for admin-only endpoints."""
    if current_user.get("role") != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user


def current_role(current_user: dict) -> UserRole:
    """Role of the authenticated user as an enum."""
    return UserRole(current_user["role"])


def verify_ownership(resource_owner_id: Optional[int], current_user: dict) -> bool:
    """
    Verify that the current user owns the resource.

    Admins can access everything; everyone else must match the owner ID.
    """
    if current_user.get("role") == UserRole.ADMIN.value:
        return True

    return resource_owner_id is not None and current_user.get("user_id") == resource_owner_id


class OwnershipGuard:
    """
    Class-based ownership guard.

    Usage:
        ownership_guard = OwnershipGuard()

        donation = await get_donation_or_404(db, donation_id)
        ownership_guard.enforce(donation.donor_id, current_user, "donation")
    """

    def enforce(
        self,
        resource_owner_id: Optional[int],
        current_user: dict,
        resource_name: str = "resource"
    ):
        """
        Enforce ownership validation, raise 403 if access denied.
        """
        if not verify_ownership(resource_owner_id, current_user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. You do not have permission to modify this {resource_name}."
            )
