"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from hopelink.app.models.enums import UserRole


class UserRegister(BaseModel):
    """
    Schema for user registration.

    Used by POST /auth/register endpoint.
    Default role is DONOR. ADMIN is rejected by the endpoint.
    """
    email: EmailStr = Field(..., description="User email address")
    username: str = Field(..., min_length=3, max_length=50, description="Unique username")
    full_name: Optional[str] = Field(None, max_length=200, description="Display name")
    # bcrypt only reads the first 72 bytes
    password: str = Field(..., min_length=6, max_length=72, description="Password (min 6 characters)")
    role: Optional[UserRole] = Field(default=UserRole.DONOR, description="User role (defaults to DONOR)")


class UserLogin(BaseModel):
    """
    Schema for user login.

    Used by POST /auth/login endpoint.
    Supports login with either username or email.
    """
    username: str = Field(..., description="Username or email")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    email: str = Field(..., description="Email address")
    role: UserRole = Field(..., description="User role")


class UserResponse(BaseModel):
    """
    Schema for user information response.

    Used by GET /auth/me endpoint.
    """
    id: int
    email: str
    username: str
    full_name: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True  # Pydantic v2 (was orm_mode in v1)
