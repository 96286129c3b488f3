"""
Authentication API endpoints.

Provides register, login, and user info endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from hopelink.app.db.session import get_db
from hopelink.app.models.user import User
from hopelink.app.models.enums import UserRole
from hopelink.app.schemas.auth import UserRegister, UserLogin, TokenResponse, UserResponse
from hopelink.app.core.security import get_password_hash, verify_password
from hopelink.app.core.jwt import create_user_token
from hopelink.app.core.dependencies import get_current_user
from hopelink.app.services.audit import log_event, log_auth_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_user_token(user),
        token_type="bearer",
        user_id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new donor, recipient or volunteer.

    ADMIN role cannot be created via API.
    """
    if user_data.role == UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin users cannot be registered via API"
        )

    result = await db.execute(
        select(User).where(
            or_(User.username == user_data.username, User.email == user_data.email)
        )
    )
    existing_user = result.scalar_one_or_none()

    if existing_user:
        if existing_user.username == user_data.username:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username already registered"
            )
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

    new_user = User(
        email=user_data.email,
        username=user_data.username,
        full_name=user_data.full_name,
        hashed_password=get_password_hash(user_data.password),
        role=user_data.role or UserRole.DONOR,
        is_active=True,
    )

    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)

    await log_event(
        db=db,
        action=AuditAction.USER_REGISTERED,
        actor_id=new_user.id,
        actor_username=new_user.username,
        metadata={"role": new_user.role.value}
    )

    return _token_response(new_user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login user and return JWT token.

    Accepts username or email for login.
    Logs successful and failed login attempts for security monitoring.
    """
    ip_address = request.client.host if request.client else None

    result = await db.execute(
        select(User).where(
            or_(User.username == credentials.username, User.email == credentials.username)
        )
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id if user else None,
            username=user.username if user else credentials.username,
            ip_address=ip_address,
            metadata={"reason": "Invalid password" if user else "User not found"}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            username=user.username,
            ip_address=ip_address,
            metadata={"reason": "Account is inactive"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account"
        )

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        username=user.username,
        ip_address=ip_address
    )

    return _token_response(user)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current authenticated user information.

    Raises:
        404: If user not found in database
    """
    result = await db.execute(select(User).where(User.id == current_user.get("user_id")))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return UserResponse.model_validate(user)
