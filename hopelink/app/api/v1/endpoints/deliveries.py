"""
Delivery API Endpoints.

Deliveries are opened by claiming a donation. Volunteers pick up open
volunteer-mode deliveries; donors run direct-mode ones themselves.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from hopelink.app.core.dependencies import get_current_user
from hopelink.app.core.exceptions import InsufficientPermissionsError
from hopelink.app.core.guards import require_role
from hopelink.app.core.redis_client import get_redis
from hopelink.app.db.session import get_db
from hopelink.app.domain.workflow.progress import describe_status
from hopelink.app.domain.workflow.stages import EntityType
from hopelink.app.domain.workflow.workflow_service import WorkflowService
from hopelink.app.models.delivery import Delivery
from hopelink.app.models.donation import Donation
from hopelink.app.models.enums import UserRole, DeliveryMode
from hopelink.app.schemas.delivery import (
    DeliveryResponse, DeliveryDetailResponse, DeliveryListResponse, VolunteerStatsResponse
)
from hopelink.app.schemas.workflow import StatusUpdate, StatusUpdateResponse, StatusViewResponse
from hopelink.app.services.presentation import UNKNOWN_NAME, display_fields, user_names

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])

# Volunteer-mode deliveries nobody has taken yet
_OPEN_FOR_VOLUNTEERS = and_(
    Delivery.status == "pending",
    Delivery.volunteer_id.is_(None),
    Delivery.delivery_mode == DeliveryMode.VOLUNTEER,
)


def _visible_to(current_user: dict):
    user_id = current_user["user_id"]
    clauses = [
        Delivery.donor_id == user_id,
        Delivery.recipient_id == user_id,
        Delivery.volunteer_id == user_id,
    ]
    if current_user["role"] == UserRole.VOLUNTEER.value:
        clauses.append(_OPEN_FOR_VOLUNTEERS)
    return or_(*clauses)


def _can_view(delivery: Delivery, current_user: dict) -> bool:
    if current_user["role"] == UserRole.ADMIN.value:
        return True
    user_id = current_user["user_id"]
    if user_id in (delivery.donor_id, delivery.recipient_id, delivery.volunteer_id):
        return True
    return (
        current_user["role"] == UserRole.VOLUNTEER.value
        and delivery.status == "pending"
        and delivery.volunteer_id is None
        and delivery.delivery_mode == DeliveryMode.VOLUNTEER
    )


@router.get("", response_model=DeliveryListResponse)
async def list_deliveries(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    open_only: bool = Query(False, description="Only unassigned volunteer-mode deliveries"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List deliveries, newest first.

    Admins see everything. Other users see deliveries they are a party to;
    volunteers also see open deliveries they can take.
    """
    filters = []
    if current_user["role"] != UserRole.ADMIN.value:
        filters.append(_visible_to(current_user))
    if open_only:
        filters.append(_OPEN_FOR_VOLUNTEERS)
    if status_filter:
        filters.append(Delivery.status == status_filter)

    total_result = await db.execute(select(func.count(Delivery.id)).where(*filters))
    total = total_result.scalar()

    result = await db.execute(
        select(Delivery).where(*filters)
        .order_by(Delivery.created_at.desc(), Delivery.id.desc())
        .offset((page - 1) * page_size).limit(page_size)
    )

    return DeliveryListResponse(
        deliveries=[DeliveryResponse.model_validate(d) for d in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/me/stats", response_model=VolunteerStatsResponse)
async def my_volunteer_stats(
    current_user: dict = Depends(require_role([UserRole.VOLUNTEER])),
    db: AsyncSession = Depends(get_db)
):
    stats = await WorkflowService.volunteer_stats(db, current_user["user_id"])
    return VolunteerStatsResponse(volunteer_id=current_user["user_id"], **stats)


@router.get("/volunteers/{volunteer_id}/stats", response_model=VolunteerStatsResponse)
async def volunteer_stats(
    volunteer_id: int = Path(...),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    stats = await WorkflowService.volunteer_stats(db, volunteer_id)
    return VolunteerStatsResponse(volunteer_id=volunteer_id, **stats)


@router.get("/{delivery_id}", response_model=DeliveryDetailResponse)
async def get_delivery(
    delivery_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    delivery = await WorkflowService.get_entity(db, EntityType.DELIVERY, delivery_id)
    if not _can_view(delivery, current_user):
        raise InsufficientPermissionsError("You are not a participant in this delivery")

    donation_result = await db.execute(select(Donation.title).where(Donation.id == delivery.donation_id))
    donation_title = donation_result.scalar_one_or_none()

    names = await user_names(db, [delivery.donor_id, delivery.recipient_id, delivery.volunteer_id])
    allowed = await WorkflowService.allowed_for_user(db, EntityType.DELIVERY, delivery, current_user)

    return DeliveryDetailResponse(
        **DeliveryResponse.model_validate(delivery).model_dump(),
        donation_title=donation_title or UNKNOWN_NAME,
        donor_name=names[delivery.donor_id],
        recipient_name=names[delivery.recipient_id],
        volunteer_name=names[delivery.volunteer_id],
        display=display_fields(delivery, ("notes",)),
        view=StatusViewResponse.from_view(describe_status(EntityType.DELIVERY, delivery.status)),
        allowed_transitions=allowed,
    )


@router.post("/{delivery_id}/assign", response_model=StatusUpdateResponse)
async def take_delivery(
    delivery_id: int = Path(...),
    current_user: dict = Depends(require_role([UserRole.VOLUNTEER])),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Volunteer takes an open delivery."""
    result = await WorkflowService.update_status(
        db, redis, EntityType.DELIVERY, delivery_id, "assigned", current_user,
        expected_status="pending",
    )
    return StatusUpdateResponse.from_result(result)


@router.patch("/{delivery_id}/status", response_model=StatusUpdateResponse)
async def update_delivery_status(
    payload: StatusUpdate,
    delivery_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Move a delivery along its path. Moving to in_transit, out_for_delivery
    or delivered also advances the claimed donation.
    """
    result = await WorkflowService.update_status(
        db, redis, EntityType.DELIVERY, delivery_id, payload.status, current_user,
        expected_status=payload.expected_status,
        volunteer_id=payload.volunteer_id,
        notes=payload.notes,
    )
    return StatusUpdateResponse.from_result(result)
