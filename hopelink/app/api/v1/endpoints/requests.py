"""
Donation Request API Endpoints.

Recipients post what they need; donors claim open requests.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from hopelink.app.core.dependencies import get_current_user
from hopelink.app.core.exceptions import EntityLockedError
from hopelink.app.core.guards import require_role, OwnershipGuard
from hopelink.app.core.redis_client import get_redis
from hopelink.app.db.session import get_db
from hopelink.app.domain.workflow.progress import describe_status
from hopelink.app.domain.workflow.stages import EntityType, initial_status
from hopelink.app.domain.workflow.transitions import ensure_editable, ensure_deletable
from hopelink.app.domain.workflow.workflow_service import WorkflowService
from hopelink.app.models.delivery import Delivery
from hopelink.app.models.donation_request import DonationRequest
from hopelink.app.models.enums import UserRole, Urgency
from hopelink.app.schemas.donation_request import (
    RequestCreate, RequestUpdate, RequestResponse, RequestDetailResponse, RequestListResponse
)
from hopelink.app.schemas.workflow import StatusUpdate, StatusUpdateResponse, StatusViewResponse
from hopelink.app.services.audit import log_event, AuditAction
from hopelink.app.services.change_feed import drop_cached_status
from hopelink.app.services.presentation import display_fields, user_names

router = APIRouter(prefix="/requests", tags=["Requests"])
ownership_guard = OwnershipGuard()


@router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    request_data: RequestCreate,
    current_user: dict = Depends(require_role([UserRole.RECIPIENT])),
    db: AsyncSession = Depends(get_db)
):
    """Post a new request (Recipient only)."""
    donation_request = DonationRequest(
        requester_id=current_user["user_id"],
        status=initial_status(EntityType.REQUEST),
        **request_data.model_dump(),
    )

    db.add(donation_request)
    await db.commit()
    await db.refresh(donation_request)

    await log_event(
        db=db,
        action=AuditAction.REQUEST_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        entity_type=EntityType.REQUEST.value,
        entity_id=donation_request.id,
        new_status=donation_request.status,
        metadata={"category": donation_request.category, "urgency": donation_request.urgency.value}
    )

    return RequestResponse.model_validate(donation_request)


@router.get("", response_model=RequestListResponse)
async def list_requests(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    category: Optional[str] = Query(None),
    urgency: Optional[Urgency] = Query(None),
    mine: bool = Query(False, description="Only requests posted by the current user"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List requests, newest first."""
    filters = []
    if status_filter:
        filters.append(DonationRequest.status == status_filter)
    if category:
        filters.append(DonationRequest.category == category)
    if urgency:
        filters.append(DonationRequest.urgency == urgency)
    if mine:
        filters.append(DonationRequest.requester_id == current_user["user_id"])

    total_result = await db.execute(select(func.count(DonationRequest.id)).where(*filters))
    total = total_result.scalar()

    result = await db.execute(
        select(DonationRequest).where(*filters)
        .order_by(DonationRequest.created_at.desc(), DonationRequest.id.desc())
        .offset((page - 1) * page_size).limit(page_size)
    )

    return RequestListResponse(
        requests=[RequestResponse.model_validate(r) for r in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{request_id}", response_model=RequestDetailResponse)
async def get_request(
    request_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    donation_request = await WorkflowService.get_entity(db, EntityType.REQUEST, request_id)
    names = await user_names(db, [donation_request.requester_id])
    allowed = await WorkflowService.allowed_for_user(
        db, EntityType.REQUEST, donation_request, current_user
    )
    return RequestDetailResponse(
        **RequestResponse.model_validate(donation_request).model_dump(),
        requester_name=names[donation_request.requester_id],
        display=display_fields(donation_request, ("description",)),
        view=StatusViewResponse.from_view(describe_status(EntityType.REQUEST, donation_request.status)),
        allowed_transitions=allowed,
    )


@router.put("/{request_id}", response_model=RequestResponse)
async def update_request(
    request_data: RequestUpdate,
    request_id: int = Path(...),
    current_user: dict = Depends(require_role([UserRole.RECIPIENT, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """Edit a request (owner only) while it is still open."""
    donation_request = await WorkflowService.get_entity(db, EntityType.REQUEST, request_id)
    ownership_guard.enforce(donation_request.requester_id, current_user, "request")
    ensure_editable(EntityType.REQUEST, donation_request.status)

    changes = request_data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(donation_request, field, value)

    await db.commit()
    await db.refresh(donation_request)

    await log_event(
        db=db,
        action=AuditAction.REQUEST_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        entity_type=EntityType.REQUEST.value,
        entity_id=donation_request.id,
        metadata={"fields": sorted(changes)}
    )

    return RequestResponse.model_validate(donation_request)


@router.delete("/{request_id}", status_code=status.HTTP_200_OK)
async def delete_request(
    request_id: int = Path(...),
    current_user: dict = Depends(require_role([UserRole.RECIPIENT, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Delete a request (owner only) that is open or already closed."""
    donation_request = await WorkflowService.get_entity(db, EntityType.REQUEST, request_id)
    ownership_guard.enforce(donation_request.requester_id, current_user, "request")
    ensure_deletable(EntityType.REQUEST, donation_request.status)

    linked = await db.execute(
        select(func.count(Delivery.id)).where(Delivery.request_id == donation_request.id)
    )
    if linked.scalar():
        raise EntityLockedError(
            "Cannot delete a request that is linked to a delivery",
            current_status=donation_request.status,
        )

    previous_status = donation_request.status
    await db.delete(donation_request)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.REQUEST_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        entity_type=EntityType.REQUEST.value,
        entity_id=request_id,
        previous_status=previous_status
    )
    await drop_cached_status(redis, EntityType.REQUEST, request_id)

    return {"message": "Request deleted successfully", "request_id": request_id}


@router.post("/{request_id}/claim", response_model=StatusUpdateResponse)
async def claim_request(
    request_id: int = Path(...),
    current_user: dict = Depends(require_role([UserRole.DONOR])),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Claim an open request (Donor only)."""
    result = await WorkflowService.update_status(
        db, redis, EntityType.REQUEST, request_id, "claimed", current_user
    )
    return StatusUpdateResponse.from_result(result)


@router.patch("/{request_id}/status", response_model=StatusUpdateResponse)
async def update_request_status(
    payload: StatusUpdate,
    request_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    result = await WorkflowService.update_status(
        db, redis, EntityType.REQUEST, request_id, payload.status, current_user,
        expected_status=payload.expected_status,
    )
    return StatusUpdateResponse.from_result(result)
