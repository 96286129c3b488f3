"""
Donation API Endpoints.

Donors post and manage donations; recipients browse and claim them.
Status changes go through the workflow service.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from hopelink.app.core.dependencies import get_current_user
from hopelink.app.core.guards import require_role, OwnershipGuard
from hopelink.app.core.redis_client import get_redis
from hopelink.app.db.session import get_db
from hopelink.app.domain.workflow.progress import describe_status
from hopelink.app.domain.workflow.stages import EntityType, initial_status
from hopelink.app.domain.workflow.transitions import ensure_editable, ensure_deletable
from hopelink.app.domain.workflow.workflow_service import WorkflowService
from hopelink.app.core.exceptions import EntityLockedError
from hopelink.app.models.delivery import Delivery
from hopelink.app.models.donation import Donation
from hopelink.app.models.enums import UserRole
from hopelink.app.schemas.donation import (
    DonationCreate, DonationUpdate, DonationClaim, DonationResponse,
    DonationDetailResponse, DonationListResponse
)
from hopelink.app.schemas.workflow import StatusUpdate, StatusUpdateResponse, StatusViewResponse
from hopelink.app.services.audit import log_event, AuditAction
from hopelink.app.services.change_feed import drop_cached_status
from hopelink.app.services.presentation import display_fields, user_names

router = APIRouter(prefix="/donations", tags=["Donations"])
ownership_guard = OwnershipGuard()

OPTIONAL_TEXT_FIELDS = ("description", "condition", "pickup_location")


async def _detail(db: AsyncSession, donation: Donation, current_user: dict) -> DonationDetailResponse:
    names = await user_names(db, [donation.donor_id])
    allowed = await WorkflowService.allowed_for_user(db, EntityType.DONATION, donation, current_user)
    return DonationDetailResponse(
        **DonationResponse.model_validate(donation).model_dump(),
        donor_name=names[donation.donor_id],
        display=display_fields(donation, OPTIONAL_TEXT_FIELDS),
        view=StatusViewResponse.from_view(describe_status(EntityType.DONATION, donation.status)),
        allowed_transitions=allowed,
    )


@router.post("", response_model=DonationResponse, status_code=status.HTTP_201_CREATED)
async def create_donation(
    donation_data: DonationCreate,
    current_user: dict = Depends(require_role([UserRole.DONOR])),
    db: AsyncSession = Depends(get_db)
):
    """Post a new donation (Donor only). It starts in the first donation stage."""
    donation = Donation(
        donor_id=current_user["user_id"],
        status=initial_status(EntityType.DONATION),
        **donation_data.model_dump(),
    )

    db.add(donation)
    await db.commit()
    await db.refresh(donation)

    await log_event(
        db=db,
        action=AuditAction.DONATION_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        entity_type=EntityType.DONATION.value,
        entity_id=donation.id,
        new_status=donation.status,
        metadata={"category": donation.category, "quantity": donation.quantity}
    )

    return DonationResponse.model_validate(donation)


@router.get("", response_model=DonationListResponse)
async def list_donations(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    category: Optional[str] = Query(None),
    mine: bool = Query(False, description="Only donations posted by the current user"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List donations, newest first."""
    filters = []
    if status_filter:
        filters.append(Donation.status == status_filter)
    if category:
        filters.append(Donation.category == category)
    if mine:
        filters.append(Donation.donor_id == current_user["user_id"])

    total_result = await db.execute(select(func.count(Donation.id)).where(*filters))
    total = total_result.scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Donation).where(*filters)
        .order_by(Donation.created_at.desc(), Donation.id.desc())
        .offset(offset).limit(page_size)
    )
    donations = result.scalars().all()

    return DonationListResponse(
        donations=[DonationResponse.model_validate(d) for d in donations],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{donation_id}", response_model=DonationDetailResponse)
async def get_donation(
    donation_id: int = Path(..., description="Donation ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    donation = await WorkflowService.get_entity(db, EntityType.DONATION, donation_id)
    return await _detail(db, donation, current_user)


@router.put("/{donation_id}", response_model=DonationResponse)
async def update_donation(
    donation_data: DonationUpdate,
    donation_id: int = Path(..., description="Donation ID"),
    current_user: dict = Depends(require_role([UserRole.DONOR, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit a donation (owner only).

    Only donations nobody has acted on yet can be edited.
    """
    donation = await WorkflowService.get_entity(db, EntityType.DONATION, donation_id)
    ownership_guard.enforce(donation.donor_id, current_user, "donation")
    ensure_editable(EntityType.DONATION, donation.status)

    changes = donation_data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(donation, field, value)

    await db.commit()
    await db.refresh(donation)

    await log_event(
        db=db,
        action=AuditAction.DONATION_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        entity_type=EntityType.DONATION.value,
        entity_id=donation.id,
        metadata={"fields": sorted(changes)}
    )

    return DonationResponse.model_validate(donation)


@router.delete("/{donation_id}", status_code=status.HTTP_200_OK)
async def delete_donation(
    donation_id: int = Path(..., description="Donation ID"),
    current_user: dict = Depends(require_role([UserRole.DONOR, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Delete a donation (owner only) that is unclaimed or already closed."""
    donation = await WorkflowService.get_entity(db, EntityType.DONATION, donation_id)
    ownership_guard.enforce(donation.donor_id, current_user, "donation")
    ensure_deletable(EntityType.DONATION, donation.status)

    delivery_count = await db.execute(
        select(func.count(Delivery.id)).where(Delivery.donation_id == donation.id)
    )
    if delivery_count.scalar():
        raise EntityLockedError(
            "Cannot delete a donation that has deliveries",
            current_status=donation.status,
        )

    previous_status = donation.status
    await db.delete(donation)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.DONATION_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        entity_type=EntityType.DONATION.value,
        entity_id=donation_id,
        previous_status=previous_status
    )
    await drop_cached_status(redis, EntityType.DONATION, donation_id)

    return {"message": "Donation deleted successfully", "donation_id": donation_id}


@router.post("/{donation_id}/claim", response_model=StatusUpdateResponse)
async def claim_donation(
    claim: DonationClaim,
    donation_id: int = Path(..., description="Donation ID"),
    current_user: dict = Depends(require_role([UserRole.RECIPIENT])),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Claim a donation (Recipient only).

    Moves the donation to claimed and opens a delivery for it.
    """
    result = await WorkflowService.claim_donation(
        db, redis, donation_id, current_user,
        delivery_mode=claim.delivery_mode,
        request_id=claim.request_id,
        expected_status=claim.expected_status,
    )
    return StatusUpdateResponse.from_result(result)


@router.patch("/{donation_id}/status", response_model=StatusUpdateResponse)
async def update_donation_status(
    payload: StatusUpdate,
    donation_id: int = Path(..., description="Donation ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    result = await WorkflowService.update_status(
        db, redis, EntityType.DONATION, donation_id, payload.status, current_user,
        expected_status=payload.expected_status,
    )
    return StatusUpdateResponse.from_result(result)
