"""
Workflow Service (Domain Logic).

Performs status changes for donations, requests and deliveries. Every write
is checked against the transition table and the caller's participation,
committed in one transaction, audited, and then pushed to the change feed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from hopelink.app.core.config import settings
from hopelink.app.core.reliability import CircuitOpenError, redis_circuit_breaker
from hopelink.app.core.exceptions import (
    BadRequestError, InsufficientPermissionsError, ResourceNotFoundError,
    StatusConflictError
)
from hopelink.app.domain.workflow.stages import (
    EntityType, TERMINAL_STATUSES, is_final, stages_for, terminal_statuses_for
)
from hopelink.app.domain.workflow.transitions import (
    ADMIN, DONOR, RECIPIENT, VOLUNTEER, TRANSITIONS,
    allowed_transitions, validate_transition
)
from hopelink.app.models.delivery import Delivery
from hopelink.app.models.donation import Donation
from hopelink.app.models.donation_request import DonationRequest
from hopelink.app.models.enums import DeliveryMode, UserRole
from hopelink.app.models.user import User
from hopelink.app.services.audit import log_event, AuditAction
from hopelink.app.services.cache import CacheService
from hopelink.app.services.change_feed import (
    ChangeEvent, StatusCache, build_snapshot, publish_change
)
from hopelink.app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    EntityType.DONATION: Donation,
    EntityType.REQUEST: DonationRequest,
    EntityType.DELIVERY: Delivery,
}

# Delivery status -> (donation status it implies, donation statuses it may advance from)
DONATION_SYNC = {
    "in_transit": ("in_transit", ("claimed",)),
    "out_for_delivery": ("in_transit", ("claimed",)),
    "delivered": ("delivered", ("claimed", "in_transit")),
    "cancelled": ("available", ("claimed", "in_transit")),
}

STATUS_SUMMARY_CACHE_KEY = "reports:status_summary"

# A claim may only be linked to a request that is still being worked on
LINKABLE_REQUEST_STATUSES = frozenset({"open", "claimed", "in_progress"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _entity_title(entity_type: EntityType, entity) -> str:
    if entity_type == EntityType.DELIVERY:
        return f"Delivery #{entity.id}"
    return entity.title


@dataclass
class StatusChangeResult:
    entity_type: EntityType
    entity: Any
    previous_status: Optional[str]
    events: List[ChangeEvent] = field(default_factory=list)
    delivery: Optional[Delivery] = None


@dataclass
class SweepResult:
    expired_ids: List[int]
    archived_ids: List[int]


class WorkflowService:

    @staticmethod
    async def get_entity(db: AsyncSession, entity_type: Union[EntityType, str], entity_id: int):
        entity_type = EntityType(entity_type)
        model = ENTITY_MODELS[entity_type]
        result = await db.execute(select(model).where(model.id == entity_id))
        entity = result.scalar_one_or_none()
        if entity is None:
            raise ResourceNotFoundError(entity_type.value.capitalize(), entity_id)
        return entity

    @staticmethod
    async def _delivery_party_ids(db: AsyncSession, column, *conditions) -> set:
        result = await db.execute(select(column).where(*conditions))
        return {v for v in result.scalars().all() if v is not None}

    @staticmethod
    async def participants(db: AsyncSession, entity_type: EntityType, entity) -> set:
        """User ids with a stake in the entity (owners and delivery parties)."""
        if entity_type == EntityType.DONATION:
            ids = {entity.donor_id}
            ids |= await WorkflowService._delivery_party_ids(
                db, Delivery.recipient_id, Delivery.donation_id == entity.id
            )
            ids |= await WorkflowService._delivery_party_ids(
                db, Delivery.volunteer_id, Delivery.donation_id == entity.id
            )
            return ids
        if entity_type == EntityType.REQUEST:
            return {entity.requester_id, entity.claimed_by_id} - {None}
        return {entity.donor_id, entity.recipient_id, entity.volunteer_id} - {None}

    @staticmethod
    async def check_participation(
        db: AsyncSession,
        entity_type: EntityType,
        entity,
        role: str,
        user_id: int,
        target: str
    ) -> None:
        """
        Ensure a non-admin caller is a party to the entity in their role.

        Open claims (recipient -> donation, donor -> request, volunteer ->
        unassigned delivery) are allowed for any user of that role.
        """
        if role == ADMIN:
            return

        allowed = False
        if entity_type == EntityType.DONATION:
            if role == DONOR:
                allowed = entity.donor_id == user_id
            elif role == RECIPIENT:
                allowed = target == "claimed" or user_id in await WorkflowService._delivery_party_ids(
                    db, Delivery.recipient_id, Delivery.donation_id == entity.id
                )
            elif role == VOLUNTEER:
                allowed = user_id in await WorkflowService._delivery_party_ids(
                    db, Delivery.volunteer_id, Delivery.donation_id == entity.id
                )
        elif entity_type == EntityType.REQUEST:
            if role == RECIPIENT:
                allowed = entity.requester_id == user_id
            elif role == DONOR:
                allowed = target == "claimed" or entity.claimed_by_id == user_id
            elif role == VOLUNTEER:
                allowed = user_id in await WorkflowService._delivery_party_ids(
                    db, Delivery.volunteer_id, Delivery.request_id == entity.id
                )
        elif entity_type == EntityType.DELIVERY:
            if role == DONOR:
                allowed = entity.donor_id == user_id
            elif role == RECIPIENT:
                allowed = entity.recipient_id == user_id
            elif role == VOLUNTEER:
                if target == "assigned" and entity.volunteer_id is None:
                    allowed = True
                else:
                    allowed = entity.volunteer_id == user_id

        if not allowed:
            raise InsufficientPermissionsError(
                f"You are not a participant in this {entity_type.value}",
                details={"entity_type": entity_type.value, "entity_id": entity.id}
            )

    @staticmethod
    async def allowed_for_user(
        db: AsyncSession,
        entity_type: Union[EntityType, str],
        entity,
        current_user: dict
    ) -> List[str]:
        """Targets the current user may move the entity to right now."""
        entity_type = EntityType(entity_type)
        role = current_user["role"]
        targets = []
        for transition in allowed_transitions(entity_type, entity.status, role):
            if transition.target in targets:
                continue
            try:
                await WorkflowService.check_participation(
                    db, entity_type, entity, role, current_user["user_id"], transition.target
                )
            except InsufficientPermissionsError:
                continue
            targets.append(transition.target)
        return targets

    @staticmethod
    async def _apply_side_effects(
        db: AsyncSession,
        entity_type: EntityType,
        entity,
        new_status: str,
        role: str,
        user_id: int,
        volunteer_id: Optional[int],
        notes: Optional[str]
    ) -> None:
        now = _now()

        if entity_type == EntityType.DELIVERY:
            if new_status == "assigned":
                if role == VOLUNTEER:
                    entity.volunteer_id = user_id
                else:
                    if volunteer_id is None:
                        raise BadRequestError("volunteer_id is required to assign a delivery")
                    volunteer = await db.execute(select(User).where(
                        User.id == volunteer_id,
                        User.role == UserRole.VOLUNTEER,
                        User.is_active == True
                    ))
                    if volunteer.scalar_one_or_none() is None:
                        raise ResourceNotFoundError("Volunteer", volunteer_id)
                    entity.volunteer_id = volunteer_id
            elif new_status in ("picked_up", "out_for_delivery"):
                entity.picked_up_at = now
            elif new_status == "delivered":
                entity.delivered_at = now
            if notes:
                entity.notes = notes

        elif entity_type == EntityType.DONATION:
            if new_status == "expired":
                entity.expired_at = now
            elif new_status == "archived":
                entity.archived_at = now

        elif entity_type == EntityType.REQUEST:
            if new_status == "claimed":
                entity.claimed_by_id = user_id
            elif new_status == "fulfilled":
                entity.fulfilled_at = now
            elif new_status == "open":
                entity.claimed_by_id = None

    @staticmethod
    async def _sync_parent_donation(
        db: AsyncSession,
        delivery: Delivery,
        new_status: str,
        actor_id: int
    ) -> Optional[ChangeEvent]:
        """Move the claimed donation along with its delivery, or release it on cancellation."""
        sync = DONATION_SYNC.get(new_status)
        if sync is None:
            return None

        target, sources = sync
        donation = await WorkflowService.get_entity(db, EntityType.DONATION, delivery.donation_id)
        if donation.status not in sources:
            return None

        previous = donation.status
        donation.status = target
        return ChangeEvent(EntityType.DONATION.value, donation.id, previous, target, actor_id)

    @staticmethod
    async def _release_deliveries(db: AsyncSession, donation: Donation, actor_id: int) -> List[ChangeEvent]:
        """Cancel the open deliveries of a donation that goes back to available."""
        result = await db.execute(
            select(Delivery).where(Delivery.donation_id == donation.id).order_by(Delivery.id)
        )
        events = []
        for delivery in result.scalars().all():
            if is_final(EntityType.DELIVERY, delivery.status):
                continue
            events.append(ChangeEvent(
                EntityType.DELIVERY.value, delivery.id, delivery.status, "cancelled", actor_id
            ))
            delivery.status = "cancelled"
        return events

    @staticmethod
    async def _finalize(
        db: AsyncSession,
        redis,
        events: List[ChangeEvent],
        current_user: dict,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Audit and publish events whose changes are already committed."""
        for event in events:
            logger.info(
                "%s %s: %s -> %s (actor=%s)",
                event.entity_type, event.entity_id, event.previous_status,
                event.status, current_user.get("user_id")
            )
            await log_event(
                db=db,
                action=AuditAction.STATUS_CHANGED,
                actor_id=current_user.get("user_id"),
                actor_username=current_user.get("sub"),
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                previous_status=event.previous_status,
                new_status=event.status,
                metadata=metadata
            )

        await CacheService.delete(STATUS_SUMMARY_CACHE_KEY)

        for event in events:
            await publish_change(redis, event)

    @staticmethod
    async def update_status(
        db: AsyncSession,
        redis,
        entity_type: Union[EntityType, str],
        entity_id: int,
        new_status: str,
        current_user: dict,
        expected_status: Optional[str] = None,
        volunteer_id: Optional[int] = None,
        notes: Optional[str] = None
    ) -> StatusChangeResult:
        """
        Move an entity to a new status.

        Flow:
        1. Load entity (404)
        2. Optional precondition on the stored status (409 on mismatch)
        3. Validate the transition for the caller's role (422 / 409)
        4. Check the caller is a party to the entity (403)
        5. Apply side-effect fields and sync the parent donation
        6. Commit, audit, notify, publish
        """
        entity_type = EntityType(entity_type)
        role = current_user["role"]
        user_id = current_user["user_id"]

        if entity_type == EntityType.DONATION and new_status == "claimed":
            return await WorkflowService.claim_donation(
                db, redis, entity_id, current_user, expected_status=expected_status
            )

        entity = await WorkflowService.get_entity(db, entity_type, entity_id)
        previous = entity.status

        if expected_status is not None and expected_status != previous:
            raise StatusConflictError(entity_type.value, entity_id, expected_status, previous)

        validate_transition(entity_type, previous, new_status, role)
        await WorkflowService.check_participation(db, entity_type, entity, role, user_id, new_status)
        await WorkflowService._apply_side_effects(
            db, entity_type, entity, new_status, role, user_id, volunteer_id, notes
        )

        entity.status = new_status
        events = [ChangeEvent(entity_type.value, entity.id, previous, new_status, user_id)]

        if entity_type == EntityType.DELIVERY:
            synced = await WorkflowService._sync_parent_donation(db, entity, new_status, user_id)
            if synced:
                events.append(synced)
        elif entity_type == EntityType.DONATION and new_status == "available":
            events.extend(await WorkflowService._release_deliveries(db, entity, user_id))

        recipients = await WorkflowService.participants(db, entity_type, entity)
        await NotificationService.notify_status_change(
            db, recipients, user_id, entity_type.value, entity.id,
            _entity_title(entity_type, entity), new_status
        )

        await db.commit()
        await db.refresh(entity)

        await WorkflowService._finalize(db, redis, events, current_user)

        return StatusChangeResult(
            entity_type=entity_type,
            entity=entity,
            previous_status=previous,
            events=events,
        )

    @staticmethod
    async def claim_donation(
        db: AsyncSession,
        redis,
        donation_id: int,
        current_user: dict,
        delivery_mode: Optional[DeliveryMode] = None,
        request_id: Optional[int] = None,
        expected_status: Optional[str] = None
    ) -> StatusChangeResult:
        """
        Recipient claims a donation: donation -> claimed and a delivery is
        opened (pending for volunteer mode, coordination_needed for direct).
        """
        role = current_user["role"]
        user_id = current_user["user_id"]

        donation = await WorkflowService.get_entity(db, EntityType.DONATION, donation_id)
        previous = donation.status

        if expected_status is not None and expected_status != previous:
            raise StatusConflictError(EntityType.DONATION.value, donation_id, expected_status, previous)

        validate_transition(EntityType.DONATION, previous, "claimed", role)

        if request_id is not None:
            request = await WorkflowService.get_entity(db, EntityType.REQUEST, request_id)
            if request.requester_id != user_id:
                raise InsufficientPermissionsError("You can only link your own requests")
            if request.status not in LINKABLE_REQUEST_STATUSES:
                raise BadRequestError(
                    f"Request {request_id} is {request.status} and cannot be linked",
                    details={"request_id": request_id, "current_status": request.status}
                )

        mode = delivery_mode or donation.delivery_mode
        donation.status = "claimed"

        delivery = Delivery(
            donation_id=donation.id,
            request_id=request_id,
            donor_id=donation.donor_id,
            recipient_id=user_id,
            delivery_mode=mode,
            status="coordination_needed" if mode == DeliveryMode.DIRECT else "pending",
        )
        db.add(delivery)
        await db.flush()

        await NotificationService.notify_status_change(
            db, [donation.donor_id], user_id, EntityType.DONATION.value,
            donation.id, donation.title, "claimed"
        )

        await db.commit()
        await db.refresh(donation)
        await db.refresh(delivery)

        events = [
            ChangeEvent(EntityType.DONATION.value, donation.id, previous, "claimed", user_id),
            ChangeEvent(EntityType.DELIVERY.value, delivery.id, None, delivery.status, user_id),
        ]

        await log_event(
            db=db,
            action=AuditAction.DELIVERY_CREATED,
            actor_id=user_id,
            actor_username=current_user.get("sub"),
            entity_type=EntityType.DELIVERY.value,
            entity_id=delivery.id,
            new_status=delivery.status,
            metadata={"donation_id": donation.id, "delivery_mode": mode.value}
        )
        await WorkflowService._finalize(db, redis, events[:1], current_user)
        await publish_change(redis, events[1])

        return StatusChangeResult(
            entity_type=EntityType.DONATION,
            entity=donation,
            previous_status=previous,
            events=events,
            delivery=delivery,
        )

    @staticmethod
    async def expire_donations(
        db: AsyncSession,
        redis,
        current_user: Optional[dict] = None,
        now: Optional[datetime] = None,
        retention_days: Optional[int] = None
    ) -> SweepResult:
        """
        Expire donations past their expiration date, then archive donations
        that have been expired for longer than the retention period.
        """
        now = now or _now()
        retention_days = settings.expiry_retention_days if retention_days is None else retention_days
        actor = current_user or {}

        expirable = sorted({
            t.source for t in TRANSITIONS[EntityType.DONATION] if t.target == "expired"
        })

        result = await db.execute(
            select(Donation).where(
                Donation.expiration_date.is_not(None),
                Donation.expiration_date < now,
                Donation.status.in_(expirable)
            ).order_by(Donation.id)
        )
        events = []
        expired_ids = []
        for donation in result.scalars().all():
            events.append(ChangeEvent(
                EntityType.DONATION.value, donation.id, donation.status, "expired", actor.get("user_id")
            ))
            donation.status = "expired"
            donation.expired_at = now
            expired_ids.append(donation.id)
        await db.flush()

        cutoff = now - timedelta(days=retention_days)
        result = await db.execute(
            select(Donation).where(
                Donation.status == "expired",
                Donation.expired_at < cutoff
            ).order_by(Donation.id)
        )
        archived_ids = []
        for donation in result.scalars().all():
            events.append(ChangeEvent(
                EntityType.DONATION.value, donation.id, "expired", "archived", actor.get("user_id")
            ))
            donation.status = "archived"
            donation.archived_at = now
            archived_ids.append(donation.id)

        await db.commit()

        if events:
            await WorkflowService._finalize(
                db, redis, events, actor, metadata={"job": AuditAction.EXPIRY_SWEEP}
            )

        logger.info("Expiry sweep: %d expired, %d archived", len(expired_ids), len(archived_ids))
        return SweepResult(expired_ids=expired_ids, archived_ids=archived_ids)

    @staticmethod
    async def volunteer_stats(db: AsyncSession, volunteer_id: int) -> Dict[str, int]:
        result = await db.execute(select(Delivery.status).where(Delivery.volunteer_id == volunteer_id))
        statuses = result.scalars().all()
        return {
            "total_deliveries": len(statuses),
            "completed_deliveries": sum(1 for s in statuses if s == "delivered"),
            "active_deliveries": sum(1 for s in statuses if s not in ("delivered", "cancelled")),
        }

    @staticmethod
    async def status_summary(db: AsyncSession) -> Dict[str, Any]:
        """Counts per status for each entity type, bucketed into stages and terminal outcomes."""
        cached = await CacheService.get(STATUS_SUMMARY_CACHE_KEY)
        if cached is not None:
            return cached

        summary = {}
        for entity_type, model in ENTITY_MODELS.items():
            result = await db.execute(
                select(model.status, func.count(model.id)).group_by(model.status)
            )
            counts = dict(result.all())

            stage_rows = []
            for stage in stages_for(entity_type):
                stage_rows.append({
                    "id": stage.id,
                    "label": stage.label,
                    "ordinal": stage.ordinal,
                    "count": sum(counts.pop(sid, 0) for sid in stage.status_ids),
                })

            terminal_rows = [
                {"id": t.id, "label": t.label, "count": counts.pop(t.id, 0)}
                for t in terminal_statuses_for(entity_type)
            ]
            # Terminal values written by older clients for another entity type
            for status in [s for s in counts if s in TERMINAL_STATUSES]:
                terminal_rows.append({
                    "id": status,
                    "label": TERMINAL_STATUSES[status].label,
                    "count": counts.pop(status),
                })

            summary[entity_type.value] = {
                "stages": stage_rows,
                "terminal": terminal_rows,
                "unrecognized": counts,
                "total": sum(r["count"] for r in stage_rows)
                + sum(r["count"] for r in terminal_rows)
                + sum(counts.values()),
            }

        await CacheService.set(STATUS_SUMMARY_CACHE_KEY, summary, settings.report_cache_ttl_seconds)
        return summary

    @staticmethod
    async def get_snapshot(
        db: AsyncSession,
        redis,
        entity_type: Union[EntityType, str],
        entity_id: int
    ) -> Tuple[Dict[str, Any], str]:
        """
        Latest status snapshot for one entity, from the cache when present.

        Returns the snapshot and its source ("cache" or "database"). While the
        Redis circuit is open the cache may be missing recent changes, so it
        is skipped.
        """
        entity_type = EntityType(entity_type)
        cache = StatusCache(redis)
        try:
            cached = await redis_circuit_breaker.call(cache.get, entity_type, entity_id)
        except CircuitOpenError:
            cached = None
        except Exception as e:
            logger.warning("Status cache read failed for %s %s: %s", entity_type.value, entity_id, e)
            cached = None
        if cached is not None:
            return cached, "cache"

        entity = await WorkflowService.get_entity(db, entity_type, entity_id)
        snapshot = build_snapshot(entity_type, entity.id, entity.status, _iso(entity.updated_at))
        try:
            await redis_circuit_breaker.call(cache.put, snapshot)
        except CircuitOpenError:
            logger.debug("Redis circuit open, skipped status cache backfill for %s %s", entity_type.value, entity_id)
        except Exception as e:
            logger.warning("Status cache backfill failed for %s %s: %s", entity_type.value, entity_id, e)
        return snapshot, "database"
