"""
Workflow API Endpoints.

Stage tables, status descriptions and transition rules for rendering
clients, plus the generic status-change boundary and the change feed.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from hopelink.app.core.dependencies import get_current_user
from hopelink.app.core.redis_client import get_redis
from hopelink.app.db.session import get_db
from hopelink.app.domain.workflow.progress import describe_status
from hopelink.app.domain.workflow.stages import EntityType, stages_for, terminal_statuses_for
from hopelink.app.domain.workflow.transitions import TRANSITIONS
from hopelink.app.domain.workflow.workflow_service import WorkflowService
from hopelink.app.schemas.workflow import (
    StageOut, TerminalStatusOut, StageTableResponse, StatusViewResponse,
    TransitionOut, TransitionTableResponse, AllowedTransitionsResponse,
    StatusUpdate, StatusUpdateResponse, SnapshotResponse
)
from hopelink.app.services.change_feed import channel_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow", tags=["Workflow"])
changes_router = APIRouter(prefix="/changes", tags=["Workflow - Change Feed"])

HEARTBEAT_SECONDS = 15.0


def _stage_table(entity_type: EntityType) -> StageTableResponse:
    return StageTableResponse(
        entity_type=entity_type,
        stages=[StageOut.from_stage(s) for s in stages_for(entity_type)],
        terminal_statuses=[
            TerminalStatusOut.model_validate(t) for t in terminal_statuses_for(entity_type)
        ],
    )


@router.get("/stages", response_model=List[StageTableResponse])
async def list_stage_tables():
    """Every entity type's ordered stages and terminal outcomes."""
    return [_stage_table(entity_type) for entity_type in EntityType]


@router.get("/stages/{entity_type}", response_model=StageTableResponse)
async def get_stage_table(entity_type: EntityType = Path(...)):
    return _stage_table(entity_type)


@router.get("/stages/{entity_type}/describe", response_model=StatusViewResponse)
async def describe(
    entity_type: EntityType = Path(...),
    status: Optional[str] = Query(None, description="Status value to resolve")
):
    """
    Resolve a status value to its render-ready view.

    Never fails for an unrecognized value: it falls back to the first stage
    with `recognized` set to false.
    """
    return StatusViewResponse.from_view(describe_status(entity_type, status))


@router.get("/transitions/{entity_type}", response_model=TransitionTableResponse)
async def get_transition_table(entity_type: EntityType = Path(...)):
    return TransitionTableResponse(
        entity_type=entity_type,
        transitions=[
            TransitionOut(source=t.source, target=t.target, actors=sorted(t.actors))
            for t in TRANSITIONS[entity_type]
        ],
    )


@router.get("/{entity_type}/{entity_id}/allowed", response_model=AllowedTransitionsResponse)
async def get_allowed_transitions(
    entity_type: EntityType = Path(...),
    entity_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Status moves the current user may make on this entity right now."""
    entity = await WorkflowService.get_entity(db, entity_type, entity_id)
    allowed = await WorkflowService.allowed_for_user(db, entity_type, entity, current_user)
    return AllowedTransitionsResponse(
        entity_type=entity_type,
        entity_id=entity.id,
        current_status=entity.status,
        role=current_user["role"],
        allowed=allowed,
    )


@router.patch("/{entity_type}/{entity_id}/status", response_model=StatusUpdateResponse)
async def update_status(
    payload: StatusUpdate,
    entity_type: EntityType = Path(...),
    entity_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Move any entity to a new status.

    Errors:
    - 404 entity not found
    - 403 caller is not a party to the entity
    - 409 illegal transition (ERR_WORKFLOW_001) or stale expected_status (ERR_WORKFLOW_003)
    - 422 unknown status value (ERR_WORKFLOW_002)
    """
    result = await WorkflowService.update_status(
        db, redis, entity_type, entity_id, payload.status, current_user,
        expected_status=payload.expected_status,
        volunteer_id=payload.volunteer_id,
        notes=payload.notes,
    )
    return StatusUpdateResponse.from_result(result)


@router.get("/{entity_type}/{entity_id}/snapshot", response_model=SnapshotResponse)
async def get_snapshot(
    entity_type: EntityType = Path(...),
    entity_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Latest status of one entity, served from the status cache when warm."""
    snapshot, source = await WorkflowService.get_snapshot(db, redis, entity_type, entity_id)
    return SnapshotResponse(**snapshot, source=source)


@changes_router.get("/{entity_type}/stream")
async def stream_changes(
    request: Request,
    entity_type: EntityType = Path(...),
    current_user: dict = Depends(get_current_user),
    redis=Depends(get_redis)
):
    """
    Server-sent events relay of the change channel for one entity type.

    Each event carries a single entity's change so clients patch that entity
    in place.
    """
    channel = channel_for(entity_type)

    async def event_generator():
        pubsub = redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("Change stream opened on %s by user %s", channel, current_user.get("user_id"))
        try:
            while not await request.is_disconnected():
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=HEARTBEAT_SECONDS
                )
                if message is None:
                    yield ": heartbeat\n\n"
                    continue
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode()
                yield f"event: status_change\ndata: {data}\n\n"
        except asyncio.CancelledError:
            logger.info("Change stream on %s cancelled", channel)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
