"""
Workflow Pydantic schemas.

Stage tables, status views and status-change payloads exposed to rendering
clients.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from hopelink.app.domain.workflow.progress import StatusView, describe_status
from hopelink.app.domain.workflow.stages import EntityType, Stage


class StageOut(BaseModel):
    """One stage of a linear lifecycle."""
    id: str
    ordinal: int
    label: str
    actor: str
    icon: str
    color: str
    description: str
    aliases: List[str] = []

    @classmethod
    def from_stage(cls, stage: Stage) -> "StageOut":
        return cls(
            id=stage.id,
            ordinal=stage.ordinal,
            label=stage.label,
            actor=stage.actor.value,
            icon=stage.icon,
            color=stage.color,
            description=stage.description,
            aliases=list(stage.aliases),
        )


class TerminalStatusOut(BaseModel):
    id: str
    label: str
    icon: str
    color: str
    description: str

    class Config:
        from_attributes = True


class StageTableResponse(BaseModel):
    entity_type: EntityType
    stages: List[StageOut]
    terminal_statuses: List[TerminalStatusOut]


class StepStateOut(BaseModel):
    index: int
    state: str = Field(..., description="completed, current or upcoming")


class ProgressOut(BaseModel):
    current_ordinal: int
    total_stages: int
    percentage: int
    steps: List[StepStateOut]


class StatusViewResponse(BaseModel):
    """
    Render-ready description of a status.

    `progress` is null for terminal outcomes, which are drawn on their own
    branch. `recognized` is false when an unknown value fell back to the
    first stage.
    """
    entity_type: EntityType
    status: Optional[str]
    label: str
    icon: str
    color: str
    description: str
    ordinal: Optional[int]
    is_terminal: bool
    recognized: bool
    progress: Optional[ProgressOut]

    @classmethod
    def from_view(cls, view: StatusView) -> "StatusViewResponse":
        progress = None
        if view.progress is not None:
            progress = ProgressOut(
                current_ordinal=view.progress.current_ordinal,
                total_stages=view.progress.total_stages,
                percentage=view.progress.percentage,
                steps=[StepStateOut(index=s.index, state=s.state) for s in view.progress.steps],
            )
        return cls(
            entity_type=view.entity_type,
            status=view.status,
            label=view.record.label,
            icon=view.record.icon,
            color=view.record.color,
            description=view.record.description,
            ordinal=view.record.ordinal,
            is_terminal=view.is_terminal,
            recognized=view.recognized,
            progress=progress,
        )


class TransitionOut(BaseModel):
    source: str
    target: str
    actors: List[str]


class TransitionTableResponse(BaseModel):
    entity_type: EntityType
    transitions: List[TransitionOut]


class AllowedTransitionsResponse(BaseModel):
    entity_type: EntityType
    entity_id: int
    current_status: str
    role: str
    allowed: List[str]


class StatusUpdate(BaseModel):
    """Body of a status change request."""
    status: str = Field(..., min_length=1, max_length=32, description="Target status")
    expected_status: Optional[str] = Field(
        None, max_length=32,
        description="Reject with 409 if the stored status is no longer this value"
    )
    volunteer_id: Optional[int] = Field(None, description="Volunteer to assign (admin assignment only)")
    notes: Optional[str] = Field(None, max_length=1000, description="Delivery notes")


class StatusUpdateResponse(BaseModel):
    entity_type: EntityType
    entity_id: int
    previous_status: Optional[str]
    status: str
    view: StatusViewResponse
    synced: List[Dict[str, Any]] = Field(default_factory=list, description="Related entities moved by this change")
    delivery_id: Optional[int] = None

    @classmethod
    def from_result(cls, result) -> "StatusUpdateResponse":
        entity = result.entity
        primary, related = result.events[0], result.events[1:]
        return cls(
            entity_type=result.entity_type,
            entity_id=entity.id,
            previous_status=result.previous_status,
            status=entity.status,
            view=StatusViewResponse.from_view(describe_status(result.entity_type, entity.status)),
            synced=[
                {"entity_type": e.entity_type, "entity_id": e.entity_id, "status": e.status}
                for e in related
                if (e.entity_type, e.entity_id) != (primary.entity_type, primary.entity_id)
            ],
            delivery_id=result.delivery.id if result.delivery is not None else None,
        )


class SnapshotResponse(BaseModel):
    entity_type: EntityType
    entity_id: int
    status: Optional[str]
    label: str
    ordinal: Optional[int]
    percentage: Optional[int]
    is_terminal: bool
    updated_at: Optional[str]
    source: str = Field(..., description="cache or database")
