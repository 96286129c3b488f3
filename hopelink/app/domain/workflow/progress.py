"""
Progress computation for workflow progress bars.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from hopelink.app.domain.workflow.stages import (
    EntityType, Stage, TerminalStatus, resolve_status, stages_for
)

COMPLETED = "completed"
CURRENT = "current"
UPCOMING = "upcoming"


@dataclass(frozen=True)
class StepState:
    index: int
    state: str

    @property
    def completed(self) -> bool:
        return self.state == COMPLETED

    @property
    def current(self) -> bool:
        return self.state == CURRENT

    @property
    def upcoming(self) -> bool:
        return self.state == UPCOMING


@dataclass(frozen=True)
class Progress:
    current_ordinal: int
    total_stages: int
    percentage: int
    steps: Tuple[StepState, ...]


@dataclass(frozen=True)
class StatusView:
    """Everything a client needs to render one entity's status."""
    entity_type: EntityType
    status: Optional[str]
    record: Union[Stage, TerminalStatus]
    recognized: bool
    progress: Optional[Progress]
    stages: Tuple[Stage, ...]

    @property
    def is_terminal(self) -> bool:
        return self.record.is_terminal


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_progress(current_ordinal: int, total_stages: int) -> Progress:
    """
    Classify every stage index against the current ordinal and compute the
    overall percentage.

    The ordinal is clamped into [0, total_stages - 1] so the percentage stays
    within [0, 100].
    """
    if total_stages < 1:
        raise ValueError(f"total_stages must be >= 1, got {total_stages}")

    current = min(max(current_ordinal, 0), total_stages - 1)

    if total_stages > 1:
        percentage = _round_half_up(current / (total_stages - 1) * 100)
    else:
        percentage = 100

    steps = []
    for i in range(total_stages):
        if i < current:
            state = COMPLETED
        elif i == current:
            state = CURRENT
        else:
            state = UPCOMING
        steps.append(StepState(index=i, state=state))

    return Progress(
        current_ordinal=current,
        total_stages=total_stages,
        percentage=percentage,
        steps=tuple(steps),
    )


def describe_status(entity_type: Union[EntityType, str], status: Optional[str]) -> StatusView:
    """
    Resolve a status and attach its progress.

    Terminal outcomes get no progress: they are rendered on their own branch
    and are never placed on the linear sequence.
    """
    entity_type = EntityType(entity_type)
    stages = stages_for(entity_type)
    record = resolve_status(entity_type, status)

    if record.is_terminal:
        progress = None
        recognized = True
    else:
        progress = compute_progress(record.ordinal, len(stages))
        recognized = status is not None and status in record.status_ids

    return StatusView(
        entity_type=entity_type,
        status=status,
        record=record,
        recognized=recognized,
        progress=progress,
        stages=stages,
    )
