"""
Admin report schemas.
"""

from pydantic import BaseModel
from typing import List, Dict


class StageCount(BaseModel):
    id: str
    label: str
    ordinal: int
    count: int


class TerminalCount(BaseModel):
    id: str
    label: str
    count: int


class EntityStatusSummary(BaseModel):
    """Counts for one entity type. Aliases are counted in their stage."""
    stages: List[StageCount]
    terminal: List[TerminalCount]
    unrecognized: Dict[str, int]
    total: int


class StatusSummaryResponse(BaseModel):
    donation: EntityStatusSummary
    request: EntityStatusSummary
    delivery: EntityStatusSummary


class ExpirySweepResponse(BaseModel):
    message: str
    expired: List[int]
    archived: List[int]
