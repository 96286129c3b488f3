"""
Donation request Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Optional, List, Dict

from hopelink.app.models.enums import Urgency
from hopelink.app.schemas.workflow import StatusViewResponse


class RequestCreate(BaseModel):
    """Schema for posting a new request."""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    category: str = Field(..., min_length=1, max_length=100)
    quantity_needed: int = Field(default=1, ge=1)
    urgency: Urgency = Field(default=Urgency.MEDIUM)
    needed_by: Optional[date] = None


class RequestUpdate(BaseModel):
    """Schema for editing an open request."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    quantity_needed: Optional[int] = Field(None, ge=1)
    urgency: Optional[Urgency] = None
    needed_by: Optional[date] = None


class RequestResponse(BaseModel):
    id: int
    requester_id: int
    title: str
    description: Optional[str]
    category: str
    quantity_needed: int
    urgency: Urgency
    needed_by: Optional[date]
    status: str
    claimed_by_id: Optional[int]
    fulfilled_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RequestDetailResponse(RequestResponse):
    requester_name: str
    display: Dict[str, str]
    view: StatusViewResponse
    allowed_transitions: List[str]


class RequestListResponse(BaseModel):
    requests: List[RequestResponse]
    total: int
    page: int
    page_size: int
