"""
Delivery Pydantic schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict

from hopelink.app.models.enums import DeliveryMode
from hopelink.app.schemas.workflow import StatusViewResponse


class DeliveryResponse(BaseModel):
    id: int
    donation_id: int
    request_id: Optional[int]
    donor_id: int
    recipient_id: int
    volunteer_id: Optional[int]
    delivery_mode: DeliveryMode
    status: str
    notes: Optional[str]
    picked_up_at: Optional[datetime]
    delivered_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DeliveryDetailResponse(DeliveryResponse):
    """Delivery with party names, rendered status and the caller's legal moves."""
    donation_title: str
    donor_name: str
    recipient_name: str
    volunteer_name: str
    display: Dict[str, str]
    view: StatusViewResponse
    allowed_transitions: List[str]


class DeliveryListResponse(BaseModel):
    deliveries: List[DeliveryResponse]
    total: int
    page: int
    page_size: int


class VolunteerStatsResponse(BaseModel):
    volunteer_id: int
    total_deliveries: int
    completed_deliveries: int
    active_deliveries: int
