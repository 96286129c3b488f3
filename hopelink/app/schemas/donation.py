"""
Donation Pydantic schemas.

Defines request and response models for donation management.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict

from hopelink.app.models.enums import DeliveryMode
from hopelink.app.schemas.workflow import StatusViewResponse


class DonationCreate(BaseModel):
    """Schema for posting a new donation."""
    title: str = Field(..., min_length=1, max_length=200, description="Short item title")
    description: Optional[str] = Field(None, max_length=2000)
    category: str = Field(..., min_length=1, max_length=100, description="Item category")
    quantity: int = Field(default=1, ge=1, description="Number of items")
    condition: Optional[str] = Field(None, max_length=50, description="new, like_new, good, fair")
    pickup_location: Optional[str] = Field(None, max_length=500)
    delivery_mode: DeliveryMode = Field(default=DeliveryMode.VOLUNTEER)
    expiration_date: Optional[datetime] = Field(None, description="After this the donation is expired by the sweep")


class DonationUpdate(BaseModel):
    """Schema for editing an available donation. Status is changed through the status endpoint."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    quantity: Optional[int] = Field(None, ge=1)
    condition: Optional[str] = Field(None, max_length=50)
    pickup_location: Optional[str] = Field(None, max_length=500)
    delivery_mode: Optional[DeliveryMode] = None
    expiration_date: Optional[datetime] = None


class DonationClaim(BaseModel):
    """Schema for a recipient claiming a donation."""
    delivery_mode: Optional[DeliveryMode] = Field(None, description="Defaults to the donation's mode")
    request_id: Optional[int] = Field(None, description="Own request this claim fulfils")
    expected_status: Optional[str] = Field(None, max_length=32)


class DonationResponse(BaseModel):
    """Schema for donation response."""
    id: int
    donor_id: int
    title: str
    description: Optional[str]
    category: str
    quantity: int
    condition: Optional[str]
    pickup_location: Optional[str]
    delivery_mode: DeliveryMode
    status: str
    expiration_date: Optional[datetime]
    expired_at: Optional[datetime]
    archived_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DonationDetailResponse(DonationResponse):
    """Donation with its rendered status and the caller's legal moves."""
    donor_name: str
    display: Dict[str, str]
    view: StatusViewResponse
    allowed_transitions: List[str]


class DonationListResponse(BaseModel):
    """Schema for paginated donation list."""
    donations: List[DonationResponse]
    total: int
    page: int
    page_size: int
