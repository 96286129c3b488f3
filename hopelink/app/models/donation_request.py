"""
Donation request database model.

Recipients post requests describing what they need.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Text, Date
from sqlalchemy.sql import func
from hopelink.app.db.session import Base
from hopelink.app.models.enums import Urgency


class DonationRequest(Base):
    """
    Request model.

    `status` holds a request stage id (open ... fulfilled) or a terminal
    outcome (cancelled, expired, rejected).
    """
    __tablename__ = "donation_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    requester_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Details
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, index=True)
    quantity_needed = Column(Integer, nullable=False, default=1)
    urgency = Column(Enum(Urgency), default=Urgency.MEDIUM, nullable=False)
    needed_by = Column(Date, nullable=True)

    # Workflow
    status = Column(String(32), default="open", nullable=False, index=True)
    claimed_by_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    fulfilled_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<DonationRequest(id={self.id}, title='{self.title}', status='{self.status}')>"
