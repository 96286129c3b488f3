"""
Donation database model.

Donors post donations; recipients claim them and a delivery carries them over.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Text
from sqlalchemy.sql import func
from hopelink.app.db.session import Base
from hopelink.app.models.enums import DeliveryMode


class Donation(Base):
    """
    Donation model.

    `status` holds a donation stage id (available ... completed) or a
    terminal outcome (cancelled, expired, rejected, archived).
    """
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    donor_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Details
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    condition = Column(String(50), nullable=True)
    pickup_location = Column(String(500), nullable=True)
    delivery_mode = Column(Enum(DeliveryMode), default=DeliveryMode.VOLUNTEER, nullable=False)

    # Workflow
    status = Column(String(32), default="available", nullable=False, index=True)
    expiration_date = Column(DateTime(timezone=True), nullable=True, index=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Donation(id={self.id}, title='{self.title}', status='{self.status}')>"
