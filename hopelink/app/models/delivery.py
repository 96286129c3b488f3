"""
Delivery database model.

A delivery is created when a recipient claims a donation. It pairs the
donor and the recipient and, in volunteer mode, a volunteer.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Text
from sqlalchemy.sql import func
from hopelink.app.db.session import Base
from hopelink.app.models.enums import DeliveryMode


class Delivery(Base):
    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Claim (donor <-> recipient pairing)
    donation_id = Column(Integer, ForeignKey('donations.id'), nullable=False, index=True)
    request_id = Column(Integer, ForeignKey('donation_requests.id'), nullable=True, index=True)
    donor_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Assignment (volunteer mode only)
    volunteer_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    delivery_mode = Column(Enum(DeliveryMode), default=DeliveryMode.VOLUNTEER, nullable=False)

    # Workflow
    status = Column(String(32), default="pending", nullable=False, index=True)
    notes = Column(Text, nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Delivery(id={self.id}, donation_id={self.donation_id}, status='{self.status}')>"
