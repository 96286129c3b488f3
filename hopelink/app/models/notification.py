"""
Notification Database Model.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.sql import func
from hopelink.app.db.session import Base
import enum


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    STATUS_UPDATE = "STATUS_UPDATE"
    CLAIM = "CLAIM"
    WARNING = "WARNING"


class Notification(Base):
    """
    In-App Notification.
    Created when another party moves an entity the user owns.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Content
    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    metadata_payload = Column(JSON, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, title='{self.title}')>"
