"""
Notification Service.

Handles creation and state management of in-app notifications.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Iterable, List

from hopelink.app.domain.workflow.stages import resolve_status
from hopelink.app.models.notification import Notification, NotificationType


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def notify_status_change(
        db: AsyncSession,
        recipients: Iterable[Optional[int]],
        actor_id: Optional[int],
        entity_type: str,
        entity_id: int,
        title: str,
        new_status: str
    ) -> List[Notification]:
        """Tell every participant except the actor that an entity moved."""
        label = resolve_status(entity_type, new_status).label
        created = []
        for user_id in sorted({r for r in recipients if r is not None and r != actor_id}):
            created.append(await NotificationService.create_notification(
                db,
                user_id=user_id,
                title=f"{entity_type.capitalize()} update",
                message=f"'{title}' is now {label}",
                type=NotificationType.STATUS_UPDATE,
                metadata={
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "status": new_status
                }
            ))
        return created

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.now(timezone.utc)
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=datetime.now(timezone.utc)
        )
        result = await db.execute(stmt)
        return result.rowcount
