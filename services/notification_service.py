"""
In-app notifications.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from database.models import Notification


class NotificationService:

    @staticmethod
    def notify(
        db: Session,
        user_id: int,
        title: str,
        message: str,
        type: str = "info",
        related_type: Optional[str] = None,
        related_id: Optional[int] = None,
        action_url: Optional[str] = None,
    ) -> Notification:
        """Queue a notification for a user; committed with the caller's transaction."""
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            related_type=related_type,
            related_id=related_id,
            action_url=action_url,
        )
        db.add(notification)
        return notification

    @staticmethod
    def unread_count(db: Session, user_id: int) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).count()

    @staticmethod
    def mark_all_read(db: Session, user_id: int) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
