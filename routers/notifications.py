"""
In-app notification APIs. Every route is limited to the caller's own notifications.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from database.models import User, Notification
from auth.dependencies import get_db_session, get_current_user, require_admin
from core.utils import model_to_dict
from services.notification_service import NotificationService
from services.policy import can_transition_user


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class NotificationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId")
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: str = "info"
    related_type: Optional[str] = Field(None, alias="relatedType")
    related_id: Optional[int] = Field(None, alias="relatedId")
    action_url: Optional[str] = Field(None, alias="actionUrl")


def _get_own_notification(db: Session, notification_id: int, current_user: User) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == current_user.id
    ).first()
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.get("")
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    unread_only: bool = Query(False, alias="unreadOnly"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    return {
        "data": [model_to_dict(n) for n in notifications],
        "total": len(notifications),
        "unreadCount": NotificationService.unread_count(db, current_user.id),
    }


@router.get("/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return {"count": NotificationService.unread_count(db, current_user.id)}


@router.patch("/read-all")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    updated = NotificationService.mark_all_read(db, current_user.id)
    db.commit()
    return {"message": "All notifications marked as read", "updated": updated}


@router.delete("/read/all")
async def delete_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    deleted = db.query(Notification).filter(
        Notification.user_id == current_user.id,
        Notification.is_read.is_(True)
    ).delete(synchronize_session=False)
    db.commit()
    return {"message": "Read notifications deleted", "deleted": deleted}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    body: NotificationCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Admins notify users they have authority over, or themselves."""
    target = db.get(User, body.user_id)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if target.id != current_user.id and not can_transition_user(current_user, target):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot notify this user")

    notification = NotificationService.notify(
        db, target.id, body.title, body.message, type=body.type,
        related_type=body.related_type, related_id=body.related_id, action_url=body.action_url
    )
    db.commit()
    db.refresh(notification)
    return {"message": "Notification created", "notification": model_to_dict(notification)}


@router.get("/{notification_id}")
async def get_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return model_to_dict(_get_own_notification(db, notification_id, current_user))


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    notification = _get_own_notification(db, notification_id, current_user)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return {"message": "Notification marked as read", "notification": model_to_dict(notification)}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    notification = _get_own_notification(db, notification_id, current_user)
    db.delete(notification)
    db.commit()
    return {"message": "Notification deleted"}
