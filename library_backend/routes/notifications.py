from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from library_backend.database import get_db
from library_backend.models.enums import NotificationCategory
from library_backend.models.user import User
from library_backend.schemas.common import ApiResponse, ok, paged
from library_backend.services import notifications
from library_backend.services.auth import get_current_user

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])

@router.get("", response_model=ApiResponse)
async def list_notifications(
    read: Optional[bool] = Query(None),
    category: Optional[NotificationCategory] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the current user's notifications, newest first."""
    items, pagination = notifications.list_notifications(
        db, current_user.id, current_user, read, category, page, limit
    )
    return paged([item.to_dict() for item in items], pagination)

@router.get("/unread-count", response_model=ApiResponse)
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ok({"count": notifications.unread_count(db, current_user.id, current_user)})

@router.patch("/read-all", response_model=ApiResponse)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    updated = notifications.mark_all_read(db, current_user)
    return ok({"updated": updated}, "All notifications marked as read")

@router.delete("", response_model=ApiResponse)
async def delete_all_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    deleted = notifications.delete_all(db, current_user)
    return ok({"deleted": deleted}, "All notifications deleted")

@router.patch("/{notification_id}/read", response_model=ApiResponse)
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification = notifications.mark_read(db, notification_id, current_user)
    return ok({"notification": notification.to_dict()}, "Notification marked as read")

@router.delete("/{notification_id}", response_model=ApiResponse)
async def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notifications.delete_notification(db, notification_id, current_user)
    return ok(message="Notification deleted")
