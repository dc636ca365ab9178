import logging
from typing import Optional

from sqlalchemy.orm import Session

from library_backend.models.enums import NotificationCategory, NotificationType, UserRole
from library_backend.models.notification import Notification
from library_backend.models.user import User
from library_backend.services import system_settings
from library_backend.services.errors import ForbiddenError, NotFoundError
from library_backend.services.mqtt_service import mqtt_service
from library_backend.services.policy import ensure_can_view
from library_backend.utils.pagination import paginate
from library_backend.utils.timezone import now_utc

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Best-effort notification side-channel.

    Dispatch runs after the triggering mutation has committed. It stores an
    in-app notification and pushes it to the MQTT publisher; any failure is
    logged and discarded so the caller's result never depends on it.
    """

    def __init__(self, publisher):
        self.publisher = publisher

    def _deliver(self, db: Session, user_id: str, category: NotificationCategory,
                 title: str, message: str) -> Optional[Notification]:
        if not system_settings.get_value(db, "system.notifications_enabled", True):
            return None

        notification = Notification(
            user_id=user_id,
            type=NotificationType.IN_APP,
            category=category,
            title=title,
            message=message,
            sent_at=now_utc(),
        )
        db.add(notification)
        db.commit()
        self.publisher.publish_notification(user_id, notification.to_dict())
        return notification

    def dispatch(self, db: Session, user_id: str, category: NotificationCategory,
                 title: str, message: str) -> Optional[Notification]:
        try:
            return self._deliver(db, user_id, category, title, message)
        except Exception:
            db.rollback()
            logger.exception(f"Failed to send {category.value} notification to user {user_id}")
            return None


notifier = NotificationDispatcher(mqtt_service)


def _get_owned(db: Session, notification_id: str, actor: User) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise NotFoundError("Notification not found")
    if notification.user_id != actor.id and actor.role not in (UserRole.ADMIN, UserRole.SUPER_ADMIN):
        raise ForbiddenError("You can only manage your own notifications")
    return notification


def list_notifications(db: Session, user_id: str, actor: User, read: Optional[bool] = None,
                       category: Optional[NotificationCategory] = None, page: int = 1, limit: int = 20):
    ensure_can_view(actor, user_id, "notifications")
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if read is not None:
        query = query.filter(Notification.read == read)
    if category:
        query = query.filter(Notification.category == category)
    return paginate(query.order_by(Notification.created_at.desc()), page, limit)


def unread_count(db: Session, user_id: str, actor: User) -> int:
    ensure_can_view(actor, user_id, "notifications")
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read.is_(False)
    ).count()


def mark_read(db: Session, notification_id: str, actor: User) -> Notification:
    notification = _get_owned(db, notification_id, actor)
    if not notification.read:
        notification.read = True
        notification.read_at = now_utc()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, actor: User) -> int:
    updated = db.query(Notification).filter(
        Notification.user_id == actor.id,
        Notification.read.is_(False)
    ).update({Notification.read: True, Notification.read_at: now_utc()}, synchronize_session=False)
    db.commit()
    return updated


def delete_notification(db: Session, notification_id: str, actor: User) -> None:
    notification = _get_owned(db, notification_id, actor)
    db.delete(notification)
    db.commit()


def delete_all(db: Session, actor: User) -> int:
    deleted = db.query(Notification).filter(
        Notification.user_id == actor.id
    ).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Cleared {deleted} notifications for user {actor.id}")
    return deleted
