from sqlalchemy import Column, String, Boolean, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
from library_backend.database import Base, UTCDateTime, new_id
from library_backend.models.enums import NotificationType, NotificationCategory
from library_backend.utils.timezone import now_utc

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(NotificationType, name="notification_type"), default=NotificationType.IN_APP, nullable=False)
    category = Column(Enum(NotificationCategory, name="notification_category"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, default=False, nullable=False, index=True)
    sent_at = Column(UTCDateTime, default=now_utc)
    read_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc)

    user = relationship("User", back_populates="notifications")

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type.value,
            "category": self.category.value,
            "title": self.title,
            "message": self.message,
            "read": self.read,
            "sentAt": self.sent_at.isoformat() if self.sent_at else None,
            "readAt": self.read_at.isoformat() if self.read_at else None,
        }
