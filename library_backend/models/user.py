from sqlalchemy import Column, String, Text, Enum
from sqlalchemy.orm import relationship
from library_backend.database import Base, UTCDateTime, new_id
from library_backend.models.enums import UserRole, UserStatus
from library_backend.utils.timezone import now_utc

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(Enum(UserRole, name="user_role"), default=UserRole.USER, nullable=False, index=True)
    status = Column(Enum(UserStatus, name="user_status"), default=UserStatus.PENDING_APPROVAL, nullable=False, index=True)
    suspension_reason = Column(Text, nullable=True)
    last_login_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc)

    # Relationships
    transactions = relationship("Transaction", back_populates="user", foreign_keys="Transaction.user_id")
    payments = relationship("Payment", back_populates="user", foreign_keys="Payment.user_id")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_summary(self):
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "name": self.full_name,
            "phone": self.phone,
            "role": self.role.value,
            "status": self.status.value,
            "suspensionReason": self.suspension_reason,
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
