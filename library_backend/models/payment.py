from sqlalchemy import Column, String, Numeric, Text, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from library_backend.database import Base, UTCDateTime, new_id
from library_backend.models.enums import PaymentMethod, PaymentStatus
from library_backend.utils.timezone import now_utc

class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    payment_status = Column(Enum(PaymentStatus, name="payment_status"), default=PaymentStatus.COMPLETED, nullable=False, index=True)
    late_fee = Column(Numeric(10, 2), default=0, nullable=False)
    damage_charge = Column(Numeric(10, 2), default=0, nullable=False)
    security_deposit = Column(Numeric(10, 2), default=0, nullable=False)
    payment_date = Column(UTCDateTime, default=now_utc, nullable=False, index=True)
    refund_amount = Column(Numeric(10, 2), default=0, nullable=False)
    refund_date = Column(UTCDateTime, nullable=True)
    refund_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    recorded_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(UTCDateTime, default=now_utc)

    # Relationships
    user = relationship("User", back_populates="payments", foreign_keys=[user_id])
    transaction = relationship("Transaction", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payment_amount_positive"),
        CheckConstraint("refund_amount >= 0 AND refund_amount <= amount", name="chk_payment_refund_bounds"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "transactionId": self.transaction_id,
            "amount": float(self.amount),
            "paymentMethod": self.payment_method.value,
            "paymentStatus": self.payment_status.value,
            "lateFee": float(self.late_fee or 0),
            "damageCharge": float(self.damage_charge or 0),
            "securityDeposit": float(self.security_deposit or 0),
            "paymentDate": self.payment_date.isoformat() if self.payment_date else None,
            "refundAmount": float(self.refund_amount or 0),
            "refundDate": self.refund_date.isoformat() if self.refund_date else None,
            "refundReason": self.refund_reason,
            "notes": self.notes,
            "recordedBy": self.recorded_by,
            "book": self.transaction.book.to_summary() if self.transaction and self.transaction.book else None,
        }
