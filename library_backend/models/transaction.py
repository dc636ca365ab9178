from sqlalchemy import Column, String, Integer, Numeric, Boolean, Text, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from library_backend.database import Base, UTCDateTime, new_id
from library_backend.models.enums import TransactionStatus, BorrowRequestStatus, BookCondition
from library_backend.utils.timezone import now_utc

class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="RESTRICT"), nullable=False, index=True)
    book_copy_id = Column(String(36), ForeignKey("book_copies.id", ondelete="SET NULL"), nullable=True, index=True)
    librarian_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    issue_date = Column(UTCDateTime, default=now_utc, nullable=False, index=True)
    due_date = Column(UTCDateTime, nullable=False, index=True)
    return_date = Column(UTCDateTime, nullable=True)
    status = Column(Enum(TransactionStatus, name="transaction_status"), default=TransactionStatus.ISSUED, nullable=False, index=True)
    renewal_count = Column(Integer, default=0, nullable=False)
    fine_amount = Column(Numeric(10, 2), default=0, nullable=False)
    damage_charge = Column(Numeric(10, 2), default=0, nullable=False)
    fine_paid = Column(Boolean, default=False, nullable=False)
    is_home_delivery = Column(Boolean, default=False, nullable=False)
    return_condition = Column(Enum(BookCondition, name="book_condition"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc)

    # Relationships
    user = relationship("User", back_populates="transactions", foreign_keys=[user_id])
    librarian = relationship("User", foreign_keys=[librarian_id])
    book = relationship("Book", back_populates="transactions")
    book_copy = relationship("BookCopy", back_populates="transactions")
    payments = relationship("Payment", back_populates="transaction")

    __table_args__ = (
        CheckConstraint("fine_amount >= 0", name="chk_transaction_fine_non_negative"),
        CheckConstraint("renewal_count >= 0", name="chk_transaction_renewals_non_negative"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "bookCopyId": self.book_copy_id,
            "librarianId": self.librarian_id,
            "issueDate": self.issue_date.isoformat() if self.issue_date else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "returnDate": self.return_date.isoformat() if self.return_date else None,
            "status": self.status.value,
            "renewalCount": self.renewal_count,
            "fineAmount": float(self.fine_amount or 0),
            "damageCharge": float(self.damage_charge or 0),
            "finePaid": self.fine_paid,
            "isHomeDelivery": self.is_home_delivery,
            "returnCondition": self.return_condition.value if self.return_condition else None,
            "notes": self.notes,
            "book": self.book.to_summary() if self.book else None,
            "user": self.user.to_summary() if self.user else None,
            "bookCopy": {
                "id": self.book_copy.id,
                "copyNumber": self.book_copy.copy_number,
                "barcode": self.book_copy.barcode,
            } if self.book_copy else None,
        }

class BorrowRequest(Base):
    __tablename__ = "borrow_requests"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(BorrowRequestStatus, name="borrow_request_status"), default=BorrowRequestStatus.PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    request_date = Column(UTCDateTime, default=now_utc, nullable=False)
    approved_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    rejected_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejected_at = Column(UTCDateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    due_date = Column(UTCDateTime, nullable=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    book = relationship("Book")
    approver = relationship("User", foreign_keys=[approved_by])
    rejecter = relationship("User", foreign_keys=[rejected_by])
    transaction = relationship("Transaction")

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "status": self.status.value,
            "notes": self.notes,
            "requestDate": self.request_date.isoformat() if self.request_date else None,
            "approvedBy": self.approved_by,
            "approvedAt": self.approved_at.isoformat() if self.approved_at else None,
            "rejectedBy": self.rejected_by,
            "rejectedAt": self.rejected_at.isoformat() if self.rejected_at else None,
            "rejectionReason": self.rejection_reason,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "transactionId": self.transaction_id,
            "book": self.book.to_summary() if self.book else None,
            "user": self.user.to_summary() if self.user else None,
        }
