from sqlalchemy import Column, String, Integer, Numeric, Boolean, Text, ForeignKey, Enum, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from library_backend.database import Base, UTCDateTime, new_id
from library_backend.models.enums import CopyStatus, BookCondition
from library_backend.utils.timezone import now_utc

class Book(Base):
    __tablename__ = "books"

    id = Column(String(36), primary_key=True, default=new_id)
    isbn = Column(String(13), unique=True, nullable=False, index=True)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(200), nullable=False, index=True)
    publisher = Column(String(200), nullable=True)
    publication_year = Column(Integer, nullable=True)
    category = Column(String(100), nullable=False, index=True)
    genre = Column(String(100), nullable=True)
    language = Column(String(50), default="English", nullable=False)
    description = Column(Text, nullable=True)
    cover_image_url = Column(String(500), nullable=True)
    book_value = Column(Numeric(10, 2), default=0, nullable=False)
    total_copies = Column(Integer, default=0, nullable=False)
    available_copies = Column(Integer, default=0, nullable=False)
    loan_period_days = Column(Integer, default=14, nullable=False)
    fine_per_day = Column(Numeric(10, 2), default=5, nullable=False)
    max_renewals = Column(Integer, default=2, nullable=False)
    security_deposit = Column(Numeric(10, 2), default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(UTCDateTime, default=now_utc)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc)

    # Relationships
    copies = relationship("BookCopy", back_populates="book", cascade="all, delete-orphan", order_by="BookCopy.copy_number")
    transactions = relationship("Transaction", back_populates="book")

    __table_args__ = (
        CheckConstraint("available_copies >= 0 AND available_copies <= total_copies", name="chk_book_copy_counters"),
    )

    def to_summary(self):
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "publisher": self.publisher,
            "publicationYear": self.publication_year,
            "category": self.category,
            "genre": self.genre,
            "language": self.language,
            "description": self.description,
            "coverImageUrl": self.cover_image_url,
            "bookValue": float(self.book_value or 0),
            "totalCopies": self.total_copies,
            "availableCopies": self.available_copies,
            "loanPeriodDays": self.loan_period_days,
            "finePerDay": float(self.fine_per_day or 0),
            "maxRenewals": self.max_renewals,
            "securityDeposit": float(self.security_deposit or 0),
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

class BookCopy(Base):
    __tablename__ = "book_copies"

    id = Column(String(36), primary_key=True, default=new_id)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    copy_number = Column(String(10), nullable=False)
    barcode = Column(String(100), unique=True, nullable=False, index=True)
    status = Column(Enum(CopyStatus, name="copy_status"), default=CopyStatus.AVAILABLE, nullable=False, index=True)
    condition = Column(Enum(BookCondition, name="book_condition"), default=BookCondition.GOOD, nullable=False)
    condition_notes = Column(Text, nullable=True)
    shelf_location = Column(String(50), nullable=True)
    section = Column(String(50), nullable=True)
    last_issued_date = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc)

    # Relationships
    book = relationship("Book", back_populates="copies")
    transactions = relationship("Transaction", back_populates="book_copy")

    __table_args__ = (
        UniqueConstraint("book_id", "copy_number", name="uq_book_copy_number"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "bookId": self.book_id,
            "copyNumber": self.copy_number,
            "barcode": self.barcode,
            "status": self.status.value,
            "condition": self.condition.value,
            "conditionNotes": self.condition_notes,
            "shelfLocation": self.shelf_location,
            "section": self.section,
            "lastIssuedDate": self.last_issued_date.isoformat() if self.last_issued_date else None,
        }
