"""Book catalog and physical copy inventory.

``Book.available_copies`` mirrors the number of the book's copies whose
status is AVAILABLE. Every function that changes a copy's status, or adds or
removes copies, adjusts the counter in the same commit while holding a row
lock on the book.
"""
import logging
from typing import List, Optional

from sqlalchemy import or_, func
from sqlalchemy.orm import Session

from library_backend.database import new_id
from library_backend.models.book import Book, BookCopy
from library_backend.models.enums import BookCondition, CopyStatus, OPEN_TRANSACTION_STATUSES
from library_backend.models.transaction import Transaction
from library_backend.schemas.book import (
    AddCopiesRequest, BookCreate, BookUpdate, UpdateCopyRequest, UpdateCopyStatusRequest
)
from library_backend.services import system_settings
from library_backend.services.errors import BadRequestError, ConflictError, NotFoundError
from library_backend.utils.money import to_money
from library_backend.utils.pagination import paginate

logger = logging.getLogger(__name__)

# book field -> (settings key, fallback when unseeded)
_LOAN_DEFAULTS = {
    "loan_period_days": ("loans.default_period_days", 14),
    "fine_per_day": ("fines.per_day_amount", 5),
    "max_renewals": ("loans.max_renewals", 2),
    "security_deposit": ("deposits.default_amount", 0),
}

_NOT_NULL_FIELDS = {
    "isbn", "title", "author", "category", "language", "book_value",
    "loan_period_days", "fine_per_day", "max_renewals", "security_deposit", "is_active",
}

_SORT_COLUMNS = {
    "createdAt": Book.created_at,
    "title": Book.title,
    "author": Book.author,
    "publicationYear": Book.publication_year,
    "availableCopies": Book.available_copies,
    "category": Book.category,
}


def make_barcode(book_id: str, copy_number: int) -> str:
    return f"BC-{book_id[:8]}-{copy_number:03d}"


def _build_copies(book_id: str, start: int, count: int, shelf_location: Optional[str] = None,
                  section: Optional[str] = None, condition: BookCondition = BookCondition.GOOD) -> List[BookCopy]:
    copies = []
    for number in range(start, start + count):
        copies.append(BookCopy(
            book_id=book_id,
            copy_number=f"{number:03d}",
            barcode=make_barcode(book_id, number),
            status=CopyStatus.AVAILABLE,
            condition=condition,
            shelf_location=shelf_location,
            section=section,
        ))
    return copies


def _lock_book(db: Session, book_id: str) -> Book:
    book = db.query(Book).filter(Book.id == book_id).with_for_update().first()
    if not book:
        raise NotFoundError(f"Book with ID {book_id} not found")
    return book


def _lock_copy(db: Session, book_id: str, copy_id: str) -> BookCopy:
    copy = db.query(BookCopy).filter(
        BookCopy.id == copy_id,
        BookCopy.book_id == book_id
    ).with_for_update().first()
    if not copy:
        raise NotFoundError(f"Copy {copy_id} not found for book {book_id}")
    return copy


def _next_copy_number(db: Session, book_id: str) -> int:
    numbers = [int(number) for (number,) in db.query(BookCopy.copy_number).filter(BookCopy.book_id == book_id)]
    return max(numbers, default=0) + 1


def has_active_loan(db: Session, copy_id: str) -> bool:
    return db.query(Transaction.id).filter(
        Transaction.book_copy_id == copy_id,
        Transaction.status.in_(OPEN_TRANSACTION_STATUSES)
    ).first() is not None


# Books

def list_books(db: Session, search: Optional[str] = None, category: Optional[str] = None,
               genre: Optional[str] = None, language: Optional[str] = None,
               is_active: Optional[bool] = None, availability: Optional[str] = None,
               page: int = 1, limit: int = 10, sort_by: str = "createdAt", sort_order: str = "desc"):
    query = db.query(Book)
    if category:
        query = query.filter(Book.category == category)
    if genre:
        query = query.filter(Book.genre == genre)
    if language:
        query = query.filter(Book.language == language)
    if is_active is not None:
        query = query.filter(Book.is_active == is_active)
    if availability == "available":
        query = query.filter(Book.available_copies > 0)
    elif availability == "unavailable":
        query = query.filter(Book.available_copies == 0)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Book.title.ilike(pattern),
            Book.author.ilike(pattern),
            Book.isbn.contains(search),
        ))

    column = _SORT_COLUMNS.get(sort_by)
    if column is None:
        raise BadRequestError(f"Cannot sort books by '{sort_by}'")
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc())
    return paginate(query, page, limit)


def get_book(db: Session, book_id: str) -> Book:
    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise NotFoundError(f"Book with ID {book_id} not found")
    return book


def get_book_by_isbn(db: Session, isbn: str) -> Book:
    book = db.query(Book).filter(Book.isbn == isbn.replace("-", "")).first()
    if not book:
        raise NotFoundError(f"Book with ISBN {isbn} not found")
    return book


def create_book(db: Session, data: BookCreate) -> Book:
    """Create a book together with its initial AVAILABLE copies."""
    if db.query(Book).filter(Book.isbn == data.isbn).first():
        raise ConflictError(f"Book with ISBN {data.isbn} already exists")

    fields = data.model_dump(exclude={"total_copies", "shelf_location", "section"})
    for field, (key, fallback) in _LOAN_DEFAULTS.items():
        if fields[field] is None:
            fields[field] = system_settings.get_value(db, key, fallback)
    for field in ("fine_per_day", "security_deposit", "book_value"):
        fields[field] = to_money(fields[field])

    book = Book(
        id=new_id(),
        total_copies=data.total_copies,
        available_copies=data.total_copies,
        **fields
    )
    book.copies = _build_copies(book.id, 1, data.total_copies, data.shelf_location, data.section)
    db.add(book)
    db.commit()
    db.refresh(book)
    logger.info(f"Book {book.id} ({book.isbn}) created with {book.total_copies} copies")
    return book


def update_book(db: Session, book_id: str, data: BookUpdate) -> Book:
    book = get_book(db, book_id)
    changes = data.model_dump(exclude_unset=True)

    if changes.get("isbn") and changes["isbn"] != book.isbn:
        clash = db.query(Book).filter(Book.isbn == changes["isbn"], Book.id != book.id).first()
        if clash:
            raise ConflictError(f"Book with ISBN {changes['isbn']} already exists")

    for field, value in changes.items():
        if value is None and field in _NOT_NULL_FIELDS:
            continue
        if field in ("fine_per_day", "security_deposit", "book_value") and value is not None:
            value = to_money(value)
        setattr(book, field, value)

    db.commit()
    db.refresh(book)
    return book


def delete_book(db: Session, book_id: str) -> Book:
    """Soft delete: the book stays for history but can no longer be issued."""
    book = get_book(db, book_id)
    book.is_active = False
    db.commit()
    db.refresh(book)
    logger.info(f"Book {book.id} deactivated")
    return book


def bulk_import(db: Session, books: List[BookCreate]) -> dict:
    """Create many books at once.

    Each book is created and committed on its own. A duplicate ISBN, whether
    already in the catalog or repeated within the batch, fails that book only.
    """
    created, failed = [], []
    seen = set()
    for data in books:
        if data.isbn in seen:
            failed.append({"isbn": data.isbn, "title": data.title, "reason": "ISBN repeated in this import"})
            continue
        seen.add(data.isbn)
        try:
            book = create_book(db, data)
        except ConflictError as exc:
            failed.append({"isbn": data.isbn, "title": data.title, "reason": exc.detail})
            continue
        created.append(book)

    logger.info(f"Bulk import finished: {len(created)} created, {len(failed)} failed")
    return {
        "created": [book.to_dict() for book in created],
        "failed": failed,
        "createdCount": len(created),
        "failedCount": len(failed),
    }


def update_inventory(db: Session, book_id: str, quantity: int) -> Book:
    """Grow or shrink a book to ``quantity`` copies.

    Growing appends AVAILABLE copies; shrinking deletes the highest-numbered
    AVAILABLE copies. Copies on loan or out of service are never removed here.
    """
    book = _lock_book(db, book_id)
    difference = quantity - book.total_copies

    if difference > 0:
        start = _next_copy_number(db, book.id)
        db.add_all(_build_copies(book.id, start, difference))
    elif difference < 0:
        removable = db.query(BookCopy).filter(
            BookCopy.book_id == book.id,
            BookCopy.status == CopyStatus.AVAILABLE
        ).order_by(BookCopy.copy_number.desc()).limit(-difference).with_for_update().all()
        if len(removable) < -difference:
            raise BadRequestError(
                f"Cannot reduce inventory to {quantity}: only {len(removable)} copies are available to remove"
            )
        for copy in removable:
            db.delete(copy)

    book.total_copies += difference
    book.available_copies += difference
    db.commit()
    db.refresh(book)
    logger.info(f"Inventory of book {book.id} set to {book.total_copies} copies")
    return book


def get_book_stats(db: Session, book_id: str) -> dict:
    book = get_book(db, book_id)
    borrowed = book.total_copies - book.available_copies
    percentage = round(book.available_copies / book.total_copies * 100) if book.total_copies else 0

    status_counts = dict(
        db.query(BookCopy.status, func.count(BookCopy.id))
        .filter(BookCopy.book_id == book.id)
        .group_by(BookCopy.status)
        .all()
    )
    times_borrowed = db.query(func.count(Transaction.id)).filter(Transaction.book_id == book.id).scalar()

    return {
        "bookId": book.id,
        "title": book.title,
        "totalCopies": book.total_copies,
        "availableCopies": book.available_copies,
        "borrowedCopies": borrowed,
        "availabilityPercentage": percentage,
        "isAvailable": book.available_copies > 0,
        "isActive": book.is_active,
        "timesBorrowed": times_borrowed,
        "copiesByStatus": {status.value: status_counts.get(status, 0) for status in CopyStatus},
    }


def check_availability(db: Session, book_id: str) -> dict:
    book = get_book(db, book_id)
    return {
        "bookId": book.id,
        "available": book.is_active and book.available_copies > 0,
        "availableCopies": book.available_copies,
        "totalCopies": book.total_copies,
    }


# Copies

def list_copies(db: Session, book_id: str, status: Optional[CopyStatus] = None) -> List[BookCopy]:
    get_book(db, book_id)
    query = db.query(BookCopy).filter(BookCopy.book_id == book_id)
    if status:
        query = query.filter(BookCopy.status == status)
    return query.order_by(BookCopy.copy_number).all()


def get_copy(db: Session, book_id: str, copy_id: str) -> BookCopy:
    copy = db.query(BookCopy).filter(BookCopy.id == copy_id, BookCopy.book_id == book_id).first()
    if not copy:
        raise NotFoundError(f"Copy {copy_id} not found for book {book_id}")
    return copy


def add_copies(db: Session, book_id: str, data: AddCopiesRequest) -> List[BookCopy]:
    """Append ``data.count`` copies, numbered after the highest existing copy."""
    book = _lock_book(db, book_id)
    start = _next_copy_number(db, book.id)

    copies = _build_copies(book.id, start, data.count, data.shelf_location, data.section, data.condition)
    db.add_all(copies)
    book.total_copies += data.count
    book.available_copies += data.count
    db.commit()

    logger.info(f"Added {data.count} copies to book {book.id} starting at {start:03d}")
    for copy in copies:
        db.refresh(copy)
    return copies


def update_copy(db: Session, book_id: str, copy_id: str, data: UpdateCopyRequest) -> BookCopy:
    copy = get_copy(db, book_id, copy_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "condition" and value is None:
            continue
        setattr(copy, field, value)
    db.commit()
    db.refresh(copy)
    return copy


def update_copy_status(db: Session, book_id: str, copy_id: str, data: UpdateCopyStatusRequest) -> BookCopy:
    if data.status == CopyStatus.ISSUED:
        raise BadRequestError("Copies are marked ISSUED only by issuing a book")

    book = _lock_book(db, book_id)
    copy = _lock_copy(db, book_id, copy_id)
    if copy.status == CopyStatus.ISSUED or has_active_loan(db, copy.id):
        raise BadRequestError("Cannot change the status of a copy that is currently on loan")

    was_available = copy.status == CopyStatus.AVAILABLE
    now_available = data.status == CopyStatus.AVAILABLE
    if was_available and not now_available:
        book.available_copies -= 1
    elif now_available and not was_available:
        book.available_copies += 1

    previous = copy.status
    copy.status = data.status
    if data.reason:
        copy.condition_notes = data.reason
    db.commit()
    db.refresh(copy)
    logger.info(f"Copy {copy.barcode} status {previous.value} -> {copy.status.value}")
    return copy


def delete_copy(db: Session, book_id: str, copy_id: str) -> None:
    book = _lock_book(db, book_id)
    copy = _lock_copy(db, book_id, copy_id)
    if copy.status == CopyStatus.ISSUED or has_active_loan(db, copy.id):
        raise BadRequestError("Cannot delete a copy that is currently on loan")

    barcode = copy.barcode
    book.total_copies -= 1
    if copy.status == CopyStatus.AVAILABLE:
        book.available_copies -= 1
    db.delete(copy)
    db.commit()
    logger.info(f"Copy {barcode} removed from book {book_id}")
