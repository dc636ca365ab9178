import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from library_backend.models.book import Book
from library_backend.models.enums import (
    BorrowRequestStatus, NotificationCategory, UserStatus
)
from library_backend.models.transaction import BorrowRequest
from library_backend.models.user import User
from library_backend.services import notifications
from library_backend.services.errors import BadRequestError, ForbiddenError, NotFoundError
from library_backend.services.policy import STAFF_ROLES, ensure_can_view
from library_backend.services.transactions import prepare_issue
from library_backend.utils.pagination import paginate
from library_backend.utils.timezone import now_utc

logger = logging.getLogger(__name__)


def _get(db: Session, request_id: str, lock: bool = False) -> BorrowRequest:
    query = db.query(BorrowRequest).filter(BorrowRequest.id == request_id)
    if lock:
        query = query.with_for_update()
    borrow_request = query.first()
    if not borrow_request:
        raise NotFoundError("Borrow request not found")
    return borrow_request


def create_request(db: Session, user: User, book_id: str, notes: Optional[str] = None) -> BorrowRequest:
    if user.status != UserStatus.ACTIVE:
        raise ForbiddenError("User account is not active")

    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise NotFoundError("Book not found")
    if not book.is_active:
        raise BadRequestError("Book is not available for borrowing")
    if book.available_copies < 1:
        raise BadRequestError("No copies available for this book")

    existing = db.query(BorrowRequest.id).filter(
        BorrowRequest.user_id == user.id,
        BorrowRequest.book_id == book.id,
        BorrowRequest.status.in_((BorrowRequestStatus.PENDING, BorrowRequestStatus.APPROVED))
    ).first()
    if existing:
        raise BadRequestError("You already have a pending request for this book")

    borrow_request = BorrowRequest(user_id=user.id, book_id=book.id, notes=notes)
    db.add(borrow_request)
    db.commit()
    db.refresh(borrow_request)
    logger.info(f"Borrow request {borrow_request.id} created by user {user.id} for book {book.id}")

    staff_ids = [staff_id for (staff_id,) in db.query(User.id).filter(
        User.role.in_(STAFF_ROLES),
        User.status == UserStatus.ACTIVE
    )]
    for staff_id in staff_ids:
        notifications.notifier.dispatch(
            db, staff_id, NotificationCategory.BORROW_REQUEST_CREATED,
            "New Borrow Request", f'{user.full_name} requested "{book.title}".'
        )
    return borrow_request


def list_requests(db: Session, status: Optional[BorrowRequestStatus] = None, user_id: Optional[str] = None,
                  book_id: Optional[str] = None, page: int = 1, limit: int = 20):
    query = db.query(BorrowRequest)
    if status:
        query = query.filter(BorrowRequest.status == status)
    if user_id:
        query = query.filter(BorrowRequest.user_id == user_id)
    if book_id:
        query = query.filter(BorrowRequest.book_id == book_id)
    return paginate(query.order_by(BorrowRequest.request_date.desc()), page, limit)


def list_user_requests(db: Session, user: User, status: Optional[BorrowRequestStatus] = None) -> List[BorrowRequest]:
    query = db.query(BorrowRequest).filter(BorrowRequest.user_id == user.id)
    if status:
        query = query.filter(BorrowRequest.status == status)
    return query.order_by(BorrowRequest.request_date.desc()).all()


def get_request(db: Session, request_id: str, actor: User) -> BorrowRequest:
    borrow_request = _get(db, request_id)
    ensure_can_view(actor, borrow_request.user_id, "borrow requests")
    return borrow_request


def approve_request(db: Session, request_id: str, librarian_id: str, due_date: Optional[datetime] = None,
                    notes: Optional[str] = None, book_copy_id: Optional[str] = None) -> BorrowRequest:
    """Turn a pending request into a loan. Issue and approval commit together."""
    borrow_request = _get(db, request_id, lock=True)
    if borrow_request.status != BorrowRequestStatus.PENDING:
        raise BadRequestError("Only pending requests can be approved")

    transaction = prepare_issue(
        db,
        borrow_request.book_id,
        borrow_request.user_id,
        due_date=due_date,
        notes=notes or borrow_request.notes,
        librarian_id=librarian_id,
        copy_id=book_copy_id,
    )

    borrow_request.status = BorrowRequestStatus.APPROVED
    borrow_request.approved_by = librarian_id
    borrow_request.approved_at = now_utc()
    borrow_request.due_date = transaction.due_date
    borrow_request.transaction_id = transaction.id
    db.commit()
    db.refresh(borrow_request)
    logger.info(f"Borrow request {borrow_request.id} approved as transaction {transaction.id}")

    due = borrow_request.due_date.date().isoformat()
    notifications.notifier.dispatch(
        db, borrow_request.user_id, NotificationCategory.BORROW_REQUEST_APPROVED,
        "Borrow Request Approved",
        f'Your request for "{borrow_request.book.title}" was approved. Please return it by {due}.'
    )
    return borrow_request


def reject_request(db: Session, request_id: str, librarian_id: str, reason: str) -> BorrowRequest:
    borrow_request = _get(db, request_id, lock=True)
    if borrow_request.status != BorrowRequestStatus.PENDING:
        raise BadRequestError("Only pending requests can be rejected")

    borrow_request.status = BorrowRequestStatus.REJECTED
    borrow_request.rejected_by = librarian_id
    borrow_request.rejected_at = now_utc()
    borrow_request.rejection_reason = reason
    db.commit()
    db.refresh(borrow_request)
    logger.info(f"Borrow request {borrow_request.id} rejected")

    notifications.notifier.dispatch(
        db, borrow_request.user_id, NotificationCategory.BORROW_REQUEST_REJECTED,
        "Borrow Request Rejected",
        f'Your request for "{borrow_request.book.title}" was rejected: {reason}'
    )
    return borrow_request


def cancel_request(db: Session, request_id: str, user_id: str) -> BorrowRequest:
    borrow_request = _get(db, request_id, lock=True)
    if borrow_request.user_id != user_id:
        raise ForbiddenError("You can only cancel your own requests")
    if borrow_request.status != BorrowRequestStatus.PENDING:
        raise BadRequestError("Only pending requests can be cancelled")

    borrow_request.status = BorrowRequestStatus.CANCELLED
    db.commit()
    db.refresh(borrow_request)
    return borrow_request
