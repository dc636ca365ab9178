"""Circulation: issuing, renewing and returning copies, and the fines that follow.

Transaction status moves ISSUED -> RENEWED -> RETURNED. A RENEWED loan can
be renewed again (RENEWED -> RENEWED) until the book's renewal limit, and
OVERDUE is entered once a fine has been calculated on an open loan.
RETURNED is terminal. A late fine is ``ceil(days late) * book.fine_per_day``;
a loan returned at or before its due date carries no fine.
"""
import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, func
from sqlalchemy.orm import Session

from library_backend.models.book import Book, BookCopy
from library_backend.models.enums import (
    BookCondition, CopyStatus, NotificationCategory, OPEN_TRANSACTION_STATUSES,
    PaymentMethod, TransactionStatus, UserStatus
)
from library_backend.models.payment import Payment
from library_backend.models.transaction import Transaction
from library_backend.models.user import User
from library_backend.services import notifications, system_settings
from library_backend.services.errors import BadRequestError, ForbiddenError, NotFoundError
from library_backend.services.policy import ensure_can_view
from library_backend.utils.money import ZERO, to_money
from library_backend.utils.pagination import paginate
from library_backend.utils.timezone import ensure_aware, now_utc

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

_SORT_COLUMNS = {
    "createdAt": Transaction.created_at,
    "issueDate": Transaction.issue_date,
    "dueDate": Transaction.due_date,
    "returnDate": Transaction.return_date,
    "status": Transaction.status,
}


def days_overdue(due_date: datetime, moment: Optional[datetime] = None) -> int:
    """Whole days past due, rounded up. Zero at or before the due date."""
    moment = moment or now_utc()
    if moment <= due_date:
        return 0
    return math.ceil((moment - due_date).total_seconds() / SECONDS_PER_DAY)


def late_fine(book: Book, due_date: datetime, moment: Optional[datetime] = None) -> Decimal:
    return to_money(book.fine_per_day) * days_overdue(due_date, moment)


def amount_paid(transaction: Transaction) -> Decimal:
    """Net money received for a transaction (payments minus refunds)."""
    return sum(
        (to_money(p.amount) - to_money(p.refund_amount) for p in transaction.payments),
        ZERO
    )


def outstanding_balance(transaction: Transaction) -> Decimal:
    due = to_money(transaction.fine_amount) + to_money(transaction.damage_charge)
    return max(ZERO, due - amount_paid(transaction))


def _get(db: Session, transaction_id: str, lock: bool = False) -> Transaction:
    query = db.query(Transaction).filter(Transaction.id == transaction_id)
    if lock:
        query = query.with_for_update()
    transaction = query.first()
    if not transaction:
        raise NotFoundError(f"Transaction with ID {transaction_id} not found")
    return transaction


def _lock_book(db: Session, book_id: str) -> Book:
    return db.query(Book).filter(Book.id == book_id).with_for_update().first()


def prepare_issue(db: Session, book_id: str, user_id: str, due_date: Optional[datetime] = None,
                  is_home_delivery: bool = False, notes: Optional[str] = None,
                  librarian_id: Optional[str] = None, copy_id: Optional[str] = None) -> Transaction:
    """Validate and stage an issue in the session without committing.

    Callers own the commit so that issuing can be combined with other writes
    (borrow request approval) in one database transaction.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    if user.status != UserStatus.ACTIVE:
        raise ForbiddenError("User account is not active")

    unpaid = db.query(Transaction.id).filter(
        Transaction.user_id == user.id,
        Transaction.fine_paid.is_(False),
        (Transaction.fine_amount + Transaction.damage_charge) > 0
    ).first()
    if unpaid:
        raise ForbiddenError("User has unpaid fines. Please clear all dues before borrowing")

    book = _lock_book(db, book_id)
    if not book:
        raise NotFoundError("Book not found")
    if not book.is_active:
        raise BadRequestError("Book is not available for borrowing")
    if book.available_copies <= 0:
        raise BadRequestError("No copies of this book are available")

    max_books = system_settings.get_value(db, "loans.max_books_per_user", 5)
    held = db.query(func.count(Transaction.id)).filter(
        Transaction.user_id == user.id,
        Transaction.status.in_(OPEN_TRANSACTION_STATUSES)
    ).scalar()
    if held >= max_books:
        raise BadRequestError(f"User has reached the maximum of {max_books} borrowed books")

    copies = db.query(BookCopy).filter(
        BookCopy.book_id == book.id,
        BookCopy.status == CopyStatus.AVAILABLE
    )
    if copy_id:
        copies = copies.filter(BookCopy.id == copy_id)
    copy = copies.order_by(BookCopy.copy_number).with_for_update().first()
    if not copy:
        raise BadRequestError("No available copy found for this book")

    now = now_utc()
    if due_date:
        due_date = ensure_aware(due_date)
        if due_date <= now:
            raise BadRequestError("Due date must be in the future")
    else:
        due_date = now + timedelta(days=book.loan_period_days)

    transaction = Transaction(
        user_id=user.id,
        book_id=book.id,
        book_copy_id=copy.id,
        librarian_id=librarian_id,
        issue_date=now,
        due_date=due_date,
        status=TransactionStatus.ISSUED,
        is_home_delivery=is_home_delivery,
        notes=notes,
    )
    copy.status = CopyStatus.ISSUED
    copy.last_issued_date = now
    book.available_copies -= 1
    db.add(transaction)
    db.flush()
    return transaction


def issue_book(db: Session, book_id: str, user_id: str, due_date: Optional[datetime] = None,
               is_home_delivery: bool = False, notes: Optional[str] = None,
               librarian_id: Optional[str] = None) -> Transaction:
    transaction = prepare_issue(db, book_id, user_id, due_date, is_home_delivery, notes, librarian_id)
    db.commit()
    db.refresh(transaction)
    logger.info(
        f"Issued copy {transaction.book_copy.barcode} of book {transaction.book_id} "
        f"to user {transaction.user_id}, due {transaction.due_date.isoformat()}"
    )

    title = transaction.book.title
    due = transaction.due_date.date().isoformat()
    notifications.notifier.dispatch(
        db, transaction.user_id, NotificationCategory.BOOK_ISSUED,
        "Book Issued", f'"{title}" has been issued to you. Please return it by {due}.'
    )
    return transaction


def return_book(db: Session, transaction_id: str, damage_charge: Decimal = ZERO,
                return_condition: Optional[BookCondition] = None, notes: Optional[str] = None) -> Transaction:
    transaction = _get(db, transaction_id, lock=True)
    if transaction.status == TransactionStatus.RETURNED:
        raise BadRequestError("Book has already been returned")

    book = _lock_book(db, transaction.book_id)
    now = now_utc()

    transaction.return_date = now
    transaction.status = TransactionStatus.RETURNED
    transaction.fine_amount = late_fine(book, transaction.due_date, now)
    transaction.damage_charge = to_money(damage_charge)
    # Charges recomputed at return can outgrow an earlier payment
    if transaction.fine_paid and outstanding_balance(transaction) > 0:
        transaction.fine_paid = False
    if return_condition:
        transaction.return_condition = return_condition
    if notes:
        transaction.notes = notes

    if transaction.book_copy_id:
        copy = db.query(BookCopy).filter(BookCopy.id == transaction.book_copy_id).with_for_update().first()
        copy.status = CopyStatus.AVAILABLE
        if return_condition:
            copy.condition = return_condition
        book.available_copies += 1

    db.commit()
    db.refresh(transaction)

    total = to_money(transaction.fine_amount) + to_money(transaction.damage_charge)
    logger.info(f"Transaction {transaction.id} returned with charges {total}")

    message = f'Thank you for returning "{book.title}".'
    if total > 0:
        message += f" Outstanding charges: {total}."
    notifications.notifier.dispatch(
        db, transaction.user_id, NotificationCategory.BOOK_RETURNED, "Book Returned", message
    )
    return transaction


def renew_transaction(db: Session, transaction_id: str, user_id: str,
                      new_due_date: Optional[datetime] = None) -> Transaction:
    transaction = _get(db, transaction_id, lock=True)
    if transaction.user_id != user_id:
        raise ForbiddenError("You can only renew your own transactions")
    if transaction.status not in (TransactionStatus.ISSUED, TransactionStatus.RENEWED):
        raise BadRequestError(f"Cannot renew a transaction with status {transaction.status.value}")

    book = transaction.book
    if transaction.renewal_count >= book.max_renewals:
        raise BadRequestError(f"Maximum renewal limit ({book.max_renewals}) reached")
    if now_utc() > transaction.due_date:
        raise BadRequestError("Cannot renew an overdue book. Please return it and pay the fine")

    if new_due_date:
        new_due_date = ensure_aware(new_due_date)
        if new_due_date <= transaction.due_date:
            raise BadRequestError("New due date must be after the current due date")
    else:
        new_due_date = transaction.due_date + timedelta(days=book.loan_period_days)

    transaction.due_date = new_due_date
    transaction.renewal_count += 1
    transaction.status = TransactionStatus.RENEWED
    db.commit()
    db.refresh(transaction)
    logger.info(f"Transaction {transaction.id} renewed ({transaction.renewal_count}/{book.max_renewals})")
    return transaction


def calculate_fine(db: Session, transaction_id: str) -> dict:
    """Work out the late fine for a loan.

    For an open loan past its due date this also stores the fine and marks
    the loan OVERDUE.
    """
    transaction = _get(db, transaction_id, lock=True)
    result = {
        "transactionId": transaction.id,
        "finePaid": transaction.fine_paid,
    }

    if transaction.status == TransactionStatus.RETURNED:
        result.update(
            fineAmount=float(transaction.fine_amount),
            daysOverdue=days_overdue(transaction.due_date, transaction.return_date),
            message="Book already returned",
        )
        return result

    now = now_utc()
    if now <= transaction.due_date:
        result.update(fineAmount=0.0, daysOverdue=0, message="No fine - book is not overdue")
        return result

    book = transaction.book
    days = days_overdue(transaction.due_date, now)
    transaction.fine_amount = late_fine(book, transaction.due_date, now)
    transaction.status = TransactionStatus.OVERDUE
    db.commit()

    result.update(
        fineAmount=float(transaction.fine_amount),
        daysOverdue=days,
        finePerDay=float(book.fine_per_day),
    )
    return result


def pay_fine(db: Session, transaction_id: str, amount: Decimal, payment_method: PaymentMethod,
             reference: Optional[str] = None, recorded_by: Optional[str] = None) -> dict:
    """Settle everything owed on a transaction in one payment."""
    transaction = _get(db, transaction_id, lock=True)
    if transaction.fine_paid:
        raise BadRequestError("Fine has already been paid")

    outstanding = outstanding_balance(transaction)
    if outstanding <= 0:
        raise BadRequestError("No fine to pay for this transaction")

    amount = to_money(amount)
    if amount < outstanding:
        raise BadRequestError(f"Payment amount ({amount}) is less than the amount due ({outstanding})")

    late_fee = min(to_money(transaction.fine_amount), outstanding)
    payment = Payment(
        user_id=transaction.user_id,
        transaction_id=transaction.id,
        amount=outstanding,
        payment_method=payment_method,
        late_fee=late_fee,
        damage_charge=outstanding - late_fee,
        notes=f"Reference: {reference}" if reference else None,
        recorded_by=recorded_by,
    )
    db.add(payment)
    transaction.fine_paid = True
    db.commit()
    db.refresh(transaction)
    db.refresh(payment)
    logger.info(f"Fine of {outstanding} paid on transaction {transaction.id} via {payment_method.value}")

    result = {
        "transaction": transaction.to_dict(),
        "payment": payment.to_dict(),
        "amountPaid": float(outstanding),
        "change": float(amount - outstanding),
    }
    notifications.notifier.dispatch(
        db, transaction.user_id, NotificationCategory.PAYMENT_CONFIRMATION,
        "Payment Received", f"We received your payment of {outstanding}. Thank you."
    )
    return result


def cancel_transaction(db: Session, transaction_id: str) -> None:
    """Undo an issue that should not have happened."""
    transaction = _get(db, transaction_id, lock=True)
    if transaction.status == TransactionStatus.RETURNED:
        raise BadRequestError("Cannot cancel a returned transaction")

    book = _lock_book(db, transaction.book_id)
    if transaction.book_copy_id:
        copy = db.query(BookCopy).filter(BookCopy.id == transaction.book_copy_id).with_for_update().first()
        copy.status = CopyStatus.AVAILABLE
        book.available_copies += 1

    db.delete(transaction)
    db.commit()
    logger.info(f"Transaction {transaction_id} cancelled")


def get_overdue_transactions(db: Session) -> dict:
    now = now_utc()
    overdue = db.query(Transaction).filter(
        Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
        Transaction.due_date < now
    ).order_by(Transaction.due_date.asc()).all()

    items = []
    for transaction in overdue:
        item = transaction.to_dict()
        item["daysOverdue"] = days_overdue(transaction.due_date, now)
        item["calculatedFine"] = float(late_fine(transaction.book, transaction.due_date, now))
        items.append(item)
    return {"count": len(items), "transactions": items}


def get_transaction_stats(db: Session, user_id: Optional[str] = None) -> dict:
    def scoped(*criteria):
        query = db.query(func.count(Transaction.id)).filter(*criteria)
        if user_id:
            query = query.filter(Transaction.user_id == user_id)
        return query.scalar()

    def fine_sum(*criteria):
        query = db.query(func.coalesce(func.sum(Transaction.fine_amount), 0)).filter(*criteria)
        if user_id:
            query = query.filter(Transaction.user_id == user_id)
        return float(query.scalar())

    active = (TransactionStatus.ISSUED, TransactionStatus.RENEWED)
    return {
        "totalTransactions": scoped(),
        "activeTransactions": scoped(Transaction.status.in_(active)),
        "returnedTransactions": scoped(Transaction.status == TransactionStatus.RETURNED),
        "overdueTransactions": scoped(
            Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
            Transaction.due_date < now_utc()
        ),
        "totalFines": fine_sum(),
        "unpaidFines": fine_sum(Transaction.fine_paid.is_(False), Transaction.fine_amount > 0),
    }


def list_transactions(db: Session, status: Optional[TransactionStatus] = None, user_id: Optional[str] = None,
                      book_id: Optional[str] = None, overdue: bool = False,
                      start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                      search: Optional[str] = None, page: int = 1, limit: int = 10,
                      sort_by: str = "createdAt", sort_order: str = "desc"):
    query = db.query(Transaction)
    if status:
        query = query.filter(Transaction.status == status)
    if user_id:
        query = query.filter(Transaction.user_id == user_id)
    if book_id:
        query = query.filter(Transaction.book_id == book_id)
    if overdue:
        query = query.filter(
            Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
            Transaction.due_date < now_utc()
        )
    if start_date:
        query = query.filter(Transaction.issue_date >= ensure_aware(start_date))
    if end_date:
        query = query.filter(Transaction.issue_date <= ensure_aware(end_date))
    if search:
        pattern = f"%{search}%"
        query = query.join(User, Transaction.user_id == User.id).join(Book, Transaction.book_id == Book.id)
        query = query.outerjoin(BookCopy, Transaction.book_copy_id == BookCopy.id)
        query = query.filter(or_(
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.email.ilike(pattern),
            Book.title.ilike(pattern),
            Book.isbn.ilike(pattern),
            BookCopy.barcode.ilike(pattern),
        ))

    column = _SORT_COLUMNS.get(sort_by)
    if column is None:
        raise BadRequestError(f"Cannot sort transactions by '{sort_by}'")
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc())
    return paginate(query, page, limit)


def get_transaction(db: Session, transaction_id: str, actor: User) -> Transaction:
    transaction = _get(db, transaction_id)
    ensure_can_view(actor, transaction.user_id, "transactions")
    return transaction


def list_book_transactions(db: Session, book_id: str, status: Optional[TransactionStatus] = None,
                           page: int = 1, limit: int = 10):
    """Circulation history of one book, newest first."""
    if not db.query(Book.id).filter(Book.id == book_id).first():
        raise NotFoundError("Book not found")
    return list_transactions(db, status, book_id=book_id, page=page, limit=limit)
