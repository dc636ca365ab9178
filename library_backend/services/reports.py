"""Read-only aggregates for the admin dashboard and reports pages."""
import enum
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from library_backend.models.book import Book
from library_backend.models.enums import OPEN_TRANSACTION_STATUSES, PaymentStatus, TransactionStatus, UserStatus
from library_backend.models.payment import Payment
from library_backend.models.transaction import Transaction
from library_backend.models.user import User
from library_backend.services.transactions import days_overdue
from library_backend.utils.timezone import LIBRARY_TZ, ensure_aware, now_utc, start_of_local_day


class GroupByPeriod(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def _in_range(query, column, start_date: Optional[datetime], end_date: Optional[datetime]):
    if start_date:
        query = query.filter(column >= ensure_aware(start_date))
    if end_date:
        query = query.filter(column <= ensure_aware(end_date))
    return query


def _pending_charges(db: Session):
    """(sum, count) of charges on transactions whose fine is not yet paid."""
    charges = Transaction.fine_amount + Transaction.damage_charge
    total, count = db.query(func.coalesce(func.sum(charges), 0), func.count(Transaction.id)).filter(
        Transaction.fine_paid.is_(False),
        charges > 0
    ).one()
    return float(total), count


def dashboard(db: Session) -> dict:
    now = now_utc()
    today = start_of_local_day(now)
    pending, _ = _pending_charges(db)

    return {
        "overview": {
            "totalBooks": db.query(func.count(Book.id)).filter(Book.is_active.is_(True)).scalar(),
            "totalUsers": db.query(func.count(User.id)).filter(User.status == UserStatus.ACTIVE).scalar(),
            "totalTransactions": db.query(func.count(Transaction.id)).scalar(),
            "activeTransactions": db.query(func.count(Transaction.id)).filter(
                Transaction.status.in_(OPEN_TRANSACTION_STATUSES)
            ).scalar(),
            "overdueTransactions": db.query(func.count(Transaction.id)).filter(
                Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
                Transaction.due_date < now
            ).scalar(),
            "availableBooks": int(db.query(func.coalesce(func.sum(Book.available_copies), 0)).filter(
                Book.is_active.is_(True)
            ).scalar()),
        },
        "financial": {
            "pendingFines": pending,
        },
        "today": {
            "booksIssued": db.query(func.count(Transaction.id)).filter(Transaction.issue_date >= today).scalar(),
            "booksReturned": db.query(func.count(Transaction.id)).filter(
                Transaction.status == TransactionStatus.RETURNED,
                Transaction.return_date >= today
            ).scalar(),
        },
    }


def active_users(db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                 limit: int = 10) -> dict:
    count = func.count(Transaction.id).label("transaction_count")
    query = db.query(User, count).join(Transaction, Transaction.user_id == User.id)
    query = _in_range(query, Transaction.issue_date, start_date, end_date)
    rows = query.group_by(User.id).order_by(count.desc()).limit(limit).all()
    return {
        "users": [dict(user.to_summary(), transactionCount=total) for user, total in rows],
    }


def overdue_users(db: Session) -> dict:
    now = now_utc()
    overdue = db.query(Transaction).filter(
        Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
        Transaction.due_date < now
    ).order_by(Transaction.due_date.asc()).all()

    grouped = OrderedDict()
    for transaction in overdue:
        entry = grouped.setdefault(transaction.user_id, {
            "user": transaction.user.to_summary(),
            "overdueBooks": [],
            "totalFines": 0.0,
        })
        days = days_overdue(transaction.due_date, now)
        fine = float(transaction.book.fine_per_day) * days
        entry["overdueBooks"].append({
            "transactionId": transaction.id,
            "book": transaction.book.to_summary(),
            "dueDate": transaction.due_date.isoformat(),
            "daysOverdue": days,
            "fine": fine,
        })
        entry["totalFines"] += fine

    return {
        "overdueUsers": list(grouped.values()),
        "totalOverdueCount": len(grouped),
    }


def popular_books(db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                  limit: int = 10, category: Optional[str] = None, genre: Optional[str] = None) -> dict:
    count = func.count(Transaction.id).label("borrow_count")
    query = db.query(Book, count).join(Transaction, Transaction.book_id == Book.id)
    query = _in_range(query, Transaction.issue_date, start_date, end_date)
    if category:
        query = query.filter(Book.category == category)
    if genre:
        query = query.filter(Book.genre == genre)
    rows = query.group_by(Book.id).order_by(count.desc()).limit(limit).all()
    return {
        "books": [_book_row(book, total) for book, total in rows],
    }


def low_circulation_books(db: Session, limit: int = 10) -> dict:
    count = func.count(Transaction.id).label("borrow_count")
    rows = db.query(Book, count).outerjoin(Transaction, Transaction.book_id == Book.id).filter(
        Book.is_active.is_(True)
    ).group_by(Book.id).order_by(count.asc(), Book.title.asc()).limit(limit).all()
    return {
        "books": [_book_row(book, total) for book, total in rows],
    }


def _book_row(book: Book, borrow_count: int) -> dict:
    return dict(
        book.to_summary(),
        category=book.category,
        genre=book.genre,
        totalCopies=book.total_copies,
        availableCopies=book.available_copies,
        borrowCount=borrow_count,
    )


def category_distribution(db: Session) -> dict:
    rows = db.query(
        Book.category,
        func.count(Book.id),
        func.coalesce(func.sum(Book.total_copies), 0),
        func.coalesce(func.sum(Book.available_copies), 0),
    ).filter(Book.is_active.is_(True)).group_by(Book.category).order_by(Book.category).all()
    return {
        "categories": [
            {
                "category": category,
                "bookCount": books,
                "totalCopies": int(total),
                "availableCopies": int(available),
            }
            for category, books, total, available in rows
        ],
    }


def _period_key(moment: datetime, group_by: GroupByPeriod) -> str:
    local = moment.astimezone(LIBRARY_TZ)
    if group_by == GroupByPeriod.DAY:
        return local.date().isoformat()
    if group_by == GroupByPeriod.WEEK:
        # Weeks start on Sunday
        week_start = local.date() - timedelta(days=(local.weekday() + 1) % 7)
        return week_start.isoformat()
    if group_by == GroupByPeriod.MONTH:
        return f"{local.year}-{local.month:02d}"
    return str(local.year)


def circulation(db: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                group_by: GroupByPeriod = GroupByPeriod.MONTH) -> dict:
    query = db.query(Transaction.issue_date, Transaction.status)
    rows = _in_range(query, Transaction.issue_date, start_date, end_date).all()

    periods = {}
    for issue_date, status in rows:
        key = _period_key(issue_date, group_by)
        bucket = periods.setdefault(key, {"period": key, "issued": 0, "returned": 0, "active": 0})
        bucket["issued"] += 1
        if status == TransactionStatus.RETURNED:
            bucket["returned"] += 1
        else:
            bucket["active"] += 1

    return {
        "groupBy": group_by.value,
        "circulation": [periods[key] for key in sorted(periods)],
    }


def financial_summary(db: Session, start_date: Optional[datetime] = None,
                      end_date: Optional[datetime] = None) -> dict:
    query = db.query(
        func.coalesce(func.sum(Payment.amount), 0),
        func.coalesce(func.sum(Payment.refund_amount), 0),
        func.coalesce(func.sum(Payment.late_fee), 0),
        func.coalesce(func.sum(Payment.damage_charge), 0),
    )
    collected, refunded, fines, damages = _in_range(query, Payment.payment_date, start_date, end_date).one()

    by_method = db.query(
        Payment.payment_method,
        func.count(Payment.id),
        func.coalesce(func.sum(Payment.amount - Payment.refund_amount), 0),
    )
    by_method = _in_range(by_method, Payment.payment_date, start_date, end_date)
    by_method = by_method.filter(Payment.payment_status != PaymentStatus.REFUNDED)
    by_method = by_method.group_by(Payment.payment_method).all()

    pending, pending_count = _pending_charges(db)
    return {
        "totalCollected": float(collected),
        "totalRefunded": float(refunded),
        "totalRevenue": float(collected) - float(refunded),
        "totalFinesCollected": float(fines),
        "totalDamageCharges": float(damages),
        "pendingFines": pending,
        "pendingFineCount": pending_count,
        "paymentsByMethod": [
            {"method": method.value, "count": count, "amount": float(amount)}
            for method, count, amount in by_method
        ],
    }
