import pytest

from library_backend.models.enums import BorrowRequestStatus, NotificationCategory, TransactionStatus, UserStatus
from library_backend.models.notification import Notification
from library_backend.models.transaction import Transaction
from library_backend.services import borrow_requests, catalog
from library_backend.services.errors import BadRequestError, ForbiddenError


def test_create_request_notifies_staff(db, book, member, librarian, admin):
    request = borrow_requests.create_request(db, member, book.id, notes="For my thesis")

    assert request.status == BorrowRequestStatus.PENDING
    created = db.query(Notification).filter(Notification.category == NotificationCategory.BORROW_REQUEST_CREATED)
    notified = {n.user_id for n in created}
    assert notified == {librarian.id, admin.id}


def test_duplicate_pending_request_rejected(db, book, member):
    borrow_requests.create_request(db, member, book.id)
    with pytest.raises(BadRequestError):
        borrow_requests.create_request(db, member, book.id)


def test_request_needs_available_copy_and_active_user(db, make_book, make_user):
    empty = make_book(total_copies=0)
    with pytest.raises(BadRequestError):
        borrow_requests.create_request(db, make_user(), empty.id)

    pending = make_user(status=UserStatus.PENDING_APPROVAL)
    with pytest.raises(ForbiddenError):
        borrow_requests.create_request(db, pending, make_book().id)


def test_approve_issues_book_in_one_step(db, book, member, librarian):
    request = borrow_requests.create_request(db, member, book.id)

    approved = borrow_requests.approve_request(db, request.id, librarian.id)

    assert approved.status == BorrowRequestStatus.APPROVED
    assert approved.approved_by == librarian.id
    transaction = db.query(Transaction).filter(Transaction.id == approved.transaction_id).one()
    assert transaction.status == TransactionStatus.ISSUED
    assert transaction.librarian_id == librarian.id
    assert approved.due_date == transaction.due_date
    db.refresh(book)
    assert book.available_copies == 2


def test_approve_specific_copy(db, book, member, librarian):
    wanted = catalog.list_copies(db, book.id)[2]
    request = borrow_requests.create_request(db, member, book.id)

    approved = borrow_requests.approve_request(db, request.id, librarian.id, book_copy_id=wanted.id)

    assert approved.transaction.book_copy_id == wanted.id


def test_approve_twice_fails_without_second_issue(db, book, member, librarian):
    request = borrow_requests.create_request(db, member, book.id)
    borrow_requests.approve_request(db, request.id, librarian.id)

    with pytest.raises(BadRequestError):
        borrow_requests.approve_request(db, request.id, librarian.id)

    assert db.query(Transaction).count() == 1
    db.refresh(book)
    assert book.available_copies == 2


def test_failed_issue_leaves_request_pending(db, make_book, member, make_user, librarian):
    book = make_book(total_copies=1)
    request = borrow_requests.create_request(db, member, book.id)
    other = make_user()
    other_request = borrow_requests.create_request(db, other, book.id)
    borrow_requests.approve_request(db, other_request.id, librarian.id)

    with pytest.raises(BadRequestError):
        borrow_requests.approve_request(db, request.id, librarian.id)

    db.rollback()
    db.refresh(request)
    assert request.status == BorrowRequestStatus.PENDING
    assert request.transaction_id is None


def test_reject_request(db, book, member, librarian):
    request = borrow_requests.create_request(db, member, book.id)

    rejected = borrow_requests.reject_request(db, request.id, librarian.id, "Reserved for course reading")

    assert rejected.status == BorrowRequestStatus.REJECTED
    assert rejected.rejection_reason == "Reserved for course reading"
    with pytest.raises(BadRequestError):
        borrow_requests.approve_request(db, request.id, librarian.id)


def test_only_owner_cancels_pending_request(db, book, member, make_user):
    request = borrow_requests.create_request(db, member, book.id)

    with pytest.raises(ForbiddenError):
        borrow_requests.cancel_request(db, request.id, make_user().id)

    cancelled = borrow_requests.cancel_request(db, request.id, member.id)
    assert cancelled.status == BorrowRequestStatus.CANCELLED
    with pytest.raises(BadRequestError):
        borrow_requests.cancel_request(db, request.id, member.id)


def test_list_requests(db, make_book, member, make_user):
    first = borrow_requests.create_request(db, member, make_book().id)
    borrow_requests.create_request(db, make_user(), make_book().id)
    borrow_requests.cancel_request(db, first.id, member.id)

    items, pagination = borrow_requests.list_requests(db, status=BorrowRequestStatus.PENDING)
    assert pagination["total"] == 1

    mine = borrow_requests.list_user_requests(db, member)
    assert [r.id for r in mine] == [first.id]
