import pytest

from conftest import available_count
from library_backend.models.book import BookCopy
from library_backend.models.enums import BookCondition, CopyStatus
from library_backend.schemas.book import (
    AddCopiesRequest, BookCreate, BookUpdate, UpdateCopyRequest, UpdateCopyStatusRequest
)
from library_backend.services import catalog, system_settings
from library_backend.services import transactions as circulation
from library_backend.services.errors import BadRequestError, ConflictError, NotFoundError


def test_create_book_builds_numbered_copies(db, make_book):
    book = make_book(total_copies=3)

    copies = catalog.list_copies(db, book.id)
    assert [c.copy_number for c in copies] == ["001", "002", "003"]
    assert [c.barcode for c in copies] == [f"BC-{book.id[:8]}-{n:03d}" for n in (1, 2, 3)]
    assert all(c.status == CopyStatus.AVAILABLE for c in copies)
    assert book.total_copies == book.available_copies == 3


def test_create_book_uses_setting_defaults(db):
    system_settings.update_setting(db, "loans.default_period_days", 21)
    data = BookCreate(isbn="978-0-13-468599-1", title="Effective Java", author="Joshua Bloch", category="Programming")

    book = catalog.create_book(db, data)

    assert book.isbn == "9780134685991"
    assert book.loan_period_days == 21
    assert book.max_renewals == 2
    assert book.total_copies == 1


def test_duplicate_isbn_conflicts(db, book):
    data = BookCreate(isbn=book.isbn, title="Copycat", author="Someone", category="Fiction")
    with pytest.raises(ConflictError):
        catalog.create_book(db, data)


def test_isbn_must_have_ten_or_thirteen_digits():
    with pytest.raises(ValueError):
        BookCreate(isbn="12345", title="Short", author="Nobody", category="Fiction")


def test_get_book_by_isbn_ignores_hyphens(db, make_book):
    book = make_book()
    isbn = book.isbn
    assert catalog.get_book_by_isbn(db, f"{isbn[:3]}-{isbn[3:]}").id == book.id
    with pytest.raises(NotFoundError):
        catalog.get_book_by_isbn(db, "0000000000")


def test_update_book_skips_nulls_for_required_fields(db, book):
    updated = catalog.update_book(db, book.id, BookUpdate(title=None, genre="Software", fine_per_day=7))
    assert updated.title == "Book 1"
    assert updated.genre == "Software"
    assert float(updated.fine_per_day) == 7.0


def test_delete_book_is_soft(db, book):
    catalog.delete_book(db, book.id)
    assert catalog.get_book(db, book.id).is_active is False
    assert catalog.check_availability(db, book.id)["available"] is False


def test_list_books_filters_and_sorts(db, make_book):
    make_book(title="Clean Code", category="Programming")
    make_book(title="Dune", author="Frank Herbert", category="Fiction")
    make_book(title="Refactoring", category="Programming", total_copies=0)

    items, pagination = catalog.list_books(db, category="Programming", sort_by="title", sort_order="asc")
    assert [b.title for b in items] == ["Clean Code", "Refactoring"]
    assert pagination["total"] == 2

    items, _ = catalog.list_books(db, search="herbert")
    assert [b.title for b in items] == ["Dune"]

    items, _ = catalog.list_books(db, availability="unavailable")
    assert [b.title for b in items] == ["Refactoring"]

    with pytest.raises(BadRequestError):
        catalog.list_books(db, sort_by="password")


def test_add_copies_continues_numbering(db, make_book):
    book = make_book(total_copies=2)
    catalog.delete_copy(db, book.id, catalog.list_copies(db, book.id)[0].id)

    added = catalog.add_copies(db, book.id, AddCopiesRequest(count=2, condition=BookCondition.NEW))

    assert [c.copy_number for c in added] == ["003", "004"]
    assert all(c.condition == BookCondition.NEW for c in added)
    db.refresh(book)
    assert book.total_copies == 3
    assert book.available_copies == 3


def test_status_change_adjusts_counter_across_available_boundary(db, book):
    copy = catalog.list_copies(db, book.id)[0]

    catalog.update_copy_status(db, book.id, copy.id, UpdateCopyStatusRequest(status=CopyStatus.DAMAGED, reason="Water"))
    db.refresh(book)
    assert book.available_copies == 2
    assert copy.condition_notes == "Water"

    catalog.update_copy_status(db, book.id, copy.id, UpdateCopyStatusRequest(status=CopyStatus.MAINTENANCE))
    db.refresh(book)
    assert book.available_copies == 2

    catalog.update_copy_status(db, book.id, copy.id, UpdateCopyStatusRequest(status=CopyStatus.AVAILABLE))
    db.refresh(book)
    assert book.available_copies == 3
    assert available_count(db, book) == 3


def test_status_cannot_be_set_to_issued_directly(db, book):
    copy = catalog.list_copies(db, book.id)[0]
    with pytest.raises(BadRequestError):
        catalog.update_copy_status(db, book.id, copy.id, UpdateCopyStatusRequest(status=CopyStatus.ISSUED))


def test_copy_on_loan_cannot_change_status_or_be_deleted(db, book, member):
    transaction = circulation.issue_book(db, book.id, member.id)
    copy_id = transaction.book_copy_id

    with pytest.raises(BadRequestError):
        catalog.update_copy_status(db, book.id, copy_id, UpdateCopyStatusRequest(status=CopyStatus.LOST))
    with pytest.raises(BadRequestError):
        catalog.delete_copy(db, book.id, copy_id)


def test_delete_returned_copy_keeps_loan_history(db, book, member):
    transaction = circulation.issue_book(db, book.id, member.id)
    copy_id = transaction.book_copy_id
    circulation.return_book(db, transaction.id)

    catalog.delete_copy(db, book.id, copy_id)

    db.expire_all()
    assert db.query(BookCopy).filter(BookCopy.id == copy_id).first() is None
    assert book.total_copies == 2
    assert book.available_copies == 2


def test_delete_unavailable_copy_keeps_available_counter(db, book):
    copy = catalog.list_copies(db, book.id)[0]
    catalog.update_copy_status(db, book.id, copy.id, UpdateCopyStatusRequest(status=CopyStatus.LOST))

    catalog.delete_copy(db, book.id, copy.id)

    db.refresh(book)
    assert book.total_copies == 2
    assert book.available_copies == 2


def test_update_copy_details(db, book):
    copy = catalog.list_copies(db, book.id)[0]
    updated = catalog.update_copy(db, book.id, copy.id, UpdateCopyRequest(shelfLocation="A-12", condition=None))
    assert updated.shelf_location == "A-12"
    assert updated.condition == BookCondition.GOOD


def test_copy_must_belong_to_book(db, make_book):
    first = make_book()
    second = make_book()
    copy = catalog.list_copies(db, first.id)[0]
    with pytest.raises(NotFoundError):
        catalog.get_copy(db, second.id, copy.id)


def test_book_stats(db, book, member):
    circulation.issue_book(db, book.id, member.id)

    stats = catalog.get_book_stats(db, book.id)

    assert stats["borrowedCopies"] == 1
    assert stats["availabilityPercentage"] == 67
    assert stats["timesBorrowed"] == 1
    assert stats["copiesByStatus"]["ISSUED"] == 1
    assert stats["copiesByStatus"]["AVAILABLE"] == 2


def test_update_inventory_adds_available_copies(db, book):
    updated = catalog.update_inventory(db, book.id, 5)

    assert updated.total_copies == 5
    assert updated.available_copies == 5
    assert [c.copy_number for c in catalog.list_copies(db, book.id)] == ["001", "002", "003", "004", "005"]
    assert available_count(db, book) == 5


def test_update_inventory_removes_highest_available_copies(db, book, member):
    transaction = circulation.issue_book(db, book.id, member.id)

    updated = catalog.update_inventory(db, book.id, 1)

    assert updated.total_copies == 1
    assert updated.available_copies == 0
    remaining = catalog.list_copies(db, book.id)
    assert [c.id for c in remaining] == [transaction.book_copy_id]
    assert available_count(db, book) == 0


def test_update_inventory_cannot_remove_copies_on_loan(db, book, member):
    circulation.issue_book(db, book.id, member.id)

    with pytest.raises(BadRequestError):
        catalog.update_inventory(db, book.id, 0)

    db.expire_all()
    assert book.total_copies == 3
    assert book.available_copies == 2
    assert len(catalog.list_copies(db, book.id)) == 3


def test_update_inventory_unknown_book(db):
    with pytest.raises(NotFoundError):
        catalog.update_inventory(db, "missing", 2)


def test_bulk_import_reports_duplicates(db, book):
    books = [
        BookCreate(isbn="9780201633610", title="Design Patterns", author="Erich Gamma", category="Programming",
                   total_copies=2),
        BookCreate(isbn=book.isbn, title="Already There", author="Someone", category="Programming"),
        BookCreate(isbn="978-0-13-475759-9", title="Refactoring", author="Martin Fowler", category="Programming"),
        BookCreate(isbn="9780201633610", title="Design Patterns Again", author="Erich Gamma", category="Programming"),
    ]

    result = catalog.bulk_import(db, books)

    assert result["createdCount"] == 2
    assert [b["isbn"] for b in result["created"]] == ["9780201633610", "9780134757599"]
    assert result["failedCount"] == 2
    assert [f["title"] for f in result["failed"]] == ["Already There", "Design Patterns Again"]
    imported = catalog.get_book_by_isbn(db, "9780201633610")
    assert imported.available_copies == len(catalog.list_copies(db, imported.id)) == 2


def test_available_counter_matches_copies_across_operations(db, make_book, member, make_user):
    book = make_book(total_copies=4)
    other = make_user()

    def assert_consistent():
        assert available_count(db, book) == book.available_copies

    first = circulation.issue_book(db, book.id, member.id)
    assert_consistent()
    second = circulation.issue_book(db, book.id, other.id)
    assert_consistent()

    circulation.renew_transaction(db, first.id, member.id)
    assert_consistent()

    free = catalog.list_copies(db, book.id, CopyStatus.AVAILABLE)
    catalog.update_copy_status(db, book.id, free[0].id, UpdateCopyStatusRequest(status=CopyStatus.DAMAGED))
    assert_consistent()

    circulation.cancel_transaction(db, second.id)
    assert_consistent()

    free = catalog.list_copies(db, book.id, CopyStatus.AVAILABLE)
    catalog.delete_copy(db, book.id, free[-1].id)
    assert_consistent()

    circulation.return_book(db, first.id)
    assert_consistent()

    catalog.update_inventory(db, book.id, 5)
    assert_consistent()
    catalog.add_copies(db, book.id, AddCopiesRequest(count=1))
    assert_consistent()

    assert book.total_copies == 6
    assert book.available_copies == 5
