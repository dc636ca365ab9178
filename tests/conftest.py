import os

# Must be set before the application modules read their settings
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MQTT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from library_backend.main import app
from library_backend.database import Base, SessionLocal, engine
from library_backend.models import User, Transaction
from library_backend.models.enums import UserRole, UserStatus
from library_backend.schemas.book import BookCreate
from library_backend.services import catalog, system_settings
from library_backend.services.auth import create_token_for, get_password_hash
from library_backend.utils.timezone import now_utc

PASSWORD = "password123"


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    system_settings.seed_defaults(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role=UserRole.USER, status=UserStatus.ACTIVE, email=None, first_name="Test"):
        counter["n"] += 1
        user = User(
            email=email or f"{role.value.lower()}{counter['n']}@citylibrary.org",
            password_hash=get_password_hash(PASSWORD),
            first_name=first_name,
            last_name=role.value.title(),
            role=role,
            status=status,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def member(make_user):
    return make_user(UserRole.USER, first_name="Alice")


@pytest.fixture
def librarian(make_user):
    return make_user(UserRole.LIBRARIAN, first_name="Larry")


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, first_name="Ada")


@pytest.fixture
def super_admin(make_user):
    return make_user(UserRole.SUPER_ADMIN, first_name="Sam")


def auth_headers(user):
    return {"Authorization": f"Bearer {create_token_for(user)}"}


@pytest.fixture
def make_book(db):
    counter = {"n": 0}

    def _make_book(total_copies=3, fine_per_day=5, loan_period_days=14, max_renewals=2, **extra):
        counter["n"] += 1
        data = BookCreate(
            isbn=f"978013235{counter['n']:04d}",
            title=extra.pop("title", f"Book {counter['n']}"),
            author=extra.pop("author", "Robert C. Martin"),
            category=extra.pop("category", "Programming"),
            total_copies=total_copies,
            fine_per_day=Decimal(str(fine_per_day)),
            loan_period_days=loan_period_days,
            max_renewals=max_renewals,
            **extra
        )
        return catalog.create_book(db, data)

    return _make_book


@pytest.fixture
def book(make_book):
    return make_book()


def move_due_date(db, transaction, days_ago, slack_minutes=5):
    """Put a loan's due date in the past, just under ``days_ago`` whole days."""
    transaction = db.query(Transaction).filter(Transaction.id == transaction.id).one()
    transaction.due_date = now_utc() - timedelta(days=days_ago) + timedelta(minutes=slack_minutes)
    db.commit()
    db.refresh(transaction)
    return transaction


def available_count(db, book):
    from library_backend.models.book import BookCopy
    from library_backend.models.enums import CopyStatus
    db.expire_all()
    return db.query(BookCopy).filter(
        BookCopy.book_id == book.id,
        BookCopy.status == CopyStatus.AVAILABLE
    ).count()
