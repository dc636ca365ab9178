import logging
from typing import Optional

from sqlalchemy import or_, func
from sqlalchemy.orm import Session

from library_backend.models.enums import (
    NotificationCategory, OPEN_TRANSACTION_STATUSES, PaymentStatus, TransactionStatus,
    UserRole, UserStatus
)
from library_backend.models.payment import Payment
from library_backend.models.transaction import Transaction
from library_backend.models.user import User
from library_backend.schemas.auth import CreateUserRequest, RegisterRequest, UpdateUserRequest
from library_backend.services import notifications
from library_backend.services.auth import create_token_for, get_password_hash, verify_password
from library_backend.services.errors import (
    BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
)
from library_backend.services.policy import ADMIN_ROLES, UserAction, ensure_allowed, ensure_can_view
from library_backend.utils.pagination import paginate
from library_backend.utils.timezone import now_utc

logger = logging.getLogger(__name__)

_LOGIN_BLOCKED = {
    UserStatus.PENDING_APPROVAL: "Your account is pending approval",
    UserStatus.SUSPENDED: "Your account has been suspended",
    UserStatus.INACTIVE: "Your account is inactive",
}


def _get(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _ensure_email_free(db: Session, email: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(User.id).filter(func.lower(User.email) == email.lower())
    if exclude_id:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise ConflictError("Email already registered")


def _notify_account(db: Session, user: User, message: str) -> None:
    notifications.notifier.dispatch(db, user.id, NotificationCategory.ACCOUNT_UPDATE, "Account Update", message)


def register(db: Session, data: RegisterRequest) -> User:
    """Self-service sign up. New members wait for staff approval."""
    _ensure_email_free(db, data.email)
    user = User(
        email=data.email.lower(),
        password_hash=get_password_hash(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
        role=UserRole.USER,
        status=UserStatus.PENDING_APPROVAL,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User registered: {user.email}")
    return user


def login(db: Session, email: str, password: str) -> dict:
    user = db.query(User).filter(func.lower(User.email) == email.lower()).first()
    if not user or not verify_password(password, user.password_hash):
        logger.warning(f"Failed login attempt for {email}")
        raise UnauthorizedError("Incorrect email or password")

    if user.status in _LOGIN_BLOCKED:
        raise ForbiddenError(_LOGIN_BLOCKED[user.status])

    user.last_login_at = now_utc()
    db.commit()
    db.refresh(user)
    logger.info(f"User logged in: {user.email}")
    return {
        "accessToken": create_token_for(user),
        "tokenType": "bearer",
        "user": user.to_dict(),
    }


def create_user(db: Session, actor: User, data: CreateUserRequest) -> User:
    ensure_allowed(actor.role, data.role, UserAction.CREATE)
    _ensure_email_free(db, data.email)
    user = User(
        email=data.email.lower(),
        password_hash=get_password_hash(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
        role=data.role,
        status=UserStatus.ACTIVE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.email} created with role {user.role.value} by {actor.id}")
    return user


def list_users(db: Session, role: Optional[UserRole] = None, status: Optional[UserStatus] = None,
               search: Optional[str] = None, page: int = 1, limit: int = 20):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if status:
        query = query.filter(User.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.email.ilike(pattern),
        ))
    return paginate(query.order_by(User.created_at.desc()), page, limit)


def get_user_stats(db: Session, user_id: str) -> dict:
    def count(*criteria):
        return db.query(func.count(Transaction.id)).filter(Transaction.user_id == user_id, *criteria).scalar()

    fines_paid = db.query(func.coalesce(func.sum(Payment.late_fee), 0)).filter(
        Payment.user_id == user_id,
        Payment.payment_status == PaymentStatus.COMPLETED
    ).scalar()
    unpaid = db.query(
        func.coalesce(func.sum(Transaction.fine_amount + Transaction.damage_charge), 0)
    ).filter(
        Transaction.user_id == user_id,
        Transaction.fine_paid.is_(False)
    ).scalar()

    return {
        "totalBorrowed": count(),
        "currentlyBorrowed": count(Transaction.status.in_(OPEN_TRANSACTION_STATUSES)),
        "overdueBooks": count(
            Transaction.status.in_(OPEN_TRANSACTION_STATUSES),
            Transaction.due_date < now_utc()
        ),
        "returnedBooks": count(Transaction.status == TransactionStatus.RETURNED),
        "totalFinesPaid": float(fines_paid),
        "unpaidFines": float(unpaid),
    }


def get_user(db: Session, user_id: str, actor: User) -> dict:
    ensure_can_view(actor, user_id, "profile")
    user = _get(db, user_id)
    data = user.to_dict()
    data["stats"] = get_user_stats(db, user.id)
    return data


def update_user(db: Session, user_id: str, actor: User, data: UpdateUserRequest) -> User:
    user = _get(db, user_id)
    if actor.id != user.id:
        if actor.role not in ADMIN_ROLES:
            raise ForbiddenError("Cannot update other users")
        ensure_allowed(actor.role, user.role, UserAction.UPDATE)

    changes = data.model_dump(exclude_unset=True)
    new_role = changes.pop("role", None)
    if new_role is not None and new_role != user.role:
        ensure_allowed(actor.role, user.role, UserAction.ASSIGN_ROLE)
        ensure_allowed(actor.role, new_role, UserAction.ASSIGN_ROLE)
        logger.info(f"User {user.id} role {user.role.value} -> {new_role.value} by {actor.id}")
        user.role = new_role

    if changes.get("email"):
        _ensure_email_free(db, changes["email"], exclude_id=user.id)
        changes["email"] = changes["email"].lower()

    for field, value in changes.items():
        if value is None and field in ("email", "first_name", "last_name"):
            continue
        setattr(user, field, value)

    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: str, actor: User) -> User:
    """Soft delete: the account becomes INACTIVE and can no longer sign in."""
    user = _get(db, user_id)
    if user.id == actor.id:
        raise ForbiddenError("Cannot delete your own account")
    ensure_allowed(actor.role, user.role, UserAction.DELETE)

    user.status = UserStatus.INACTIVE
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} deactivated by {actor.id}")
    return user


def approve_user(db: Session, user_id: str, actor: User) -> User:
    user = _get(db, user_id)
    if user.status != UserStatus.PENDING_APPROVAL:
        raise BadRequestError("Only users pending approval can be approved")
    ensure_allowed(actor.role, user.role, UserAction.APPROVE)

    user.status = UserStatus.ACTIVE
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} approved by {actor.id}")
    _notify_account(db, user, "Your account has been approved. Welcome to the library!")
    return user


def suspend_user(db: Session, user_id: str, actor: User, reason: Optional[str] = None) -> User:
    user = _get(db, user_id)
    if user.status == UserStatus.SUSPENDED:
        raise BadRequestError("User is already suspended")
    if user.id == actor.id:
        raise ForbiddenError("Cannot suspend your own account")
    ensure_allowed(actor.role, user.role, UserAction.SUSPEND)

    user.status = UserStatus.SUSPENDED
    user.suspension_reason = reason
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} suspended by {actor.id}")
    _notify_account(db, user, f"Your account has been suspended. Reason: {reason or 'not specified'}")
    return user


def activate_user(db: Session, user_id: str, actor: User) -> User:
    user = _get(db, user_id)
    if user.status == UserStatus.ACTIVE:
        raise BadRequestError("User is already active")
    ensure_allowed(actor.role, user.role, UserAction.ACTIVATE)

    user.status = UserStatus.ACTIVE
    user.suspension_reason = None
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} activated by {actor.id}")
    _notify_account(db, user, "Your account has been activated.")
    return user
