from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from library_backend.database import get_db
from library_backend.models.enums import TransactionStatus, UserRole
from library_backend.models.user import User
from library_backend.schemas.common import ApiResponse, ok, paged
from library_backend.schemas.transaction import (
    IssueBookRequest, ReturnBookRequest, RenewTransactionRequest, PayFineRequest
)
from library_backend.services import transactions as circulation
from library_backend.services.auth import get_current_user, require_roles
from library_backend.services.policy import ensure_can_view
from library_backend.utils.money import to_money

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])

staff_only = require_roles(UserRole.LIBRARIAN, UserRole.ADMIN)
admin_only = require_roles(UserRole.ADMIN)

@router.post("/issue", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def issue_book(
    issue_data: IssueBookRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    """Issue an available copy of a book to a member."""
    transaction = circulation.issue_book(
        db,
        issue_data.book_id,
        issue_data.user_id,
        due_date=issue_data.due_date,
        is_home_delivery=issue_data.is_home_delivery,
        notes=issue_data.notes,
        librarian_id=current_user.id,
    )
    return ok({"transaction": transaction.to_dict()}, "Book issued successfully")

@router.post("/{transaction_id}/return", response_model=ApiResponse)
async def return_book(
    transaction_id: str,
    return_data: ReturnBookRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    transaction = circulation.return_book(
        db,
        transaction_id,
        damage_charge=return_data.damage_charge,
        return_condition=return_data.return_condition,
        notes=return_data.notes,
    )
    total = to_money(transaction.fine_amount) + to_money(transaction.damage_charge)
    return ok(
        {
            "transaction": transaction.to_dict(),
            "daysOverdue": circulation.days_overdue(transaction.due_date, transaction.return_date),
            "totalCharges": float(total),
        },
        "Book returned successfully"
    )

@router.post("/{transaction_id}/renew", response_model=ApiResponse)
async def renew_transaction(
    transaction_id: str,
    renew_data: RenewTransactionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    transaction = circulation.renew_transaction(db, transaction_id, current_user.id, renew_data.new_due_date)
    return ok({"transaction": transaction.to_dict()}, "Book renewed successfully")

@router.get("/{transaction_id}/calculate-fine", response_model=ApiResponse)
async def calculate_fine(
    transaction_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    circulation.get_transaction(db, transaction_id, current_user)
    return ok(circulation.calculate_fine(db, transaction_id))

@router.post("/{transaction_id}/pay-fine", response_model=ApiResponse)
async def pay_fine(
    transaction_id: str,
    payment_data: PayFineRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    result = circulation.pay_fine(
        db,
        transaction_id,
        payment_data.amount,
        payment_data.payment_method,
        reference=payment_data.transaction_id,
        recorded_by=current_user.id,
    )
    return ok(result, "Fine paid successfully")

@router.get("", response_model=ApiResponse)
async def list_transactions(
    transaction_status: Optional[TransactionStatus] = Query(None, alias="status"),
    user_id: Optional[str] = Query(None, alias="userId"),
    book_id: Optional[str] = Query(None, alias="bookId"),
    overdue: bool = Query(False),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None, description="Search by member, title, ISBN or barcode"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    items, pagination = circulation.list_transactions(
        db, transaction_status, user_id, book_id, overdue, start_date, end_date,
        search, page, limit, sort_by, sort_order
    )
    return paged([transaction.to_dict() for transaction in items], pagination)

@router.get("/overdue", response_model=ApiResponse)
async def get_overdue_transactions(
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    return ok(circulation.get_overdue_transactions(db))

@router.get("/stats", response_model=ApiResponse)
async def get_transaction_stats(
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    return ok(circulation.get_transaction_stats(db, user_id))

@router.get("/user/{user_id}", response_model=ApiResponse)
async def get_user_transactions(
    user_id: str,
    transaction_status: Optional[TransactionStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Loan history for one member. Members may only list their own."""
    ensure_can_view(current_user, user_id, "transactions")
    items, pagination = circulation.list_transactions(
        db, transaction_status, user_id=user_id, page=page, limit=limit
    )
    return paged([transaction.to_dict() for transaction in items], pagination)

@router.get("/book/{book_id}", response_model=ApiResponse)
async def get_book_transactions(
    book_id: str,
    transaction_status: Optional[TransactionStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    items, pagination = circulation.list_book_transactions(db, book_id, transaction_status, page, limit)
    return paged([transaction.to_dict() for transaction in items], pagination)

@router.get("/{transaction_id}", response_model=ApiResponse)
async def get_transaction(
    transaction_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    transaction = circulation.get_transaction(db, transaction_id, current_user)
    return ok({"transaction": transaction.to_dict()})

@router.delete("/{transaction_id}", response_model=ApiResponse)
async def cancel_transaction(
    transaction_id: str,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db)
):
    circulation.cancel_transaction(db, transaction_id)
    return ok(message="Transaction cancelled successfully")
