from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from library_backend.database import get_db
from library_backend.models.enums import BorrowRequestStatus, UserRole
from library_backend.models.user import User
from library_backend.schemas.common import ApiResponse, ok, paged
from library_backend.schemas.transaction import (
    BorrowRequestCreate, ApproveBorrowRequest, RejectBorrowRequest
)
from library_backend.services import borrow_requests
from library_backend.services.auth import get_current_user, require_roles

# Mounted ahead of the transactions router so /requests is not read as a transaction id
router = APIRouter(prefix="/api/transactions/requests", tags=["Borrow Requests"])

staff_only = require_roles(UserRole.LIBRARIAN, UserRole.ADMIN)

@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_borrow_request(
    request_data: BorrowRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    borrow_request = borrow_requests.create_request(db, current_user, request_data.book_id, request_data.notes)
    return ok({"borrowRequest": borrow_request.to_dict()}, "Borrow request created successfully")

@router.get("", response_model=ApiResponse)
async def list_borrow_requests(
    request_status: Optional[BorrowRequestStatus] = Query(None, alias="status"),
    user_id: Optional[str] = Query(None, alias="userId"),
    book_id: Optional[str] = Query(None, alias="bookId"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    items, pagination = borrow_requests.list_requests(db, request_status, user_id, book_id, page, limit)
    return paged([item.to_dict() for item in items], pagination)

@router.get("/my", response_model=ApiResponse)
async def list_my_borrow_requests(
    request_status: Optional[BorrowRequestStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    items = borrow_requests.list_user_requests(db, current_user, request_status)
    return ok({"borrowRequests": [item.to_dict() for item in items]})

@router.get("/{request_id}", response_model=ApiResponse)
async def get_borrow_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    borrow_request = borrow_requests.get_request(db, request_id, current_user)
    return ok({"borrowRequest": borrow_request.to_dict()})

@router.post("/{request_id}/approve", response_model=ApiResponse)
async def approve_borrow_request(
    request_id: str,
    approval: ApproveBorrowRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    """Approve a pending request, issuing the book in the same step."""
    borrow_request = borrow_requests.approve_request(
        db,
        request_id,
        current_user.id,
        due_date=approval.due_date,
        notes=approval.notes,
        book_copy_id=approval.book_copy_id,
    )
    return ok(
        {
            "borrowRequest": borrow_request.to_dict(),
            "transaction": borrow_request.transaction.to_dict(),
        },
        "Borrow request approved and book issued"
    )

@router.post("/{request_id}/reject", response_model=ApiResponse)
async def reject_borrow_request(
    request_id: str,
    rejection: RejectBorrowRequest,
    current_user: User = Depends(staff_only),
    db: Session = Depends(get_db)
):
    borrow_request = borrow_requests.reject_request(db, request_id, current_user.id, rejection.reason)
    return ok({"borrowRequest": borrow_request.to_dict()}, "Borrow request rejected")

@router.delete("/{request_id}", response_model=ApiResponse)
async def cancel_borrow_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    borrow_request = borrow_requests.cancel_request(db, request_id, current_user.id)
    return ok({"borrowRequest": borrow_request.to_dict()}, "Borrow request cancelled")
